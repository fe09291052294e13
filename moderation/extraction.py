import json
from typing import Any, Dict, Iterable, Optional

from .exceptions import ClassifierResponseInvalid
from .models import Severity

# 분류기 응답은 신뢰할 수 없는 자유 텍스트. 여기서만 구조화 객체로 변환한다.

REQUIRED_FIELDS = ("isApproved", "severity", "categories", "confidence")

_decoder = json.JSONDecoder()


def extract_object(text: Any) -> Optional[Dict[str, Any]]:
    """텍스트에서 처음 등장하는 올바른 JSON 객체를 반환. 없으면 None."""
    if not isinstance(text, str):
        return None
    idx = text.find("{")
    while idx != -1:
        try:
            obj, _ = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            return obj
        idx = text.find("{", idx + 1)
    return None


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate(obj: Dict[str, Any], required: Iterable[str] = REQUIRED_FIELDS) -> Dict[str, Any]:
    missing = [f for f in required if f not in obj]
    if missing:
        raise ClassifierResponseInvalid(f"missing fields: {', '.join(missing)}")

    if "isApproved" in obj and not isinstance(obj["isApproved"], bool):
        raise ClassifierResponseInvalid("isApproved must be a boolean")
    if "severity" in obj:
        sev = str(obj["severity"]).strip().lower()
        if sev not in Severity.values:
            raise ClassifierResponseInvalid(f"unknown severity: {obj['severity']!r}")
        obj["severity"] = sev
    if "categories" in obj:
        if not isinstance(obj["categories"], list) or not all(isinstance(c, str) for c in obj["categories"]):
            raise ClassifierResponseInvalid("categories must be a list of strings")
    if "confidence" in obj:
        if not _is_number(obj["confidence"]):
            raise ClassifierResponseInvalid("confidence must be a number")
        obj["confidence"] = max(0.0, min(1.0, float(obj["confidence"])))
    return obj


def parse_response(text: Any, required: Iterable[str] = REQUIRED_FIELDS) -> Dict[str, Any]:
    obj = extract_object(text)
    if obj is None:
        raise ClassifierResponseInvalid("no structured object found in classifier response")
    return validate(obj, required)
