import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .models import Category, Severity

# 외부 분류기가 없거나 실패했을 때 항상 결과를 보장하는 규칙 기반 분류기 (I/O 없음, 예외 없음)

LEET_MAP = str.maketrans({"0": "o", "1": "i", "3": "e", "4": "a", "5": "s", "7": "t"})
# 기호 치환은 글자 앞에 붙은 경우만 (문장 끝 '!' 는 구두점)
SYMBOL_LEET_RE = re.compile(r"[@$!](?=\w)")
SYMBOL_LEET = {"@": "a", "$": "s", "!": "i"}
PUNCT_RE = re.compile(r"[^\w\s']|_")
APOSTROPHE_RE = re.compile(r"'")
RUN3_RE = re.compile(r"(.)\1{2,}")
RUN_RE = re.compile(r"(.)\1+")

# 카테고리별 가중치와 단어 집합
WORD_SETS: Dict[str, Tuple[float, Tuple[str, ...]]] = {
    "profanity": (0.3, ("damn", "crap", "shit", "fuck", "fucking", "bitch", "bastard", "asshole", "piss", "dick", "wtf", "stfu")),
    "adult": (0.6, ("porn", "porno", "nude", "nudes", "nsfw", "xxx", "onlyfans", "sext", "sexting", "horny")),
    "harassment": (0.7, ("idiot", "loser", "moron", "worthless", "pathetic", "retard", "shut up", "nobody likes you", "kill yourself", "kys")),
    "violence": (0.8, ("kill", "murder", "shoot", "stab", "bomb", "behead", "beat you up", "i will hurt you", "massacre")),
    "hate_speech": (1.0, ("subhuman", "inferior race", "go back to your country", "white power", "ethnic cleansing", "vermin people")),
}

CATEGORY_MAP = {
    "profanity": Category.HARASSMENT,
    "adult": Category.SEXUAL,
    "harassment": Category.HARASSMENT,
    "violence": Category.VIOLENCE,
    "hate_speech": Category.HATE_SPEECH,
}


@dataclass
class LexicalResult:
    is_safe: bool
    categories: List[str]
    confidence: float
    severity: str
    safety_score: float
    matches: List[dict] = field(default_factory=list)


def _substitute(text: str) -> str:
    text = SYMBOL_LEET_RE.sub(lambda m: SYMBOL_LEET[m.group(0)], text.lower())
    return text.translate(LEET_MAP)


def _join_spelled_out(tokens: List[str]) -> List[str]:
    # "f u c k" 처럼 한 글자씩 띄운 연속 토큰(3개 이상)은 하나로 합친다
    out, run = [], []
    for tok in tokens + [""]:
        if len(tok) == 1:
            run.append(tok)
            continue
        if len(run) >= 3:
            out.append("".join(run))
        else:
            out.extend(run)
        run = []
        if tok:
            out.append(tok)
    return out


def normalize(text: str) -> List[str]:
    """소문자화, leetspeak 치환, 구두점 제거, 한 글자 분리 결합까지 적용한 토큰 목록."""
    if not isinstance(text, str):
        text = "" if text is None else str(text)
    cleaned = PUNCT_RE.sub(" ", _substitute(text))
    cleaned = APOSTROPHE_RE.sub("", cleaned)
    return _join_spelled_out(cleaned.split())


def _variants(token: str) -> set:
    return {token, RUN3_RE.sub(r"\1\1", token), RUN_RE.sub(r"\1", token)}


def _count_matches(tokens: List[str]) -> List[dict]:
    token_variants = [_variants(t) for t in tokens]
    joined = " " + " ".join(RUN3_RE.sub(r"\1\1", t) for t in tokens) + " "
    matches = []
    for name, (weight, words) in WORD_SETS.items():
        for word in words:
            if " " in word:
                count = joined.count(" " + word.replace("'", "") + " ")
            else:
                count = sum(1 for vs in token_variants if word in vs)
            if count:
                matches.append({"set": name, "term": word, "count": count, "weight": weight})
    return matches


def _severity(is_safe: bool, has_matches: bool, max_weight: float, safety_score: float) -> str:
    if not has_matches:
        return Severity.NONE.value
    if is_safe:
        return Severity.LOW.value
    if max_weight >= 0.9 or safety_score < 40:
        return Severity.HIGH.value
    if max_weight >= 0.7 or safety_score < 70:
        return Severity.MEDIUM.value
    return Severity.LOW.value


def classify(text) -> LexicalResult:
    tokens = normalize(text)
    matches = _count_matches(tokens)

    total = sum(m["count"] * m["weight"] for m in matches)
    max_weight = max((m["weight"] for m in matches), default=0.0)
    safety_score = max(0.0, min(100.0, 100.0 - total * 25))
    is_safe = safety_score >= 85 and max_weight < 0.7

    if is_safe:
        categories = [Category.SAFE.value]
        confidence = safety_score / 100.0
    else:
        categories = sorted({CATEGORY_MAP[m["set"]].value for m in matches})
        confidence = min(0.9, 0.5 + 0.1 * len(matches))

    return LexicalResult(
        is_safe=is_safe,
        categories=categories,
        confidence=round(confidence, 4),
        severity=_severity(is_safe, bool(matches), max_weight, safety_score),
        safety_score=safety_score,
        matches=matches,
    )
