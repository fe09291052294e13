import asyncio
import hashlib
import logging
import re
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from django.conf import settings
from django.core.cache import cache

from . import lexical
from .classifiers import ContentClassifier
from .exceptions import ClassifierResponseInvalid, ClassifierUnavailable
from .extraction import parse_response
from .models import Category, ContentType, Severity, harmful_categories, max_severity

logger = logging.getLogger(__name__)

THUMBNAIL_CACHE_PREFIX = "moderation:thumb:v1:"

FLAG_FIELDS = (
    "containsNudity",
    "containsViolence",
    "containsGambling",
    "containsUnauthorizedPromotion",
    "sensitiveContent",
    "requiresHumanReview",
    "ageRestricted",
    "isRoasting",
    "isSarcasm",
    "detectedText",
    "transcript",
)

# 분류기 플래그 → 카테고리
FLAG_CATEGORIES = {
    "containsNudity": Category.SEXUAL.value,
    "containsViolence": Category.VIOLENCE.value,
    "containsGambling": Category.GAMBLING.value,
    "containsUnauthorizedPromotion": Category.UNAUTHORIZED_PROMOTION.value,
    "isSarcasm": Category.SARCASM.value,
    "isRoasting": Category.ROASTING.value,
}

CATEGORY_ALIASES = {
    "hate": Category.HATE_SPEECH.value,
    "hatespeech": Category.HATE_SPEECH.value,
    "nudity": Category.SEXUAL.value,
    "adult": Category.SEXUAL.value,
    "sexualcontent": Category.SEXUAL.value,
    "selfharm": Category.SELF_HARM.value,
    "promotion": Category.UNAUTHORIZED_PROMOTION.value,
    "profanity": Category.HARASSMENT.value,
    "bullying": Category.HARASSMENT.value,
}

FAIL_CLOSED_NOTE = "Flagged for human review due to moderation service error"
FAIL_OPEN_NOTE = "Moderation service unavailable; approved by default"
LEXICAL_NOTE = "fallback-rule-based"


@dataclass
class Verdict:
    is_approved: bool
    severity: str
    categories: List[str]
    confidence: float
    classifier_id: str
    notes: str = ""
    flags: Dict[str, Any] = field(default_factory=dict)
    fallback: bool = False
    fail_closed: bool = False


def normalize_categories(labels: Iterable[str], is_approved: bool, flags: Optional[Dict] = None) -> List[str]:
    out = set()
    for label in labels or []:
        key = re.sub(r"[\s\-]+", "_", str(label).strip().lower())
        key = CATEGORY_ALIASES.get(key.replace("_", ""), key)
        if key in Category.values:
            out.add(key)
    for flag, category in FLAG_CATEGORIES.items():
        if (flags or {}).get(flag) is True:
            out.add(category)

    if harmful_categories(out):
        out.discard(Category.SAFE.value)
    elif not is_approved:
        out.add(Category.HARASSMENT.value)
        out.discard(Category.SAFE.value)
    elif not out:
        out.add(Category.SAFE.value)
    return sorted(out)


def apply_veto(base: Verdict, sub: Verdict, source: str) -> Verdict:
    """sub 가 불승인이면 base 를 강등한다. 반대 방향(sub 가 base 를 승인)은 없다."""
    if sub.is_approved:
        return base
    merged = set(base.categories) | set(sub.categories)
    if harmful_categories(merged):
        merged.discard(Category.SAFE.value)
    notes = "; ".join(n for n in (base.notes, f"{source} flagged: {sub.notes or ', '.join(sub.categories)}") if n)
    return replace(
        base,
        is_approved=False,
        severity=max_severity(base.severity, sub.severity, Severity.LOW),
        categories=sorted(merged),
        notes=notes,
        flags={**base.flags, f"{source.replace(' ', '_')}_vetoed": True},
    )


def lexical_verdict(text: str) -> Verdict:
    res = lexical.classify(text)
    return Verdict(
        is_approved=res.is_safe,
        severity=res.severity,
        categories=list(res.categories),
        confidence=res.confidence,
        classifier_id="lexical-fallback",
        notes=LEXICAL_NOTE,
        flags={"lexicalMatches": res.matches, "safetyScore": res.safety_score},
        fallback=True,
    )


def fail_closed_verdict() -> Verdict:
    return Verdict(
        is_approved=False,
        severity=Severity.MEDIUM.value,
        categories=[],
        confidence=0.0,
        classifier_id="fallback-fail-closed",
        notes=FAIL_CLOSED_NOTE,
        flags={"requiresHumanReview": True},
        fallback=True,
        fail_closed=True,
    )


def fail_open_verdict() -> Verdict:
    return Verdict(
        is_approved=True,
        severity=Severity.NONE.value,
        categories=[Category.SAFE.value],
        confidence=0.5,
        classifier_id="fallback-fail-open",
        notes=FAIL_OPEN_NOTE,
        fallback=True,
    )


class ClassifierAdapter:
    """
    외부 분류기를 감싸 다음을 보장한다.
    - 모든 호출은 timeout 으로 제한되고 일시 장애(unavailable/timeout)는 1회 재시도
    - 응답 파싱/검증 실패는 재시도 없이 폴백
    - 폴백: text → 규칙 기반(lexical), image → 승인(fail-open), video/audio → 검토 대기(fail-closed)
    """

    def __init__(self, classifier: ContentClassifier, *, timeout: Optional[float] = None, retries: Optional[int] = None, fail_closed_types: Optional[Iterable[str]] = None, thumbnail_cache_ttl: Optional[int] = None):
        conf = getattr(settings, "MODERATION", {})
        self.classifier = classifier
        self.timeout = float(timeout if timeout is not None else conf.get("CLASSIFIER_TIMEOUT", 20))
        self.retries = int(retries if retries is not None else conf.get("CLASSIFIER_RETRIES", 1))
        types = fail_closed_types if fail_closed_types is not None else conf.get("FAIL_CLOSED_CONTENT_TYPES", (ContentType.VIDEO, ContentType.AUDIO))
        self.fail_closed_types = frozenset(str(t) for t in types)
        self.thumbnail_cache_ttl = int(thumbnail_cache_ttl if thumbnail_cache_ttl is not None else conf.get("THUMBNAIL_CACHE_TTL", 3600))

    @property
    def classifier_id(self) -> str:
        return getattr(self.classifier, "classifier_id", self.classifier.__class__.__name__)

    # ---- 공통 ----
    async def _invoke(self, kind: str, call: Callable[[], Awaitable[str]]) -> Dict[str, Any]:
        attempts = self.retries + 1
        reason = ""
        for attempt in range(1, attempts + 1):
            try:
                raw = await asyncio.wait_for(call(), timeout=self.timeout)
            except asyncio.TimeoutError:
                reason = f"timeout after {self.timeout:.1f}s"
                logger.warning("[Classifier] %s call timed out (attempt %d/%d)", kind, attempt, attempts)
                continue
            except ClassifierUnavailable as e:
                reason = str(e)
                logger.warning("[Classifier] %s call unavailable (attempt %d/%d): %s", kind, attempt, attempts, e)
                continue
            except Exception as e:
                # 예상하지 못한 백엔드 오류는 재시도하지 않고 폴백으로 넘긴다 (취소는 전파)
                logger.exception("[Classifier] %s call failed unexpectedly", kind)
                raise ClassifierUnavailable(f"{kind}: {type(e).__name__}: {e}") from e
            return parse_response(raw)
        raise ClassifierUnavailable(f"{kind}: {reason}")

    def _from_payload(self, data: Dict[str, Any]) -> Verdict:
        flags = {k: data[k] for k in FLAG_FIELDS if data.get(k) is not None}
        is_approved = data["isApproved"]
        return Verdict(
            is_approved=is_approved,
            severity=data["severity"],
            categories=normalize_categories(data["categories"], is_approved, flags),
            confidence=data["confidence"],
            classifier_id=self.classifier_id,
            notes=str(data.get("moderationNotes") or data.get("notes") or ""),
            flags=flags,
        )

    def degrade(self, content_type: str, text: Optional[str] = None) -> Verdict:
        if str(content_type) in self.fail_closed_types:
            return fail_closed_verdict()
        if text is not None:
            return lexical_verdict(text)
        return fail_open_verdict()

    async def _with_caption(self, primary: Awaitable[Verdict], caption: Optional[str], locale: str, context: Optional[Dict]) -> Verdict:
        # 캡션(본문)은 미디어와 독립적이므로 동시에 분류하고, 거부 시에만 반영
        if not caption or not caption.strip():
            return await primary
        verdict, caption_verdict = await asyncio.gather(primary, self.classify_text(caption, locale=locale, context=context))
        return apply_veto(verdict, caption_verdict, source="caption")

    # ---- text ----
    async def classify_text(self, text: str, *, locale: str = "en", context: Optional[Dict] = None) -> Verdict:
        try:
            data = await self._invoke("text", lambda: self.classifier.classify_text(text, locale=locale, context=context))
        except (ClassifierUnavailable, ClassifierResponseInvalid) as e:
            logger.warning("[Classifier] text degraded to fallback: %s", e)
            return self.degrade(ContentType.TEXT, text=text)
        return self._from_payload(data)

    # ---- image ----
    async def _image(self, url: str, locale: str, context: Optional[Dict]) -> Verdict:
        try:
            data = await self._invoke("image", lambda: self.classifier.classify_image(url, context=context))
        except (ClassifierUnavailable, ClassifierResponseInvalid) as e:
            logger.warning("[Classifier] image degraded to fallback: %s", e)
            return self.degrade(ContentType.IMAGE)

        verdict = self._from_payload(data)
        detected = data.get("detectedText")
        if isinstance(detected, str) and detected.strip():
            # 이미지 속 텍스트는 텍스트 분류를 거친다 (이미지 승인을 뒤집을 수만 있음)
            sub = await self.classify_text(detected.strip(), locale=locale, context=context)
            verdict = apply_veto(verdict, sub, source="embedded text")
        return verdict

    async def classify_image(self, url: str, *, caption: Optional[str] = None, locale: str = "en", context: Optional[Dict] = None) -> Verdict:
        return await self._with_caption(self._image(url, locale, context), caption, locale, context)

    # ---- video ----
    async def _thumbnail(self, url: str, locale: str, context: Optional[Dict]) -> Verdict:
        key = THUMBNAIL_CACHE_PREFIX + hashlib.sha256(url.encode("utf-8")).hexdigest()
        cached = await cache.aget(key)
        if cached:
            return Verdict(**cached)
        verdict = await self._image(url, locale, context)
        if not verdict.fallback:
            # 제출이 취소되더라도 재시도 시 썸네일 판정은 재사용
            await cache.aset(key, asdict(verdict), self.thumbnail_cache_ttl)
        return verdict

    async def _video(self, url: str, thumbnail_url: Optional[str], transcript: Optional[str], locale: str, context: Optional[Dict]) -> Verdict:
        if thumbnail_url:
            thumb = await self._thumbnail(thumbnail_url, locale, context)
            if not thumb.is_approved and not thumb.fallback:
                logger.info("[Classifier] video rejected by thumbnail, full analysis skipped: %s", url)
                return replace(
                    thumb,
                    notes="; ".join(n for n in ("thumbnail-based", thumb.notes) if n),
                    flags={**thumb.flags, "thumbnailBased": True},
                )

        try:
            data = await self._invoke("video", lambda: self.classifier.classify_video(url, thumbnail_url=thumbnail_url, transcript=transcript, context=context))
        except (ClassifierUnavailable, ClassifierResponseInvalid) as e:
            logger.warning("[Classifier] video degraded to fallback: %s", e)
            return self.degrade(ContentType.VIDEO)
        return self._from_payload(data)

    async def classify_video(
        self,
        url: str,
        *,
        thumbnail_url: Optional[str] = None,
        transcript: Optional[str] = None,
        caption: Optional[str] = None,
        locale: str = "en",
        context: Optional[Dict] = None,
    ) -> Verdict:
        return await self._with_caption(self._video(url, thumbnail_url, transcript, locale, context), caption, locale, context)

    # ---- audio ----
    async def _audio(self, url: str, transcript: Optional[str], context: Optional[Dict]) -> Verdict:
        try:
            data = await self._invoke("audio", lambda: self.classifier.classify_audio(url, transcript=transcript, context=context))
        except (ClassifierUnavailable, ClassifierResponseInvalid) as e:
            logger.warning("[Classifier] audio degraded to fallback: %s", e)
            return self.degrade(ContentType.AUDIO)
        return self._from_payload(data)

    async def classify_audio(self, url: str, *, transcript: Optional[str] = None, caption: Optional[str] = None, locale: str = "en", context: Optional[Dict] = None) -> Verdict:
        return await self._with_caption(self._audio(url, transcript, context), caption, locale, context)
