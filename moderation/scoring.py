from dataclasses import dataclass, field
from typing import List, Optional

from .adapter import Verdict
from .leniency import AudioAnalysis, RoastingContext
from .models import MULTIMODAL_TYPES, VISUAL_TYPES, Category, Decision, Severity, harmful_categories, max_severity

# 판정 임계값
APPROVE_ABOVE = 0.8
REJECT_BELOW = 0.3
REVIEW_BAND = (0.3, 0.7)
LOW_CONFIDENCE = 0.7
UNSAFE_LEG_SCORE = 0.3
MULTIMODAL_WEIGHTS = (0.5, 0.5)

# 단일 모달 불승인 판정의 점수 (심각도가 높을수록 낮음)
SEVERITY_FLOOR = {
    Severity.NONE.value: 0.5,
    Severity.LOW.value: 0.5,
    Severity.MEDIUM.value: 0.4,
    Severity.HIGH.value: 0.2,
    Severity.CRITICAL.value: 0.0,
}

SENSITIVE_FLAGS = ("sensitiveContent", "containsNudity")

FEEDBACK_MESSAGES = {
    Decision.APPROVED.value: "This content is fine! ✅",
    Decision.AGE_RESTRICTED.value: "This content is only visible to adult viewers. 🔞",
    Decision.PENDING_REVIEW.value: "A moderator will take a look. Try rewording this to keep it fun and respectful! ⚠️",
    Decision.REJECTED.value: "This content crosses our guidelines and may be removed. ❌",
}


@dataclass
class Assessment:
    decision: str
    overall_score: float
    requires_review: bool
    severity: str
    categories: List[str]
    confidence: float
    context_aware: bool
    classifier_id: str
    notes: str
    feedback_message: str
    reasons: List[str] = field(default_factory=list)

    @property
    def is_approved(self) -> bool:
        return self.decision in (Decision.APPROVED, Decision.AGE_RESTRICTED)


def feedback_message(decision: str) -> str:
    return FEEDBACK_MESSAGES.get(str(decision), "")


def roasting_adjustment(score: float, roasting: Optional[RoastingContext]) -> float:
    if roasting is None or not roasting.is_roasting:
        return score
    if roasting.is_mutual:
        return min(1.0, score * 1.2)
    if roasting.intensity == "severe":
        return score * 0.7
    if roasting.intensity == "moderate":
        return score * 0.9
    return score


def aggregate(primary_score: float, audio_score: Optional[float] = None, roasting: Optional[RoastingContext] = None) -> float:
    """멀티모달 종합 점수. transcript 가 없으면 1차(시각/오디오 분류기) 점수만 사용."""
    if audio_score is None:
        return round(primary_score, 4)
    w_primary, w_audio = MULTIMODAL_WEIGHTS
    return round(w_primary * primary_score + w_audio * roasting_adjustment(audio_score, roasting), 4)


def decide(overall_score: float, requires_review: bool) -> str:
    if overall_score > APPROVE_ABOVE:
        return Decision.APPROVED.value
    if overall_score < REJECT_BELOW:
        return Decision.REJECTED.value
    if requires_review:
        return Decision.PENDING_REVIEW.value
    return Decision.APPROVED.value


def review_reasons(overall_score: float, content_type: str, verdict: Verdict, roasting: Optional[RoastingContext] = None) -> List[str]:
    reasons = []
    low, high = REVIEW_BAND
    if low < overall_score < high:
        reasons.append("score-in-review-band")
    if roasting and roasting.is_roasting and not roasting.is_mutual and roasting.intensity == "moderate":
        reasons.append("non-mutual-moderate-roast")
    if content_type in VISUAL_TYPES and verdict.confidence < LOW_CONFIDENCE:
        reasons.append("low-visual-confidence")
    if any(verdict.flags.get(f) is True for f in SENSITIVE_FLAGS):
        reasons.append("sensitive-content")
    if verdict.flags.get("requiresHumanReview") is True:
        reasons.append("classifier-requested-review")
    if content_type in MULTIMODAL_TYPES and not verdict.is_approved:
        # 1차 분류기가 거부했는데 경계값(0.3)에 걸리는 경우 자동 승인되지 않도록
        reasons.append("classifier-not-approved")
    return reasons


def _unimodal_score(verdict: Verdict) -> float:
    if verdict.is_approved:
        return verdict.confidence
    return SEVERITY_FLOOR.get(verdict.severity, 0.5)


def _final_categories(verdict: Verdict, analysis: Optional[AudioAnalysis], decision: str) -> List[str]:
    cats = set(verdict.categories)
    if analysis is not None:
        if analysis.roasting.is_roasting:
            cats.add(Category.ROASTING.value)
        if not analysis.is_safe:
            cats.add(Category.HARASSMENT.value)
    if harmful_categories(cats):
        cats.discard(Category.SAFE.value)
    elif decision in (Decision.APPROVED, Decision.AGE_RESTRICTED) and not cats:
        cats.add(Category.SAFE.value)
    return sorted(cats)


def _final_severity(verdict: Verdict, analysis: Optional[AudioAnalysis], decision: str) -> str:
    severity = verdict.severity
    if analysis is not None and not analysis.is_safe:
        unexcused_severe = any(t["tier"] == "severe" and not t["excused"] for t in analysis.flagged_terms)
        severity = max_severity(severity, Severity.HIGH if unexcused_severe else Severity.MEDIUM)
    if decision == Decision.REJECTED:
        severity = max_severity(severity, Severity.LOW)
    return severity


def assess(content_type: str, verdict: Verdict, analysis: Optional[AudioAnalysis] = None) -> Assessment:
    """분류 결과(+오디오 맥락 분석)를 종합해 최종 판정을 만든다."""
    roasting = analysis.roasting if analysis is not None else None

    if verdict.fallback and verdict.fail_closed:
        overall, reasons = UNSAFE_LEG_SCORE, ["classifier-unavailable"]
        decision = Decision.PENDING_REVIEW.value
    elif verdict.flags.get("thumbnailBased") is True:
        # 썸네일 거부는 전체 분석 없이 즉시 거부
        overall, reasons = min(_unimodal_score(verdict), UNSAFE_LEG_SCORE), []
        decision = Decision.REJECTED.value
    elif verdict.fallback and verdict.is_approved:
        # fail-open: 분류기 장애 시 승인 (text 는 lexical 판정이 안전한 경우에만 여기로)
        overall, reasons = verdict.confidence, []
        decision = Decision.APPROVED.value
    else:
        if content_type in MULTIMODAL_TYPES:
            primary = verdict.confidence if verdict.is_approved else UNSAFE_LEG_SCORE
            audio = None
            if analysis is not None:
                audio = analysis.contextual_score if analysis.is_safe else UNSAFE_LEG_SCORE
            overall = aggregate(primary, audio, roasting)
        else:
            overall = round(_unimodal_score(verdict), 4)
        reasons = review_reasons(overall, content_type, verdict, roasting)
        decision = decide(overall, bool(reasons))

    if decision == Decision.APPROVED and verdict.flags.get("ageRestricted") is True:
        decision = Decision.AGE_RESTRICTED.value

    return Assessment(
        decision=decision,
        overall_score=overall,
        requires_review=bool(reasons),
        severity=_final_severity(verdict, analysis, decision),
        categories=_final_categories(verdict, analysis, decision),
        confidence=verdict.confidence,
        context_aware=bool(analysis is not None and analysis.context_aware) or Category.ROASTING.value in verdict.categories or Category.SARCASM.value in verdict.categories,
        classifier_id=verdict.classifier_id,
        notes=verdict.notes,
        feedback_message=feedback_message(decision),
        reasons=reasons,
    )
