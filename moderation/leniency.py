import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

# 오디오/비디오 대사(transcript)에 대한 맥락 기반 관용 규칙.
# 로스팅(상호 합의된 놀림) 맥락에서는 일부 표현을 감경하지만 severe 등급은 절대 감경하지 않는다.

SEVERE_TERMS = ("idiot", "loser", "waste of space", "hate", "kill", "die")
MODERATE_TERMS = ("stupid", "dumb", "ugly", "fat", "skinny")
MILD_TERMS = ("weird", "awkward", "lame", "cringe")
ROASTING_MARKERS = ("penguin on roller skates", "can't dance", "terrible", "awful", "bad at")

PENALTIES = {"severe": 0.3, "moderate": 0.2, "mild": 0.1, "marker": 0.1}

BASE_SCORE = 0.9
SAFE_THRESHOLD = 0.6

INTENSITY_ORDER = ("mild", "moderate", "severe")


@dataclass
class RoastingContext:
    is_roasting: bool = False
    is_mutual: bool = False
    intensity: str = "mild"  # mild < moderate < severe
    targeted_users: List[str] = field(default_factory=list)


@dataclass
class AudioAnalysis:
    contextual_score: float
    is_safe: bool
    flagged_terms: List[dict]
    roasting: RoastingContext
    context_aware: bool


def _compile(terms: Sequence[str]):
    return [(t, re.compile(r"(?<!\w)" + re.escape(t) + r"(?!\w)")) for t in terms]


_TIERS = (
    ("severe", _compile(SEVERE_TERMS)),
    ("moderate", _compile(MODERATE_TERMS)),
    ("mild", _compile(MILD_TERMS)),
)
_MARKERS = _compile(ROASTING_MARKERS)


def _hits(text: str, patterns) -> List[str]:
    return [term for term, rx in patterns if rx.search(text)]


def _normalize(transcript: Optional[str]) -> str:
    text = (transcript or "").lower()
    return text.replace("’", "'")


def detect_intensity(tier_hits: dict) -> str:
    for tier in reversed(INTENSITY_ORDER):
        if tier_hits.get(tier):
            return tier
    return "mild"


def is_excused(tier: str, roasting: RoastingContext) -> bool:
    if tier == "severe":
        return False
    if tier == "moderate":
        return roasting.is_roasting and roasting.intensity != "severe"
    if tier == "mild":
        return roasting.is_roasting
    return False


def analyze(transcript: Optional[str], declared_roasting: bool = False, targeted_users: Optional[Iterable[str]] = None, is_mutual: bool = False) -> AudioAnalysis:
    """
    transcript 에서 등급별 표현을 찾고 맥락 점수를 계산한다.
    - is_roasting = declared_roasting OR (marker 매치 AND targeted_users 존재)
    - intensity  = 매치된 최고 등급 (기본 mild)
    - is_mutual  = 외부 입력 신호 (여기서 추론하지 않음)
    """
    text = _normalize(transcript)
    targets = [str(u) for u in (targeted_users or []) if u]

    tier_hits = {tier: _hits(text, patterns) for tier, patterns in _TIERS}
    marker_hits = _hits(text, _MARKERS)

    roasting = RoastingContext(
        is_roasting=bool(declared_roasting) or (bool(marker_hits) and len(targets) > 0),
        is_mutual=bool(is_mutual),
        intensity=detect_intensity(tier_hits),
        targeted_users=targets,
    )

    score = BASE_SCORE
    flagged = []
    for tier, _ in _TIERS:
        for term in tier_hits[tier]:
            excused = is_excused(tier, roasting)
            penalty = PENALTIES[tier] / 2 if excused else PENALTIES[tier]
            score -= penalty
            flagged.append({"term": term, "tier": tier, "excused": excused, "penalty": penalty})

    # 로스팅 맥락 밖에서만 진짜 모욕으로 간주
    if not roasting.is_roasting:
        for term in marker_hits:
            score -= PENALTIES["marker"]
            flagged.append({"term": term, "tier": "marker", "excused": False, "penalty": PENALTIES["marker"]})

    score = max(0.0, min(1.0, score))
    return AudioAnalysis(
        contextual_score=round(score, 4),
        is_safe=score > SAFE_THRESHOLD,
        flagged_terms=flagged,
        roasting=roasting,
        context_aware=roasting.is_roasting,
    )
