import logging
from typing import Dict, List, Optional, Tuple

from asgiref.sync import async_to_sync
from django.conf import settings
from django.db import transaction
from rest_framework.exceptions import ValidationError

from . import appeals, ledger, leniency, review_queue, scoring
from .adapter import ClassifierAdapter, Verdict
from .broadcast import ITEM_ENQUEUED, ITEM_RESOLVED, ModerationBroadcaster, queue_item_payload
from .classifiers import ContentClassifier, get_classifier
from .exceptions import ModerationNotFound
from .models import MULTIMODAL_TYPES, Appeal, ContentItem, ContentType, Decision, ModerationResult, QueueItem, SafetyMetrics

logger = logging.getLogger(__name__)

MODERATION_LEVELS = {
    "none": "Safe",
    "low": "Mostly Safe",
    "medium": "Potentially Sensitive",
    "high": "Sensitive",
    "critical": "Unsafe",
}

# 프로세스 내 구독자(handler)를 공유하기 위한 기본 브로드캐스터
default_broadcaster = ModerationBroadcaster()


def _default_locale() -> str:
    return getattr(settings, "MODERATION", {}).get("DEFAULT_LOCALE", "en")


def _validate_payload(content_type: str, payload: Dict) -> None:
    if content_type not in ContentType.values:
        raise ValidationError({"content_type": [f"Unknown content type: {content_type}"]})
    if content_type == ContentType.TEXT:
        if not isinstance(payload.get("text"), str) or not payload["text"].strip():
            raise ValidationError({"text": ["Text content is required."]})
    elif not payload.get("url"):
        raise ValidationError({"url": ["Media url is required."]})


class ModerationPipeline:
    """
    제출 → 분류(폴백 포함) → 맥락 분석 → 점수/판정 → 기록(+검토 큐) → 모더레이터 알림.
    분류기는 생성 시 주입된다.
    """

    def __init__(self, classifier: Optional[ContentClassifier] = None, *, adapter: Optional[ClassifierAdapter] = None, broadcaster: Optional[ModerationBroadcaster] = None):
        self.adapter = adapter or ClassifierAdapter(classifier if classifier is not None else get_classifier())
        self.broadcaster = broadcaster or default_broadcaster

    # ---- 분류 ----
    async def classify(self, item: ContentItem, locale: Optional[str] = None) -> Tuple[Verdict, Optional[leniency.AudioAnalysis]]:
        payload = item.payload or {}
        ctx = item.declared_context or {}
        locale = locale or _default_locale()
        caption = ctx.get("post_text")

        if item.content_type == ContentType.TEXT:
            verdict = await self.adapter.classify_text(payload.get("text", ""), locale=locale, context=ctx)
        elif item.content_type == ContentType.IMAGE:
            verdict = await self.adapter.classify_image(payload["url"], caption=caption, locale=locale, context=ctx)
        elif item.content_type == ContentType.VIDEO:
            verdict = await self.adapter.classify_video(
                payload["url"],
                thumbnail_url=payload.get("thumbnail_url"),
                transcript=payload.get("transcript"),
                caption=caption,
                locale=locale,
                context=ctx,
            )
        else:
            verdict = await self.adapter.classify_audio(payload["url"], transcript=payload.get("transcript"), caption=caption, locale=locale, context=ctx)

        analysis = None
        if item.content_type in MULTIMODAL_TYPES and not verdict.flags.get("thumbnailBased"):
            transcript = payload.get("transcript") or verdict.flags.get("transcript")
            if isinstance(transcript, str) and transcript.strip():
                analysis = leniency.analyze(
                    transcript,
                    declared_roasting=bool(ctx.get("is_roasting")) or verdict.flags.get("isRoasting") is True,
                    targeted_users=ctx.get("targeted_users") or [],
                    is_mutual=bool(ctx.get("is_mutual")),
                )
        return verdict, analysis

    # ---- 제출 ----
    def submit(self, *, content_id, author, content_type: str, payload: Dict, declared_context: Optional[Dict] = None, locale: Optional[str] = None) -> ModerationResult:
        payload = dict(payload or {})
        _validate_payload(content_type, payload)

        item, _ = ledger.register_content(content_id=content_id, author=author, content_type=content_type, payload=payload, declared_context=declared_context)
        current = ledger.authoritative_result(item.pk)
        if current is not None and current.revision == item.revision:
            # 동일 페이로드 재제출: 기존 authoritative 결과 유지
            logger.info("[Moderation] unchanged content resubmitted: content=%s rev=%s", item.pk, item.revision)
            return current

        revision = item.revision
        verdict, analysis = async_to_sync(self.classify)(item, locale)
        assessment = scoring.assess(item.content_type, verdict, analysis)

        queued = closed = None
        with transaction.atomic():
            locked = ledger.lock_content(item.pk)
            current = ledger.authoritative_result(item.pk)
            if current is not None and current.revision >= revision:
                # 같은 리비전을 먼저 기록한 제출이 있음
                logger.info("[Moderation] concurrent submission lost the race: content=%s rev=%s", item.pk, revision)
                return current

            stale = locked.revision > revision
            result = ledger.record_result(
                locked,
                revision=revision,
                authoritative=not stale,
                decision=assessment.decision,
                is_approved=assessment.is_approved,
                severity=assessment.severity,
                categories=assessment.categories,
                confidence=assessment.confidence,
                overall_score=assessment.overall_score,
                context_aware=assessment.context_aware,
                classifier_id=assessment.classifier_id,
                notes=assessment.notes,
                feedback_message=assessment.feedback_message,
            )
            if not stale and result.decision == Decision.PENDING_REVIEW:
                summary = review_queue.build_assessment_summary(result, assessment.reasons)
                queue_item, created = review_queue.enqueue(result, initial_assessment=summary)
                queued = queue_item if created else None
            elif not stale:
                # 이전 리비전 기준의 대기 항목은 더 이상 유효하지 않음
                closed = review_queue.supersede(result)

        logger.info(
            "[Moderation] %s moderated: content=%s decision=%s score=%.2f classifier=%s",
            item.content_type,
            item.pk,
            result.decision,
            result.overall_score,
            result.classifier_id,
        )
        if queued is not None:
            self.broadcaster.publish(ITEM_ENQUEUED, queued.content_type, queue_item_payload(queued))
        if closed is not None:
            self.broadcaster.publish(ITEM_RESOLVED, closed.content_type, queue_item_payload(closed, result))
        return result

    # ---- 검토 큐 ----
    def list_queue(self, content_type: str) -> List[QueueItem]:
        return review_queue.list_pending(content_type)

    def pending_counts(self) -> Dict[str, int]:
        return review_queue.pending_counts()

    def resolve(self, content_id, decision: str, notes: str = "", reviewer=None) -> ModerationResult:
        queued, result = review_queue.resolve(content_id, decision, notes, reviewer)
        self.broadcaster.publish(ITEM_RESOLVED, queued.content_type, queue_item_payload(queued, result))
        return result

    # ---- 이의제기 / 지표 ----
    def file_appeal(self, moderation_id, user_id, reason: str) -> Appeal:
        return appeals.file_appeal(moderation_id=moderation_id, user_id=user_id, reason=reason)

    def get_safety_metrics(self, user_id) -> SafetyMetrics:
        return ledger.get_safety_metrics(user_id)

    def get_summary(self, content_id) -> Dict:
        # 작성자용 요약: 내부 점수는 노출하지 않음
        result = ledger.authoritative_result(content_id)
        if result is None:
            raise ModerationNotFound("No moderation result for this content.")
        return {
            "content_id": result.content_id,
            "moderation_id": result.id,
            "decision": result.decision,
            "is_approved": result.is_approved,
            "moderation_level": MODERATION_LEVELS.get(result.severity, "Safe"),
            "categories": [c.replace("_", " ").title() for c in result.categories],
            "feedback_message": result.feedback_message,
            "appealable": result.appealable,
            "last_checked": result.created_at,
        }


def get_pipeline(**kwargs) -> ModerationPipeline:
    return ModerationPipeline(**kwargs)
