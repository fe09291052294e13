import logging
from typing import List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from . import ledger
from .exceptions import AlreadyReviewed, ModerationNotFound, StaleQueueItem
from .models import ContentType, Decision, ModerationResult, QueueItem, ReviewResult, Severity, max_severity
from .scoring import feedback_message

logger = logging.getLogger(__name__)

HUMAN_REVIEW_CLASSIFIER = "human-review"


def build_assessment_summary(result: ModerationResult, reasons: Optional[List[str]] = None) -> str:
    cats = ", ".join(result.categories) or "none"
    parts = [f"{result.content_type} flagged as {result.severity} severity", f"categories: {cats}", f"confidence {result.confidence:.2f}"]
    if reasons:
        parts.append(f"reasons: {', '.join(reasons)}")
    if result.notes:
        parts.append(result.notes)
    return "; ".join(parts)


def enqueue(result: ModerationResult, initial_assessment: str = "") -> Tuple[QueueItem, bool]:
    """
    content 당 미검토 항목은 하나. 같은 결과로 이미 대기 중이면 no-op,
    이전 리비전의 항목이면 새 결과를 가리키도록 갱신한다.
    returns (queue_item, changed)
    """
    with transaction.atomic():
        ledger.lock_content(result.content_id)
        existing = QueueItem.objects.filter(content_id=result.content_id, reviewed=False).first()
        if existing is not None:
            if existing.moderation_id == result.id:
                return existing, False
            existing.moderation = result
            existing.initial_assessment = initial_assessment or build_assessment_summary(result)
            existing.save(update_fields=["moderation", "initial_assessment"])
            logger.info("[Queue] re-pointed to revision %s: content=%s", result.revision, result.content_id)
            return existing, True
        try:
            with transaction.atomic():
                item = QueueItem.objects.create(
                    content_id=result.content_id,
                    moderation=result,
                    content_type=result.content_type,
                    initial_assessment=initial_assessment or build_assessment_summary(result),
                )
        except IntegrityError:
            # 락을 지원하지 않는 DB 에서의 동시 enqueue
            return QueueItem.objects.get(content_id=result.content_id, reviewed=False), False
    logger.info("[Queue] enqueued: content=%s type=%s", result.content_id, result.content_type)
    return item, True


def supersede(result: ModerationResult) -> Optional[QueueItem]:
    """이전 리비전에 대해 대기 중인 항목을 검토 없이 닫는다. 닫은 항목이 없으면 None."""
    with transaction.atomic():
        ledger.lock_content(result.content_id)
        stale = QueueItem.objects.select_for_update().filter(content_id=result.content_id, reviewed=False).exclude(moderation=result).first()
        if stale is None:
            return None
        stale.reviewed = True
        stale.review_notes = f"Superseded by revision {result.revision}"
        stale.reviewed_at = timezone.now()
        stale.save(update_fields=["reviewed", "review_notes", "reviewed_at"])
    logger.info("[Queue] superseded: content=%s rev=%s", result.content_id, result.revision)
    return stale


def list_pending(content_type: str) -> List[QueueItem]:
    if content_type not in ContentType.values:
        raise ValidationError({"content_type": [f"Unknown content type: {content_type}"]})
    return list(QueueItem.objects.select_related("moderation").filter(content_type=content_type, reviewed=False).order_by("enqueued_at"))


def pending_count(content_type: Optional[str] = None) -> int:
    qs = QueueItem.objects.filter(reviewed=False)
    if content_type:
        qs = qs.filter(content_type=content_type)
    return qs.count()


def pending_counts() -> dict:
    return {ct: pending_count(ct) for ct in ContentType.values}


def _review_severity(decision: str, pending_severity: str) -> str:
    if decision == ReviewResult.APPROVED:
        return Severity.NONE.value
    if decision == ReviewResult.REJECTED:
        return max_severity(pending_severity, Severity.MEDIUM)
    return max_severity(pending_severity, Severity.LOW)


@transaction.atomic
def resolve(content_id, decision: str, notes: str = "", reviewer=None) -> Tuple[QueueItem, ModerationResult]:
    """
    미검토 QueueItem 을 종결 상태로 표시하고, pending 판정을 대체하는 새 authoritative 결과를 기록한다.
    이미 검토된 항목이면 AlreadyReviewed, 현재 pending 결과를 가리키지 않는 항목이면 StaleQueueItem (둘 다 상태 변경 없음).
    """
    if decision not in ReviewResult.values:
        raise ValidationError({"decision": [f"Decision must be one of {', '.join(ReviewResult.values)}."]})

    item = ledger.lock_content(content_id)
    if item is None:
        raise ModerationNotFound("Content not found.")

    queued = QueueItem.objects.select_for_update().filter(content=item, reviewed=False).first()
    if queued is None:
        if QueueItem.objects.filter(content=item).exists():
            raise AlreadyReviewed()
        raise ModerationNotFound("No queue item for this content.")

    pending = ledger.authoritative_result(item.pk)
    if pending is None or pending.id != queued.moderation_id or pending.decision != Decision.PENDING_REVIEW:
        raise StaleQueueItem()
    result = ledger.record_result(
        item,
        revision=pending.revision,
        decision=decision,
        is_approved=decision in (Decision.APPROVED, Decision.AGE_RESTRICTED),
        severity=_review_severity(decision, pending.severity),
        categories=pending.categories,
        confidence=1.0,
        overall_score=pending.overall_score,
        context_aware=pending.context_aware,
        classifier_id=HUMAN_REVIEW_CLASSIFIER,
        notes=notes or "",
        feedback_message=feedback_message(decision),
    )

    queued.reviewed = True
    queued.review_result = decision
    queued.review_notes = notes or ""
    queued.reviewed_at = timezone.now()
    queued.reviewed_by = reviewer if getattr(reviewer, "pk", None) else None
    queued.save(update_fields=["reviewed", "review_result", "review_notes", "reviewed_at", "reviewed_by"])
    logger.info("[Queue] resolved: content=%s decision=%s reviewer=%s", content_id, decision, getattr(reviewer, "pk", None))
    return queued, result
