import hashlib
import json
import logging
from typing import Dict, Optional, Tuple

from django.db import transaction
from rest_framework.exceptions import PermissionDenied

from .models import FLAGGED_DECISIONS, ContentItem, ModerationResult, SafetyMetrics, harmful_categories

logger = logging.getLogger(__name__)


def payload_digest(content_type: str, payload: Dict, declared_context: Optional[Dict] = None) -> str:
    canonical = json.dumps({"type": str(content_type), "payload": payload or {}, "context": declared_context or {}}, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


@transaction.atomic
def register_content(*, content_id, author, content_type: str, payload: Dict, declared_context: Optional[Dict] = None) -> Tuple[ContentItem, bool]:
    """
    ContentItem 을 등록(또는 갱신)한다. 페이로드가 바뀌면 revision 을 올리고, 같으면 그대로 둔다.
    returns (item, changed)
    """
    digest = payload_digest(content_type, payload, declared_context)
    item = ContentItem.objects.select_for_update().filter(pk=content_id).first()
    if item is None:
        item = ContentItem.objects.create(
            id=content_id,
            author=author,
            content_type=content_type,
            payload=payload or {},
            declared_context=declared_context or {},
            payload_digest=digest,
        )
        return item, True

    if item.author_id != author.pk:
        raise PermissionDenied("Content belongs to another author.")
    if item.payload_digest == digest:
        return item, False

    item.content_type = content_type
    item.payload = payload or {}
    item.declared_context = declared_context or {}
    item.payload_digest = digest
    item.revision += 1
    item.save(update_fields=["content_type", "payload", "declared_context", "payload_digest", "revision", "updated_at"])
    return item, True


def lock_content(content_id) -> Optional[ContentItem]:
    # 호출자는 transaction.atomic 안에 있어야 함 (content 단위 직렬화)
    return ContentItem.objects.select_for_update().filter(pk=content_id).first()


def authoritative_result(content_id) -> Optional[ModerationResult]:
    return ModerationResult.objects.filter(content_id=content_id, is_authoritative=True).first()


@transaction.atomic
def record_result(item: ContentItem, *, revision: int, authoritative: bool = True, **fields) -> ModerationResult:
    """
    판정을 기록한다. authoritative=True 이면 기존 authoritative 결과를 내리고 새 결과로 교체한다(latest write wins).
    이전 결과는 감사(audit) 용도로 남는다.
    """
    previous = authoritative_result(item.pk) if authoritative else None
    if previous is not None:
        previous.is_authoritative = False
        previous.save(update_fields=["is_authoritative"])

    result = ModerationResult.objects.create(
        content=item,
        user_id=item.author_id,
        content_type=item.content_type,
        revision=revision,
        is_authoritative=authoritative,
        **fields,
    )

    if authoritative:
        _update_metrics(result, previous)
    logger.info(
        "[Ledger] result recorded: content=%s rev=%s decision=%s severity=%s authoritative=%s",
        item.pk,
        revision,
        result.decision,
        result.severity,
        authoritative,
    )
    return result


def _update_metrics(result: ModerationResult, previous: Optional[ModerationResult]) -> SafetyMetrics:
    metrics, _ = SafetyMetrics.objects.select_for_update().get_or_create(user_id=result.user_id)
    is_flagged = result.decision in FLAGGED_DECISIONS

    if previous is not None and previous.revision == result.revision:
        # 같은 리비전의 재판정(사람 검토 등): 총량은 그대로, 플래그 상태 변화만 반영
        was_flagged = previous.decision in FLAGGED_DECISIONS
        if was_flagged and not is_flagged:
            metrics.flagged_items = max(0, metrics.flagged_items - 1)
        elif is_flagged and not was_flagged:
            metrics.flagged_items += 1
    else:
        metrics.total_items += 1
        if is_flagged:
            metrics.flagged_items += 1
            counts = dict(metrics.category_counts or {})
            for category in harmful_categories(result.categories):
                counts[category] = counts.get(category, 0) + 1
            metrics.category_counts = counts

    metrics.push_trend(metrics.safety_score)
    metrics.save()
    return metrics


def get_safety_metrics(user_id) -> SafetyMetrics:
    metrics = SafetyMetrics.objects.filter(user_id=user_id).first()
    if metrics is None:
        # 기록이 없는 사용자: 저장하지 않은 0 상태
        return SafetyMetrics(user_id=user_id)
    return metrics
