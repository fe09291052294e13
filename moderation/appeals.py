import logging

from django.db import transaction
from rest_framework.exceptions import PermissionDenied, ValidationError

from .exceptions import ModerationNotFound, NotAppealable
from .models import Appeal, AppealStatus, ModerationResult

logger = logging.getLogger(__name__)


@transaction.atomic
def file_appeal(*, moderation_id, user_id, reason: str) -> Appeal:
    # 이의제기 처리(인용/기각)는 외부 사람 프로세스 소관. 여기서는 pending 으로 접수만 한다.
    result = ModerationResult.objects.select_for_update().filter(pk=moderation_id).first()
    if result is None:
        raise ModerationNotFound("Moderation result not found.")
    if not result.appealable:
        raise NotAppealable()
    if str(result.user_id) != str(user_id):
        raise PermissionDenied("Only the content author can appeal this decision.")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError({"reason": ["This field may not be blank."]})
    if Appeal.objects.filter(moderation=result, user_id=user_id, status=AppealStatus.PENDING).exists():
        raise ValidationError({"moderation_id": ["An appeal for this decision is already pending."]})

    appeal = Appeal.objects.create(
        moderation=result,
        user_id=user_id,
        content_id=result.content_id,
        content_type=result.content_type,
        reason=reason,
        status=AppealStatus.PENDING,
    )
    logger.info("[Appeal] filed: appeal=%s moderation=%s user=%s", appeal.id, moderation_id, user_id)
    return appeal
