import logging
from typing import Dict, Optional

from celery import shared_task
from django.contrib.auth import get_user_model
from django.db import OperationalError

from .services import get_pipeline

logger = logging.getLogger(__name__)


@shared_task(name="moderation.tasks.submit_content", autoretry_for=(OperationalError,), retry_backoff=2, max_retries=3)
def submit_content(content_id: str, author_id: str, content_type: str, payload: Dict, declared_context: Optional[Dict] = None, locale: Optional[str] = None):
    # 이벤트 버스/비동기 경로용. 분류기 장애는 파이프라인 내부에서 폴백되므로 DB 장애만 재시도.
    author = get_user_model().objects.filter(pk=author_id).first()
    if author is None:
        logger.warning("[Moderation] submit skipped, unknown author: content=%s author=%s", content_id, author_id)
        return None

    result = get_pipeline().submit(content_id=content_id, author=author, content_type=content_type, payload=payload, declared_context=declared_context, locale=locale)
    return {"moderation_id": str(result.id), "decision": result.decision}
