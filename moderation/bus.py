import logging
from typing import Dict

from django.conf import settings

from . import tasks
from .models import ContentType

logger = logging.getLogger(__name__)


def _spawn(task, *args, **kwargs):
    # 테스트/로컬에서 CELERY_TASK_ALWAYS_EAGER=True 라면 즉시 동기 실행(.apply), 그 외 환경에서는 .delay 로 비동기 실행.
    if getattr(settings, "CELERY_TASK_ALWAYS_EAGER", False):
        return task.apply(args=args, kwargs=kwargs)
    return task.delay(*args, **kwargs)


def _declared_context(payload: Dict) -> Dict:
    keys = ("post_text", "category", "is_roasting", "is_mutual", "targeted_users")
    return {k: payload[k] for k in keys if payload.get(k) is not None}


class BusConsumer:
    # 실제 환경에선 Kafka/RabbitMQ consumer가 각각의 on_* 핸들러를 호출하도록 연결.

    @classmethod
    def on_post_created(cls, event: Dict):
        """
        event 예시:
        {
            "type": "PostCreated",
            "payload": {"post_id": "...", "author_id": "...", "content": "..." }
        }
        """
        payload = event.get("payload", {})
        content = payload.get("content", "") or ""
        if not content.strip():
            logger.info("[Moderation] PostCreated without text skipped: post=%s", payload.get("post_id"))
            return None
        logger.info("[Moderation] PostCreated received: post=%s", payload.get("post_id"))
        return _spawn(tasks.submit_content, str(payload.get("post_id")), str(payload.get("author_id")), ContentType.TEXT.value, {"text": content}, _declared_context(payload))

    @classmethod
    def on_comment_created(cls, event: Dict):
        payload = event.get("payload", {})
        content = payload.get("content", "") or ""
        if not content.strip():
            return None
        logger.info("[Moderation] CommentCreated received: comment=%s", payload.get("comment_id"))
        return _spawn(tasks.submit_content, str(payload.get("comment_id")), str(payload.get("author_id")), ContentType.TEXT.value, {"text": content}, {})

    @classmethod
    def on_media_uploaded(cls, event: Dict):
        """
        event 예시:
        {
            "type": "MediaUploaded",
            "payload": {"media_id": "...", "author_id": "...", "media_type": "video", "url": "...",
                        "thumbnail_url": "...", "transcript": "...", "post_text": "...", "is_roasting": true}
        }
        """
        payload = event.get("payload", {})
        media_type = payload.get("media_type")
        if media_type not in (ContentType.IMAGE, ContentType.VIDEO, ContentType.AUDIO) or not payload.get("url"):
            logger.warning("[Moderation] MediaUploaded ignored: media=%s type=%s", payload.get("media_id"), media_type)
            return None
        media = {k: payload[k] for k in ("url", "thumbnail_url", "transcript") if payload.get(k)}
        logger.info("[Moderation] MediaUploaded received: media=%s type=%s", payload.get("media_id"), media_type)
        return _spawn(tasks.submit_content, str(payload.get("media_id")), str(payload.get("author_id")), media_type, media, _declared_context(payload))
