import logging
import urllib.parse

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth import get_user_model

from moderation.models import ContentType

from .groups import moderation_queue_group

logger = logging.getLogger(__name__)


@database_sync_to_async
def _is_moderator(user_id) -> bool:
    User = get_user_model()
    return User.objects.filter(pk=user_id, is_moderator=True).exists()


class ModerationQueueConsumer(AsyncJsonWebsocketConsumer):
    """
    모더레이터 검토 큐 구독.
    그룹: moderation.queue.<content_type> (쿼리스트링 ?types=video,audio 로 제한, 기본은 전체)
    group_send 예:
        await channel_layer.group_send(
            moderation_queue_group("video"),
            {"type": "moderation.event", "payload": {"event": "item-enqueued", "content_type": "video", "data": {...}}}
        )
    """

    async def connect(self):
        self.user_id = self.scope.get("user_id")
        if not self.user_id:
            await self.close(code=4401)  # unauthorized
            return
        if not await _is_moderator(self.user_id):
            await self.close(code=4403)  # forbidden
            return

        self.group_names = [moderation_queue_group(t) for t in self._requested_types()]
        for name in self.group_names:
            await self.channel_layer.group_add(name, self.channel_name)
        await self.accept()
        logger.info("[Realtime] moderator connected: user=%s groups=%s", self.user_id, ",".join(self.group_names))

    def _requested_types(self):
        qs = self.scope.get("query_string", b"").decode()
        raw = urllib.parse.parse_qs(qs).get("types") or []
        requested = [t.strip() for part in raw for t in part.split(",") if t.strip()]
        # 알 수 없는 타입은 무시
        types = [t for t in requested if t in ContentType.values]
        return types or list(ContentType.values)

    async def disconnect(self, code):
        for name in getattr(self, "group_names", []):
            await self.channel_layer.group_discard(name, self.channel_name)

    async def receive_json(self, content, **kwargs):
        if content and content.get("type") == "ping":
            await self.send_json({"event": "pong"})

    async def moderation_event(self, event):
        payload = event.get("payload") or {}
        await self.send_json({"event": payload.get("event"), "content_type": payload.get("content_type"), "data": payload.get("data") or {}})
