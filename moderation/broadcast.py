import inspect
import logging
import threading
from typing import Callable, Dict, List

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

from realtime.groups import moderation_queue_group

logger = logging.getLogger(__name__)

ITEM_ENQUEUED = "item-enqueued"
ITEM_RESOLVED = "item-resolved"

Handler = Callable[[Dict], None]


class ModerationBroadcaster:
    """
    모더레이터 세션으로 큐 이벤트를 전달한다. best-effort / at-most-once.
    - Channels 그룹: moderation_queue_group(content_type)
    - 메시지 타입: "moderation.event" (컨슈머의 moderation_event 핸들러와 매칭)
    - 오프라인 구독자는 이벤트를 놓치며, list_pending 폴링으로 맞춘다.
    """

    def __init__(self):
        self._handlers: List[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers.append(handler)

        def unsubscribe():
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        return unsubscribe

    def publish(self, kind: str, content_type: str, payload: Dict) -> None:
        event = {"event": kind, "content_type": str(content_type), "data": payload}

        with self._lock:
            handlers = list(self._handlers)
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("[Broadcast] subscriber failed for %s", kind)

        layer = get_channel_layer()
        if not layer:
            return
        try:
            send = layer.group_send
            msg = {"type": "moderation.event", "payload": event}
            if inspect.iscoroutinefunction(send):
                async_to_sync(send)(moderation_queue_group(content_type), msg)
            else:
                # 테스트 더미가 동기 구현인 경우
                send(moderation_queue_group(content_type), msg)
        except Exception:
            logger.exception("[Broadcast] group_send failed for %s (%s)", kind, content_type)


def queue_item_payload(queue_item, result=None) -> Dict:
    data = {
        "queue_item_id": str(queue_item.id),
        "content_id": str(queue_item.content_id),
        "moderation_id": str(queue_item.moderation_id),
        "content_type": queue_item.content_type,
        "enqueued_at": queue_item.enqueued_at.isoformat() if queue_item.enqueued_at else None,
        "initial_assessment": queue_item.initial_assessment,
        "reviewed": queue_item.reviewed,
        "review_result": queue_item.review_result,
        "reviewed_at": queue_item.reviewed_at.isoformat() if queue_item.reviewed_at else None,
    }
    if result is not None:
        data["resolution_id"] = str(result.id)
    return data
