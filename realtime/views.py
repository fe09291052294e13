from drf_spectacular.utils import OpenApiExample, OpenApiResponse, extend_schema
from rest_framework import serializers, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.schema import RealtimeCapabilitiesOut

CAPABILITIES = {
    "websocket_url": "/ws/moderation/",
    "auth": {"subprotocol": "<JWT_ACCESS_TOKEN>", "authorization_header": "Bearer <JWT_ACCESS_TOKEN>", "requires_user_id_scope": True},
    "events": [
        {
            "type": "item-enqueued",
            "direction": "server->client",
            "desc": "새 검토 대기 항목",
            "example": {"event": "item-enqueued", "content_type": "video", "data": {"content_id": "uuid", "moderation_id": "uuid"}},
        },
        {
            "type": "item-resolved",
            "direction": "server->client",
            "desc": "검토 완료 항목",
            "example": {"event": "item-resolved", "content_type": "video", "data": {"content_id": "uuid", "review_result": "approved"}},
        },
        {"type": "ping", "direction": "client->server", "example": {"type": "ping"}},
        {"type": "pong", "direction": "server->client", "example": {"event": "pong"}},
    ],
    "close_codes": {"4401": "Unauthorized (scope['user_id'] missing)", "4403": "Forbidden (not a moderator)"},
    "heartbeat_sec": 25,
    "notes": [
        "?types=video,audio 로 구독할 콘텐츠 타입을 제한할 수 있습니다(기본: 전체).",
        "이벤트 전달은 best-effort 입니다. 재연결 후에는 GET /api/v1/moderation/queue/ 로 동기화하세요.",
    ],
}


class RealtimeDocViewSet(viewsets.ViewSet):
    """
    WebSocket 핸드셰이크/계약을 Swagger/Redoc에서 '발견'할 수 있게 해주는 문서 전용 뷰.
    런타임 비즈니스 로직은 없고, 정적 가이드를 반환한다.
    """

    permission_classes = [IsAuthenticated]
    # 스키마 인트로스펙션 안정화
    serializer_class = serializers.Serializer

    @extend_schema(
        tags=["Realtime"],
        summary="모더레이션 큐 WebSocket 연결 가이드",
        description=(
            "모더레이터용 검토 큐 실시간 알림(WebSocket) 연결 정보를 제공합니다.\n\n"
            "- 연결 성공 조건: JWT 검증으로 `scope['user_id']`가 설정되고, 해당 사용자가 모더레이터여야 합니다.\n"
            "- 인증 실패 시 4401, 모더레이터가 아니면 4403 코드로 종료합니다.\n"
            "- 서버→클라이언트 이벤트: `item-enqueued`, `item-resolved`\n"
            '- 클라이언트→서버 메시지: `{"type":"ping"}` 전송 시 `{"event":"pong"}` 응답\n'
        ),
        operation_id="realtime_moderation_capabilities",
        responses={200: OpenApiResponse(response=RealtimeCapabilitiesOut)},
        examples=[OpenApiExample("응답 예시", value=CAPABILITIES, response_only=True)],
    )
    @action(detail=False, methods=["get"], url_path="capabilities")
    def capabilities(self, request):
        return Response(CAPABILITIES)
