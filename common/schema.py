from drf_spectacular.utils import inline_serializer
from rest_framework import serializers

# Common
ErrorOut = inline_serializer(
    name="ErrorOut",
    fields={"detail": serializers.CharField(help_text="Human readable error message.")},
)

# Realtime (WebSocket)
RealtimeCapabilitiesOut = inline_serializer(
    name="RealtimeCapabilitiesOut",
    fields={
        "websocket_url": serializers.CharField(help_text="WS endpoint (absolute or relative)"),
        "auth": inline_serializer(
            name="RealtimeAuthHints",
            fields={
                "subprotocol": serializers.CharField(required=False, help_text="예: JWT 를 Sec-WebSocket-Protocol 로 전달"),
                "authorization_header": serializers.CharField(required=False, help_text="예: Authorization: Bearer <token>"),
                "requires_user_id_scope": serializers.BooleanField(required=False, help_text="ASGI scope['user_id'] 필수 여부"),
            },
        ),
        "events": serializers.ListField(
            child=inline_serializer(
                name="RealtimeEventMeta",
                fields={
                    "type": serializers.CharField(),
                    "direction": serializers.ChoiceField(choices=["server->client", "client->server"]),
                    "desc": serializers.CharField(required=False),
                    "example": serializers.DictField(required=False),
                },
            ),
            help_text="지원 이벤트/메시지 요약",
        ),
        "close_codes": serializers.DictField(child=serializers.CharField(), required=False, help_text="서버가 사용할 수 있는 Close code 사전"),
        "heartbeat_sec": serializers.IntegerField(required=False, help_text="권장 ping 주기(클라이언트에서 전송)"),
        "notes": serializers.ListField(child=serializers.CharField(), required=False),
    },
)
