import logging
import urllib.parse
from typing import Optional

from channels.middleware import BaseMiddleware
from django.conf import settings
from rest_framework_simplejwt.backends import TokenBackend
from rest_framework_simplejwt.exceptions import TokenBackendError

logger = logging.getLogger(__name__)


def _strip_bearer(value: str) -> str:
    scheme, _, rest = value.strip().partition(" ")
    if scheme.lower() == "bearer":
        return rest.strip()
    return value.strip()


def extract_token(scope) -> Optional[str]:
    """QueryString ?token=..., scope["subprotocols"], Sec-WebSocket-Protocol, Authorization 헤더 순으로 JWT 를 찾는다."""
    qs = scope.get("query_string", b"").decode()
    if qs:
        params = urllib.parse.parse_qs(qs)
        if params.get("token"):
            return params["token"][0]

    # WebsocketCommunicator(subprotocols=...) / 브라우저 new WebSocket(url, [token])
    for proto in scope.get("subprotocols") or []:
        if proto and proto.strip():
            return _strip_bearer(proto)

    headers = dict(scope.get("headers", []))
    swp = headers.get(b"sec-websocket-protocol")
    if swp:
        return _strip_bearer(swp.decode().split(",")[0])

    # 브라우저가 아닌 클라이언트: Authorization: Bearer <token>
    auth = headers.get(b"authorization")
    if auth:
        return _strip_bearer(auth.decode()) or None
    return None


class JWTAuthMiddleware(BaseMiddleware):
    # access 토큰만 허용. 검증에 성공하면 scope["user_id"], 실패하면 None (권한 판단은 컨슈머 소관)

    def _backend(self) -> TokenBackend:
        conf = settings.SIMPLE_JWT
        return TokenBackend(
            algorithm=conf.get("ALGORITHM", "HS256"),
            signing_key=conf.get("SIGNING_KEY", settings.SECRET_KEY),
            verifying_key=conf.get("VERIFYING_KEY", None),
        )

    def _user_id(self, token: str) -> Optional[str]:
        try:
            payload = self._backend().decode(token, verify=True)
        except TokenBackendError as e:
            logger.info("[Realtime] websocket token rejected: %s", e)
            return None
        if payload.get("token_type", "access") != "access":
            logger.info("[Realtime] websocket token rejected: not an access token")
            return None
        claim = settings.SIMPLE_JWT.get("USER_ID_CLAIM", "user_id")
        user_id = payload.get(claim) or payload.get("sub")
        return str(user_id) if user_id else None

    async def __call__(self, scope, receive, send):
        token = extract_token(scope)
        scope["user_id"] = self._user_id(token) if token else None
        return await super().__call__(scope, receive, send)
