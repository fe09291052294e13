"""
ASGI config for trustgate project.

It exposes the ASGI callable as a module-level variable named ``application``.

HTTP 는 Django, WebSocket 은 JWT 미들웨어를 거쳐 모더레이터 큐 채널로 라우팅된다.
"""

import os

from channels.routing import ProtocolTypeRouter, URLRouter
from channels.security.websocket import AllowedHostsOriginValidator
from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "trustgate.settings")

django_asgi_app = get_asgi_application()


from realtime.auth import JWTAuthMiddleware  # noqa: E402
from realtime.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": django_asgi_app,
        "websocket": AllowedHostsOriginValidator(JWTAuthMiddleware(URLRouter(websocket_urlpatterns))),
    }
)
