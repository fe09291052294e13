from django.urls import re_path

from .consumers import ModerationQueueConsumer

websocket_urlpatterns = [
    re_path(r"^ws/moderation/$", ModerationQueueConsumer.as_asgi()),
]
