"""
URL configuration for trustgate project.

모든 REST 엔드포인트는 api/v1/ 아래에 위치하고, OpenAPI 스키마와 문서 UI는 api/ 아래에 노출한다.
"""

from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView, SpectacularRedocView


urlpatterns = [
    path("api/v1/", include("moderation.urls")),
    path("api/v1/", include("realtime.urls")),
    # OpenAPI schema & docs
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path("api/docs/", SpectacularSwaggerView.as_view(url_name="schema"), name="swagger-ui"),
    path("api/redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
]
