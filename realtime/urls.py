from rest_framework.routers import DefaultRouter

from .views import RealtimeDocViewSet

router = DefaultRouter()
router.register("realtime", RealtimeDocViewSet, basename="realtime")

urlpatterns = router.urls
