from rest_framework.routers import DefaultRouter

from .views import AppealViewSet, ModerationQueueViewSet, ModerationViewSet

router = DefaultRouter()
router.register("moderation/queue", ModerationQueueViewSet, basename="moderation-queue")
router.register("moderation/appeals", AppealViewSet, basename="moderation-appeals")
router.register("moderation", ModerationViewSet, basename="moderation")

urlpatterns = router.urls
