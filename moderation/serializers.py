from rest_framework import serializers

from .models import Appeal, ContentType, Decision, ModerationResult, QueueItem, ReviewResult, SafetyMetrics


class ModerationCheckIn(serializers.Serializer):
    content = serializers.CharField(max_length=10_000, allow_blank=False)


class ModerationCheckOut(serializers.Serializer):
    is_safe = serializers.BooleanField()
    severity = serializers.CharField()
    categories = serializers.ListField(child=serializers.CharField())
    confidence = serializers.FloatField()
    safety_score = serializers.FloatField()
    matches = serializers.ListField(child=serializers.DictField())


class SubmitIn(serializers.Serializer):
    content_id = serializers.UUIDField()
    content_type = serializers.ChoiceField(choices=ContentType.choices)
    text = serializers.CharField(required=False, allow_blank=False, max_length=10_000)
    url = serializers.URLField(required=False)
    thumbnail_url = serializers.URLField(required=False)
    transcript = serializers.CharField(required=False, allow_blank=True, max_length=50_000)
    # 선언된 맥락
    post_text = serializers.CharField(required=False, allow_blank=True, max_length=10_000)
    category = serializers.CharField(required=False, allow_blank=True, max_length=64)
    is_roasting = serializers.BooleanField(required=False, default=False)
    is_mutual = serializers.BooleanField(required=False, default=False)
    targeted_users = serializers.ListField(child=serializers.CharField(max_length=64), required=False, default=list)
    locale = serializers.CharField(required=False, max_length=16)

    def validate(self, attrs):
        ct = attrs["content_type"]
        if ct == ContentType.TEXT and not attrs.get("text"):
            raise serializers.ValidationError({"text": ["Required for text content."]})
        if ct != ContentType.TEXT and not attrs.get("url"):
            raise serializers.ValidationError({"url": ["Required for media content."]})
        if attrs.get("thumbnail_url") and ct != ContentType.VIDEO:
            raise serializers.ValidationError({"thumbnail_url": ["Only video content has a thumbnail."]})
        return attrs

    def to_submission(self) -> dict:
        data = self.validated_data
        if data["content_type"] == ContentType.TEXT:
            payload = {"text": data["text"]}
        else:
            payload = {k: data[k] for k in ("url", "thumbnail_url", "transcript") if data.get(k)}
        declared = {k: data[k] for k in ("post_text", "category") if data.get(k)}
        if data.get("is_roasting"):
            declared["is_roasting"] = True
        if data.get("is_mutual"):
            declared["is_mutual"] = True
        if data.get("targeted_users"):
            declared["targeted_users"] = data["targeted_users"]
        return {
            "content_id": data["content_id"],
            "content_type": data["content_type"],
            "payload": payload,
            "declared_context": declared,
            "locale": data.get("locale"),
        }


class ModerationResultOut(serializers.ModelSerializer):
    # 작성자에게 보여주는 결과 (판정 + 피드백 메시지만)
    moderation_id = serializers.UUIDField(source="id", read_only=True)
    content_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = ModerationResult
        fields = ("moderation_id", "content_id", "decision", "is_approved", "feedback_message", "appealable", "created_at")
        read_only_fields = fields


class ModerationResultDetailOut(serializers.ModelSerializer):
    content_id = serializers.UUIDField(read_only=True)
    user_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = ModerationResult
        fields = (
            "id",
            "content_id",
            "user_id",
            "content_type",
            "revision",
            "decision",
            "is_approved",
            "severity",
            "categories",
            "confidence",
            "overall_score",
            "context_aware",
            "classifier_id",
            "notes",
            "appealable",
            "is_authoritative",
            "created_at",
        )
        read_only_fields = fields


class ContentSummaryOut(serializers.Serializer):
    content_id = serializers.UUIDField()
    moderation_id = serializers.UUIDField()
    decision = serializers.ChoiceField(choices=Decision.choices)
    is_approved = serializers.BooleanField()
    moderation_level = serializers.CharField()
    categories = serializers.ListField(child=serializers.CharField())
    feedback_message = serializers.CharField(allow_blank=True)
    appealable = serializers.BooleanField()
    last_checked = serializers.DateTimeField()


class QueueItemOut(serializers.ModelSerializer):
    content_id = serializers.UUIDField(read_only=True)
    moderation = ModerationResultDetailOut(read_only=True)

    class Meta:
        model = QueueItem
        fields = (
            "id",
            "content_id",
            "content_type",
            "enqueued_at",
            "initial_assessment",
            "reviewed",
            "review_result",
            "reviewed_at",
            "review_notes",
            "moderation",
        )
        read_only_fields = fields


class QueueStatsOut(serializers.Serializer):
    pending = serializers.DictField(child=serializers.IntegerField())
    total_pending = serializers.IntegerField()


class ResolveIn(serializers.Serializer):
    decision = serializers.ChoiceField(choices=ReviewResult.choices)
    notes = serializers.CharField(required=False, allow_blank=True, default="", max_length=2000)


class AppealIn(serializers.Serializer):
    moderation_id = serializers.UUIDField()
    reason = serializers.CharField(max_length=2000, allow_blank=False)


class AppealOut(serializers.ModelSerializer):
    moderation_id = serializers.UUIDField(read_only=True)
    content_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Appeal
        fields = ("id", "moderation_id", "content_id", "content_type", "reason", "status", "submitted_at")
        read_only_fields = fields


class SafetyMetricsOut(serializers.ModelSerializer):
    user_id = serializers.UUIDField(read_only=True)
    safety_score = serializers.IntegerField(read_only=True)
    level = serializers.ChoiceField(choices=["green", "yellow", "red"], read_only=True)

    class Meta:
        model = SafetyMetrics
        fields = ("user_id", "total_items", "flagged_items", "category_counts", "safety_score", "level", "trend")
        read_only_fields = fields
