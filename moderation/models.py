import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q


class ContentType(models.TextChoices):
    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    VIDEO = "video", "Video"
    AUDIO = "audio", "Audio"


MULTIMODAL_TYPES = (ContentType.VIDEO, ContentType.AUDIO)
VISUAL_TYPES = (ContentType.IMAGE, ContentType.VIDEO)


class Severity(models.TextChoices):
    NONE = "none", "None"
    LOW = "low", "Low"
    MEDIUM = "medium", "Medium"
    HIGH = "high", "High"
    CRITICAL = "critical", "Critical"


SEVERITY_ORDER = [Severity.NONE, Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL]


def severity_rank(value: str) -> int:
    try:
        return SEVERITY_ORDER.index(value)
    except ValueError:
        return 0


def max_severity(*values: str) -> str:
    present = [v for v in values if v]
    if not present:
        return Severity.NONE
    return SEVERITY_ORDER[max(severity_rank(v) for v in present)].value


class Category(models.TextChoices):
    SAFE = "safe", "Safe"
    HARASSMENT = "harassment", "Harassment"
    HATE_SPEECH = "hate_speech", "Hate speech"
    SELF_HARM = "self_harm", "Self harm"
    SEXUAL = "sexual", "Sexual"
    VIOLENCE = "violence", "Violence"
    GAMBLING = "gambling", "Gambling"
    UNAUTHORIZED_PROMOTION = "unauthorized_promotion", "Unauthorized promotion"
    SPAM = "spam", "Spam"
    MISINFORMATION = "misinformation", "Misinformation"
    SARCASM = "sarcasm", "Sarcasm"
    ROASTING = "roasting", "Roasting"


# 위반이 아닌 맥락 태그
BENIGN_CATEGORIES = frozenset(c.value for c in (Category.SAFE, Category.SARCASM, Category.ROASTING))


def harmful_categories(categories) -> list:
    return sorted({c for c in categories or [] if c not in BENIGN_CATEGORIES})


class Decision(models.TextChoices):
    APPROVED = "approved", "Approved"
    PENDING_REVIEW = "pending_review", "Pending review"
    REJECTED = "rejected", "Rejected"
    AGE_RESTRICTED = "age_restricted", "Age restricted"


# 사람 검토로만 도달 가능한 종결 상태
class ReviewResult(models.TextChoices):
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    AGE_RESTRICTED = "age_restricted", "Age restricted"


FLAGGED_DECISIONS = (Decision.REJECTED, Decision.PENDING_REVIEW)


class AppealStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    UPHELD = "upheld", "Upheld"
    OVERTURNED = "overturned", "Overturned"


class ContentItem(models.Model):
    # id 는 호출자(게시물/댓글/미디어)의 식별자를 그대로 사용
    id = models.UUIDField(primary_key=True, editable=False)
    author = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="moderated_contents")
    content_type = models.CharField(max_length=8, choices=ContentType.choices)
    payload = models.JSONField(default=dict)  # {"text": ...} 또는 {"url": ..., "thumbnail_url": ..., "transcript": ...}
    declared_context = models.JSONField(default=dict, blank=True)  # {"post_text", "category", "is_roasting", "is_mutual", "targeted_users"}
    payload_digest = models.CharField(max_length=64)
    revision = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "moderation_contents"
        indexes = [models.Index(fields=["author", "content_type"])]

    def __str__(self):
        return f"{self.content_type}:{self.id}@r{self.revision}"


class ModerationResult(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    content = models.ForeignKey(ContentItem, on_delete=models.CASCADE, related_name="results")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="moderation_results")
    content_type = models.CharField(max_length=8, choices=ContentType.choices)
    revision = models.PositiveIntegerField(default=1)
    decision = models.CharField(max_length=16, choices=Decision.choices)
    is_approved = models.BooleanField(default=False)
    severity = models.CharField(max_length=8, choices=Severity.choices, default=Severity.NONE)
    categories = models.JSONField(default=list)
    confidence = models.FloatField(default=0.0)
    overall_score = models.FloatField(default=0.0)  # 내부 판정용, 작성자에게 노출하지 않음
    context_aware = models.BooleanField(default=False)
    classifier_id = models.CharField(max_length=64)
    notes = models.TextField(blank=True, default="")
    feedback_message = models.CharField(max_length=255, blank=True, default="")
    appealable = models.BooleanField(default=True)
    is_authoritative = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "moderation_results"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["content", "-created_at"]),
            models.Index(fields=["user", "-created_at"]),
        ]
        constraints = [
            models.UniqueConstraint(fields=["content"], condition=Q(is_authoritative=True), name="uniq_authoritative_result_per_content"),
        ]

    def save(self, *args, **kwargs):
        # critical 판정은 이의제기 불가
        self.appealable = self.severity != Severity.CRITICAL
        super().save(*args, **kwargs)


class QueueItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    content = models.ForeignKey(ContentItem, on_delete=models.CASCADE, related_name="queue_items")
    moderation = models.ForeignKey(ModerationResult, on_delete=models.CASCADE, related_name="queue_items")
    content_type = models.CharField(max_length=8, choices=ContentType.choices)
    initial_assessment = models.TextField(blank=True, default="")
    enqueued_at = models.DateTimeField(auto_now_add=True)
    reviewed = models.BooleanField(default=False)
    review_result = models.CharField(max_length=16, choices=ReviewResult.choices, null=True, blank=True)
    review_notes = models.TextField(blank=True, default="")
    reviewed_at = models.DateTimeField(null=True, blank=True)
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name="reviewed_queue_items")

    class Meta:
        db_table = "moderation_queue_items"
        ordering = ["enqueued_at"]
        indexes = [models.Index(fields=["content_type", "reviewed", "enqueued_at"])]
        constraints = [
            models.UniqueConstraint(fields=["content"], condition=Q(reviewed=False), name="uniq_pending_queue_item_per_content"),
        ]


class Appeal(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    moderation = models.ForeignKey(ModerationResult, on_delete=models.CASCADE, related_name="appeals")
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="appeals")
    content = models.ForeignKey(ContentItem, on_delete=models.CASCADE, related_name="appeals")
    content_type = models.CharField(max_length=8, choices=ContentType.choices)
    reason = models.TextField()
    status = models.CharField(max_length=16, choices=AppealStatus.choices, default=AppealStatus.PENDING)
    submitted_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "moderation_appeals"
        indexes = [models.Index(fields=["moderation", "user", "status"])]


class SafetyMetrics(models.Model):
    TREND_WINDOW = 30

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, primary_key=True, related_name="safety_metrics")
    total_items = models.PositiveIntegerField(default=0)
    flagged_items = models.PositiveIntegerField(default=0)
    category_counts = models.JSONField(default=dict)  # {"harassment": 2, ...}
    trend = models.JSONField(default=list)  # 최근 30개 safety_score
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "moderation_safety_metrics"

    @property
    def safety_score(self) -> int:
        # 100 - 15 x (위반 카테고리 종류 수) - min(50, 100 x 플래그 비율)
        violations = len([c for c, n in (self.category_counts or {}).items() if n and c not in BENIGN_CATEGORIES])
        ratio_penalty = min(50.0, 100.0 * self.flagged_items / self.total_items) if self.total_items else 0.0
        score = 100 - 15 * violations - ratio_penalty
        return int(round(max(0.0, min(100.0, score))))

    @property
    def level(self) -> str:
        score = self.safety_score
        if score >= 80:
            return "green"
        if score >= 50:
            return "yellow"
        return "red"

    def push_trend(self, score: int) -> None:
        self.trend = (list(self.trend or []) + [score])[-self.TREND_WINDOW :]
