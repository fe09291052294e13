from drf_spectacular.utils import OpenApiExample, OpenApiParameter, OpenApiResponse, OpenApiTypes, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.schema import ErrorOut

from . import lexical
from .exceptions import ModerationNotFound
from .models import ContentItem, ContentType
from .permissions import IsModerator, is_moderator
from .serializers import (
    AppealIn,
    AppealOut,
    ContentSummaryOut,
    ModerationCheckIn,
    ModerationCheckOut,
    ModerationResultOut,
    QueueItemOut,
    QueueStatsOut,
    ResolveIn,
    SafetyMetricsOut,
    SubmitIn,
)
from .services import get_pipeline


class ModerationViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = SubmitIn

    def get_serializer_class(self):
        if self.action == "check":
            return ModerationCheckIn
        return SubmitIn

    @extend_schema(
        tags=["Moderation"],
        summary="텍스트 규칙 기반 검사",
        description=(
            "외부 분류기 없이 규칙 기반(lexical) 분류기로 텍스트를 검사합니다. 결과는 저장되지 않습니다.\n"
            "- `is_safe`: 안전 여부 (safety_score >= 85 이고 고위험 단어 미검출)\n"
            "- `severity`: none/low/medium/high\n"
            "- `safety_score`: 0~100\n"
            "- `matches`: 매칭된 단어 집합/단어/횟수/가중치"
        ),
        operation_id="moderation_check",
        request=ModerationCheckIn,
        responses={
            200: OpenApiResponse(response=ModerationCheckOut, description="검사 결과"),
            400: OpenApiResponse(response=ErrorOut),
            401: OpenApiResponse(response=ErrorOut),
        },
        examples=[
            OpenApiExample("요청 예시", value={"content": "you are such an id10t"}, request_only=True),
            OpenApiExample(
                "응답 예시",
                value={
                    "is_safe": False,
                    "severity": "medium",
                    "categories": ["harassment"],
                    "confidence": 0.6,
                    "safety_score": 82.5,
                    "matches": [{"set": "harassment", "term": "idiot", "count": 1, "weight": 0.7}],
                },
                response_only=True,
            ),
        ],
    )
    @action(detail=False, methods=["post"], url_path="check")
    def check(self, request, *args, **kwargs):
        ser = self.get_serializer(data=request.data)
        ser.is_valid(raise_exception=True)
        result = lexical.classify(ser.validated_data["content"])
        out = ModerationCheckOut(
            {
                "is_safe": result.is_safe,
                "severity": result.severity,
                "categories": result.categories,
                "confidence": result.confidence,
                "safety_score": result.safety_score,
                "matches": result.matches,
            }
        )
        return Response(out.data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Moderation"],
        summary="콘텐츠 모더레이션 제출",
        description=(
            "콘텐츠(text/image/video/audio)를 분류하고 판정을 기록합니다.\n"
            "- 판정: `approved` / `pending_review` / `rejected` / `age_restricted`\n"
            "- `pending_review` 는 모더레이터 검토 큐에 등록됩니다.\n"
            "- 동일 페이로드 재제출은 기존 판정을 그대로 반환합니다(재분류하지 않음).\n"
            "- 분류기 장애 시: text 는 규칙 기반 판정, image 는 승인, video/audio 는 검토 대기로 처리됩니다.\n"
            "- 내부 점수/분류기 오류는 응답에 포함되지 않습니다."
        ),
        operation_id="moderation_submit",
        request=SubmitIn,
        responses={
            201: OpenApiResponse(response=ModerationResultOut, description="판정 결과"),
            400: OpenApiResponse(response=ErrorOut),
            401: OpenApiResponse(response=ErrorOut),
            403: OpenApiResponse(response=ErrorOut, description="다른 사용자의 콘텐츠"),
        },
        examples=[
            OpenApiExample("텍스트", value={"content_id": "2b1f7c1e-8a0a-4a39-a2a4-5f7f4f1f6d01", "content_type": "text", "text": "nice day!"}, request_only=True),
            OpenApiExample(
                "비디오(로스팅 맥락)",
                value={
                    "content_id": "2b1f7c1e-8a0a-4a39-a2a4-5f7f4f1f6d02",
                    "content_type": "video",
                    "url": "https://cdn.example.com/v/1.mp4",
                    "thumbnail_url": "https://cdn.example.com/v/1.jpg",
                    "transcript": "you dance like a penguin on roller skates",
                    "is_roasting": True,
                    "is_mutual": True,
                    "targeted_users": ["friend-1"],
                },
                request_only=True,
            ),
            OpenApiExample(
                "응답 예시",
                value={
                    "moderation_id": "f6e1...",
                    "content_id": "2b1f...",
                    "decision": "approved",
                    "is_approved": True,
                    "feedback_message": "This content is fine! ✅",
                    "appealable": True,
                    "created_at": "2025-01-01T00:00:00Z",
                },
                response_only=True,
            ),
        ],
    )
    @action(detail=False, methods=["post"], url_path="submit")
    def submit(self, request, *args, **kwargs):
        ser = SubmitIn(data=request.data)
        ser.is_valid(raise_exception=True)
        result = get_pipeline().submit(author=request.user, **ser.to_submission())
        return Response(ModerationResultOut(result).data, status=status.HTTP_201_CREATED)

    @extend_schema(
        tags=["Moderation"],
        summary="콘텐츠 모더레이션 요약 (작성자/모더레이터)",
        description="현재 유효한(authoritative) 판정의 요약을 반환합니다. 위험도는 등급 라벨(Safe ~ Unsafe)로만 표시됩니다.",
        operation_id="moderation_content_summary",
        parameters=[OpenApiParameter(name="content_id", location=OpenApiParameter.PATH, type=OpenApiTypes.UUID, description="콘텐츠 ID")],
        responses={
            200: OpenApiResponse(response=ContentSummaryOut),
            401: OpenApiResponse(response=ErrorOut),
            403: OpenApiResponse(response=ErrorOut),
            404: OpenApiResponse(response=ErrorOut),
        },
    )
    @action(detail=False, methods=["get"], url_path=r"contents/(?P<content_id>[0-9a-fA-F-]{36})")
    def content_summary(self, request, content_id=None, *args, **kwargs):
        item = ContentItem.objects.filter(pk=content_id).only("id", "author_id").first()
        if item is None:
            raise ModerationNotFound("Content not found.")
        if item.author_id != request.user.id and not is_moderator(request.user):
            raise PermissionDenied("Only the author or a moderator can view this result.")
        summary = get_pipeline().get_summary(item.pk)
        return Response(ContentSummaryOut(summary).data)

    @extend_schema(
        tags=["Moderation"],
        summary="사용자 안전 지표",
        description=(
            "사용자별 누적 모더레이션 지표를 반환합니다.\n"
            "- `safety_score` = 100 - 15 x (위반 카테고리 종류 수) - min(50, 100 x flagged/total)\n"
            "- `level`: green(>=80) / yellow(>=50) / red\n"
            "- `trend`: 최근 30개 점수\n"
            "기록이 없는 사용자는 0 상태를 반환합니다. 본인 또는 모더레이터만 조회할 수 있습니다."
        ),
        operation_id="moderation_safety_metrics",
        parameters=[OpenApiParameter(name="user_id", location=OpenApiParameter.PATH, type=OpenApiTypes.UUID, description="사용자 ID")],
        responses={200: OpenApiResponse(response=SafetyMetricsOut), 401: OpenApiResponse(response=ErrorOut), 403: OpenApiResponse(response=ErrorOut)},
    )
    @action(detail=False, methods=["get"], url_path=r"metrics/(?P<user_id>[0-9a-fA-F-]{36})")
    def metrics(self, request, user_id=None, *args, **kwargs):
        if str(request.user.id) != str(user_id) and not is_moderator(request.user):
            raise PermissionDenied("You can only view your own safety metrics.")
        metrics = get_pipeline().get_safety_metrics(user_id)
        return Response(SafetyMetricsOut(metrics).data)


class ModerationQueueViewSet(viewsets.GenericViewSet):
    permission_classes = [IsModerator]
    serializer_class = QueueItemOut
    lookup_field = "content_id"
    lookup_value_regex = "[0-9a-fA-F-]{36}"

    @extend_schema(
        tags=["Moderation Queue"],
        summary="검토 대기 목록 (모더레이터)",
        description="콘텐츠 타입별 미검토 항목을 등록 순서(enqueued_at 오름차순)로 반환합니다. 실시간 알림을 놓친 경우 이 목록으로 동기화합니다.",
        operation_id="moderation_queue_list",
        parameters=[OpenApiParameter(name="content_type", location=OpenApiParameter.QUERY, type=OpenApiTypes.STR, required=True, enum=ContentType.values)],
        responses={
            200: OpenApiResponse(response=QueueItemOut(many=True)),
            400: OpenApiResponse(response=ErrorOut),
            401: OpenApiResponse(response=ErrorOut),
            403: OpenApiResponse(response=ErrorOut),
        },
    )
    def list(self, request, *args, **kwargs):
        content_type = request.query_params.get("content_type")
        if not content_type:
            raise ValidationError({"content_type": ["This query parameter is required."]})
        items = get_pipeline().list_queue(content_type)
        return Response(QueueItemOut(items, many=True).data)

    @extend_schema(
        tags=["Moderation Queue"],
        summary="검토 대기 건수 (모더레이터)",
        operation_id="moderation_queue_stats",
        responses={200: OpenApiResponse(response=QueueStatsOut), 401: OpenApiResponse(response=ErrorOut), 403: OpenApiResponse(response=ErrorOut)},
        examples=[OpenApiExample("응답 예시", value={"pending": {"text": 0, "image": 1, "video": 3, "audio": 0}, "total_pending": 4}, response_only=True)],
    )
    @action(detail=False, methods=["get"], url_path="stats")
    def stats(self, request, *args, **kwargs):
        counts = get_pipeline().pending_counts()
        return Response(QueueStatsOut({"pending": counts, "total_pending": sum(counts.values())}).data)

    @extend_schema(
        tags=["Moderation Queue"],
        summary="검토 완료 처리 (모더레이터)",
        description=(
            "미검토 항목을 `approved` / `rejected` / `age_restricted` 로 종결하고, 기존 pending 판정을 대체하는 새 판정을 기록합니다.\n"
            "이미 검토되었거나 콘텐츠 수정으로 대체된 항목은 409 를 반환하며 상태는 변경되지 않습니다."
        ),
        operation_id="moderation_queue_resolve",
        request=ResolveIn,
        parameters=[OpenApiParameter(name="content_id", location=OpenApiParameter.PATH, type=OpenApiTypes.UUID, description="콘텐츠 ID")],
        responses={
            200: OpenApiResponse(response=ModerationResultOut, description="새 authoritative 판정"),
            400: OpenApiResponse(response=ErrorOut),
            401: OpenApiResponse(response=ErrorOut),
            403: OpenApiResponse(response=ErrorOut),
            404: OpenApiResponse(response=ErrorOut),
            409: OpenApiResponse(response=ErrorOut, description="이미 검토됨 또는 대체됨"),
        },
        examples=[OpenApiExample("요청 예시", value={"decision": "age_restricted", "notes": "mature but allowed"}, request_only=True)],
    )
    @action(detail=True, methods=["post"], url_path="resolve")
    def resolve(self, request, content_id=None, *args, **kwargs):
        ser = ResolveIn(data=request.data)
        ser.is_valid(raise_exception=True)
        result = get_pipeline().resolve(content_id, ser.validated_data["decision"], ser.validated_data.get("notes", ""), reviewer=request.user)
        return Response(ModerationResultOut(result).data)


class AppealViewSet(viewsets.GenericViewSet):
    permission_classes = [IsAuthenticated]
    serializer_class = AppealIn

    @extend_schema(
        tags=["Moderation"],
        summary="판정 이의제기",
        description=(
            "본인 콘텐츠의 판정에 이의를 제기합니다. 접수된 이의제기는 `pending` 상태로 기록됩니다.\n"
            "- 존재하지 않는 판정: 404\n"
            "- critical 판정: 409(NotAppealable)\n"
            "- 동일 판정에 대기 중인 이의제기가 있으면 400"
        ),
        operation_id="moderation_appeal_create",
        request=AppealIn,
        responses={
            201: OpenApiResponse(response=AppealOut),
            400: OpenApiResponse(response=ErrorOut),
            401: OpenApiResponse(response=ErrorOut),
            403: OpenApiResponse(response=ErrorOut),
            404: OpenApiResponse(response=ErrorOut),
            409: OpenApiResponse(response=ErrorOut, description="이의제기 불가(critical)"),
        },
    )
    def create(self, request, *args, **kwargs):
        ser = AppealIn(data=request.data)
        ser.is_valid(raise_exception=True)
        appeal = get_pipeline().file_appeal(ser.validated_data["moderation_id"], request.user.id, ser.validated_data["reason"])
        return Response(AppealOut(appeal).data, status=status.HTTP_201_CREATED)
