from rest_framework import status
from rest_framework.exceptions import APIException, NotFound


class ClassifierUnavailable(Exception):
    """외부 분류기 호출 실패(네트워크/타임아웃/미설정). 항상 어댑터 내부에서 폴백으로 복구된다."""


class ClassifierResponseInvalid(Exception):
    """분류기 응답에서 구조화 객체를 찾지 못했거나 필수 필드가 누락/형식 오류인 경우."""


class ModerationNotFound(NotFound):
    default_detail = "Moderation record not found."
    default_code = "moderation_not_found"


class NotAppealable(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Critical severity decisions cannot be appealed."
    default_code = "not_appealable"


class AlreadyReviewed(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This queue item has already been reviewed."
    default_code = "already_reviewed"


class StaleQueueItem(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "This queue item no longer matches the current moderation result."
    default_code = "stale_queue_item"
