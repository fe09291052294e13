import json
import logging
from typing import Dict, Optional, Protocol

import anthropic

from .exceptions import ClassifierUnavailable

logger = logging.getLogger(__name__)


class ContentClassifier(Protocol):
    """외부 분류 기능. 응답은 구조화 객체가 포함된(것으로 기대되는) 자유 텍스트."""

    classifier_id: str

    async def classify_text(self, text: str, *, locale: str = "en", context: Optional[Dict] = None) -> str: ...

    async def classify_image(self, url: str, *, context: Optional[Dict] = None) -> str: ...

    async def classify_video(self, url: str, *, thumbnail_url: Optional[str] = None, transcript: Optional[str] = None, context: Optional[Dict] = None) -> str: ...

    async def classify_audio(self, url: str, *, transcript: Optional[str] = None, context: Optional[Dict] = None) -> str: ...


def get_classifier() -> ContentClassifier:
    # settings.MODERATION 으로 선택 (default: null → 폴백 경로)
    from django.conf import settings

    conf = getattr(settings, "MODERATION", {})
    name = conf.get("CLASSIFIER_BACKEND", "null")

    if name == "anthropic":
        return AnthropicClassifier(api_key=getattr(settings, "ANTHROPIC_API_KEY", ""), model=conf.get("CLASSIFIER_MODEL", DEFAULT_MODEL))
    return NullClassifier()


class NullClassifier:
    classifier_id = "null"

    async def classify_text(self, text, *, locale="en", context=None):
        raise ClassifierUnavailable("no classifier configured")

    async def classify_image(self, url, *, context=None):
        raise ClassifierUnavailable("no classifier configured")

    async def classify_video(self, url, *, thumbnail_url=None, transcript=None, context=None):
        raise ClassifierUnavailable("no classifier configured")

    async def classify_audio(self, url, *, transcript=None, context=None):
        raise ClassifierUnavailable("no classifier configured")


DEFAULT_MODEL = "claude-sonnet-4-20250514"


RESPONSE_CONTRACT = """
Respond with ONLY a JSON object:
{{"isApproved": bool, "severity": "none"|"low"|"medium"|"high"|"critical",
 "categories": [one or more of: safe, harassment, hate_speech, self_harm, sexual, violence, gambling, unauthorized_promotion, spam, misinformation, sarcasm, roasting],
 "confidence": number 0-1, "moderationNotes": string{extra}}}"""

TEXT_PROMPT = """You are a content safety reviewer for a social platform. Locale: {locale}.
Judge the text below. Distinguish playful sarcasm or mutual roasting from genuine abuse.
Declared context: {context}

Text:
{text}
"""
TEXT_FLAGS = ', "isSarcasm": bool, "isRoasting": bool, "requiresHumanReview": bool'

IMAGE_PROMPT = """You are a content safety reviewer for a social platform. Judge the attached image.
Declared context: {context}
"""
IMAGE_FLAGS = (
    ', "containsNudity": bool, "containsViolence": bool, "containsGambling": bool, "containsUnauthorizedPromotion": bool, '
    '"sensitiveContent": bool, "detectedText": string or null, "requiresHumanReview": bool'
)

VIDEO_PROMPT = """You are a content safety reviewer for a social platform. Judge the video at {url}.
Thumbnail: {thumbnail_url}
Transcript: {transcript}
Declared context: {context}
"""
VIDEO_FLAGS = ', "sensitiveContent": bool, "ageRestricted": bool, "isRoasting": bool, "requiresHumanReview": bool, "transcript": string or null'

AUDIO_PROMPT = """You are a content safety reviewer for a social platform. Judge the audio clip at {url}.
Transcript: {transcript}
Declared context: {context}
"""
AUDIO_FLAGS = ', "isRoasting": bool, "isSarcasm": bool, "requiresHumanReview": bool, "transcript": string or null'


def build_prompt(template: str, flags: str, **values) -> str:
    # 사용자 입력은 format 인자로만 들어가므로 중괄호가 섞여 있어도 안전
    return template.format(**values) + RESPONSE_CONTRACT.format(extra=flags)


class AnthropicClassifier:
    """Anthropic Messages API 기반 분류기. 프롬프트 문구는 운영 중 조정될 수 있다."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, max_tokens: int = 1024):
        self.client = anthropic.AsyncAnthropic(api_key=api_key) if api_key else None
        self.model = model
        self.max_tokens = max_tokens
        self.classifier_id = f"anthropic:{model}"

    async def _complete(self, content) -> str:
        if self.client is None:
            raise ClassifierUnavailable("ANTHROPIC_API_KEY is not configured")
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            logger.warning("[Classifier] anthropic call failed: %s", e.__class__.__name__)
            raise ClassifierUnavailable(str(e)) from e
        return "".join(getattr(block, "text", "") for block in response.content)

    @staticmethod
    def _ctx(context: Optional[Dict]) -> str:
        return json.dumps(context or {}, ensure_ascii=False)

    async def classify_text(self, text, *, locale="en", context=None):
        return await self._complete(build_prompt(TEXT_PROMPT, TEXT_FLAGS, locale=locale, context=self._ctx(context), text=text))

    async def classify_image(self, url, *, context=None):
        return await self._complete(
            [
                {"type": "image", "source": {"type": "url", "url": url}},
                {"type": "text", "text": build_prompt(IMAGE_PROMPT, IMAGE_FLAGS, context=self._ctx(context))},
            ]
        )

    async def classify_video(self, url, *, thumbnail_url=None, transcript=None, context=None):
        prompt = build_prompt(VIDEO_PROMPT, VIDEO_FLAGS, url=url, thumbnail_url=thumbnail_url or "n/a", transcript=transcript or "n/a", context=self._ctx(context))
        return await self._complete(prompt)

    async def classify_audio(self, url, *, transcript=None, context=None):
        return await self._complete(build_prompt(AUDIO_PROMPT, AUDIO_FLAGS, url=url, transcript=transcript or "n/a", context=self._ctx(context)))
