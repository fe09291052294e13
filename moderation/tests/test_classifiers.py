import pytest

from moderation.adapter import ClassifierAdapter
from moderation.classifiers import TEXT_FLAGS, TEXT_PROMPT, AnthropicClassifier, NullClassifier, build_prompt, get_classifier
from moderation.exceptions import ClassifierUnavailable


class TestGetClassifier:
    def test_null_backend(self, settings):
        settings.MODERATION = {**settings.MODERATION, "CLASSIFIER_BACKEND": "null"}
        assert isinstance(get_classifier(), NullClassifier)

    def test_anthropic_backend(self, settings):
        settings.MODERATION = {**settings.MODERATION, "CLASSIFIER_BACKEND": "anthropic", "CLASSIFIER_MODEL": "claude-test"}
        settings.ANTHROPIC_API_KEY = "sk-test"
        classifier = get_classifier()
        assert isinstance(classifier, AnthropicClassifier)
        assert classifier.classifier_id == "anthropic:claude-test"


class TestPrompt:
    def test_braces_in_user_text(self):
        prompt = build_prompt(TEXT_PROMPT, TEXT_FLAGS, locale="en", context="{}", text="look {at} this {{")
        assert "look {at} this {{" in prompt
        assert '"isApproved": bool' in prompt
        assert '"isSarcasm": bool' in prompt


@pytest.mark.asyncio
class TestUnconfigured:
    async def test_missing_key_is_unavailable(self):
        with pytest.raises(ClassifierUnavailable):
            await AnthropicClassifier(api_key="").classify_text("hi")

    async def test_null_classifier_degrades_to_rules(self):
        verdict = await ClassifierAdapter(NullClassifier(), timeout=1, retries=0, fail_closed_types=("video", "audio")).classify_text("have a nice day")
        assert verdict.classifier_id == "lexical-fallback"
        assert verdict.is_approved is True
