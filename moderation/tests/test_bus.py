import uuid

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache

from moderation.adapter import ClassifierAdapter
from moderation.broadcast import ModerationBroadcaster
from moderation.bus import BusConsumer
from moderation.models import ModerationResult, QueueItem
from moderation.services import ModerationPipeline
from moderation.tasks import submit_content
from moderation.tests.fakes import REJECT_HIGH, FakeClassifier, verdict_json

pytestmark = pytest.mark.django_db


class BaseBusTest:
    @pytest.fixture(autouse=True)
    def _eager(self, settings, monkeypatch):
        # 브로커 없이 즉시 실행
        settings.CELERY_TASK_ALWAYS_EAGER = True
        cache.clear()
        self.fake = FakeClassifier(text=lambda text: REJECT_HIGH if "nasty" in text else verdict_json(), delays={"audio": 0.5})
        pipeline = ModerationPipeline(adapter=ClassifierAdapter(self.fake, timeout=0.05, fail_closed_types=("video", "audio")), broadcaster=ModerationBroadcaster())
        monkeypatch.setattr("moderation.tasks.get_pipeline", lambda: pipeline)
        yield
        cache.clear()

    @pytest.fixture
    def author(self):
        return get_user_model().objects.create()


class TestPostCreated(BaseBusTest):
    def test_rejects_nasty_post(self, author):
        post_id = str(uuid.uuid4())
        res = BusConsumer.on_post_created({"type": "PostCreated", "payload": {"post_id": post_id, "author_id": str(author.id), "content": "nasty text"}})
        assert res.get()["decision"] == "rejected"

        result = ModerationResult.objects.get(content_id=post_id, is_authoritative=True)
        assert result.content_type == "text"
        assert "harassment" in result.categories

    def test_allows_clean_post(self, author):
        post_id = str(uuid.uuid4())
        BusConsumer.on_post_created({"type": "PostCreated", "payload": {"post_id": post_id, "author_id": str(author.id), "content": "hello world, nice day!"}})
        assert ModerationResult.objects.get(content_id=post_id).decision == "approved"

    def test_empty_post_is_skipped(self, author):
        assert BusConsumer.on_post_created({"type": "PostCreated", "payload": {"post_id": str(uuid.uuid4()), "author_id": str(author.id), "content": "  "}}) is None
        assert ModerationResult.objects.count() == 0
        assert self.fake.calls["text"] == 0

    def test_unknown_author(self):
        res = BusConsumer.on_post_created({"type": "PostCreated", "payload": {"post_id": str(uuid.uuid4()), "author_id": str(uuid.uuid4()), "content": "hi"}})
        assert res.get() is None
        assert ModerationResult.objects.count() == 0


class TestCommentCreated(BaseBusTest):
    def test_comment(self, author):
        comment_id = str(uuid.uuid4())
        BusConsumer.on_comment_created({"type": "CommentCreated", "payload": {"comment_id": comment_id, "author_id": str(author.id), "content": "nasty reply"}})
        assert ModerationResult.objects.get(content_id=comment_id).decision == "rejected"


class TestMediaUploaded(BaseBusTest):
    def test_audio_failure_is_queued(self, author):
        media_id = str(uuid.uuid4())
        BusConsumer.on_media_uploaded(
            {
                "type": "MediaUploaded",
                "payload": {"media_id": media_id, "author_id": str(author.id), "media_type": "audio", "url": "https://cdn.example.com/a.mp3", "transcript": "hey"},
            }
        )
        assert ModerationResult.objects.get(content_id=media_id).decision == "pending_review"
        assert QueueItem.objects.filter(content_id=media_id, reviewed=False).exists()

    def test_roasting_context_is_forwarded(self, author):
        media_id = str(uuid.uuid4())
        BusConsumer.on_media_uploaded(
            {
                "type": "MediaUploaded",
                "payload": {
                    "media_id": media_id,
                    "author_id": str(author.id),
                    "media_type": "video",
                    "url": "https://cdn.example.com/v.mp4",
                    "transcript": "you dance like a penguin on roller skates",
                    "is_roasting": True,
                    "is_mutual": True,
                    "targeted_users": ["friend-1"],
                },
            }
        )
        result = ModerationResult.objects.get(content_id=media_id)
        assert result.decision == "approved"
        assert result.context_aware is True

    def test_unsupported_media_is_ignored(self, author):
        assert BusConsumer.on_media_uploaded({"type": "MediaUploaded", "payload": {"media_id": str(uuid.uuid4()), "author_id": str(author.id), "media_type": "gif", "url": "x"}}) is None


class TestTask:
    def test_direct_call(self, settings, monkeypatch):
        fake = FakeClassifier()
        pipeline = ModerationPipeline(adapter=ClassifierAdapter(fake, timeout=0.05), broadcaster=ModerationBroadcaster())
        monkeypatch.setattr("moderation.tasks.get_pipeline", lambda: pipeline)
        author = get_user_model().objects.create()

        out = submit_content(str(uuid.uuid4()), str(author.id), "text", {"text": "hello"})
        assert out["decision"] == "approved"
