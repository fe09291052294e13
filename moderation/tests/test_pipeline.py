import uuid

import pytest
from asgiref.sync import sync_to_async
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from moderation import ledger
from moderation.adapter import FAIL_CLOSED_NOTE, ClassifierAdapter
from moderation.broadcast import ITEM_ENQUEUED, ITEM_RESOLVED, ModerationBroadcaster
from moderation.exceptions import AlreadyReviewed, NotAppealable, StaleQueueItem
from moderation.models import Appeal, ModerationResult, QueueItem
from moderation.services import ModerationPipeline
from moderation.tests.fakes import REJECT_HIGH, FakeClassifier, verdict_json

pytestmark = pytest.mark.django_db


@pytest.fixture(autouse=True)
def _clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def author():
    return get_user_model().objects.create()


@pytest.fixture
def moderator():
    return get_user_model().objects.create_moderator()


@pytest.fixture
def events():
    return []


def make_pipeline(fake, events=None, **adapter_kwargs):
    adapter_kwargs.setdefault("timeout", 0.05)
    adapter_kwargs.setdefault("fail_closed_types", ("video", "audio"))
    broadcaster = ModerationBroadcaster()
    if events is not None:
        broadcaster.subscribe(events.append)
    return ModerationPipeline(adapter=ClassifierAdapter(fake, **adapter_kwargs), broadcaster=broadcaster)


def submit_text(pipeline, author, text, content_id=None):
    return pipeline.submit(content_id=content_id or uuid.uuid4(), author=author, content_type="text", payload={"text": text})


def submit_video(pipeline, author, content_id=None, **payload):
    payload.setdefault("url", "https://cdn.example.com/v.mp4")
    return pipeline.submit(content_id=content_id or uuid.uuid4(), author=author, content_type="video", payload=payload)


class TestSubmit:
    def test_text_timeout_is_approved_by_rules(self, author):
        pipeline = make_pipeline(FakeClassifier(delays={"text": 0.5}))
        result = submit_text(pipeline, author, "what a nice day")
        assert result.decision == "approved"
        assert result.classifier_id == "lexical-fallback"
        assert result.notes == "fallback-rule-based"
        assert result.is_authoritative is True
        assert QueueItem.objects.count() == 0

    def test_unexpected_classifier_error_uses_lexical_fallback(self, author):
        pipeline = make_pipeline(FakeClassifier(text=RuntimeError("backend bug")))
        result = submit_text(pipeline, author, "what a nice day")
        assert result.decision == "approved"
        assert result.classifier_id == "lexical-fallback"

    def test_text_timeout_with_insult_is_reviewed(self, author):
        pipeline = make_pipeline(FakeClassifier(delays={"text": 0.5}))
        result = submit_text(pipeline, author, "you are such an id10t")
        assert result.decision == "pending_review"
        assert QueueItem.objects.filter(content_id=result.content_id, reviewed=False).count() == 1

    def test_video_timeout_is_queued(self, author, events):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}), events)
        result = submit_video(pipeline, author)
        assert result.decision == "pending_review"
        assert result.is_approved is False
        assert result.notes == FAIL_CLOSED_NOTE

        queued = QueueItem.objects.get(content_id=result.content_id)
        assert queued.reviewed is False
        assert queued.content_type == "video"
        assert queued.moderation_id == result.id
        assert [e["event"] for e in events] == [ITEM_ENQUEUED]
        assert events[0]["content_type"] == "video"
        assert events[0]["data"]["content_id"] == str(result.content_id)

    def test_thumbnail_rejection(self, author):
        fake = FakeClassifier(image=verdict_json(False, "high", ["sexual"], 0.95, containsNudity=True))
        result = submit_video(make_pipeline(fake), author, thumbnail_url="https://cdn.example.com/t.jpg")
        assert result.decision == "rejected"
        assert "thumbnail-based" in result.notes
        assert fake.calls["video"] == 0

    def test_roasting_video_is_approved(self, author):
        pipeline = make_pipeline(FakeClassifier(video=verdict_json(confidence=0.9)))
        result = pipeline.submit(
            content_id=uuid.uuid4(),
            author=author,
            content_type="video",
            payload={"url": "https://cdn.example.com/v.mp4", "transcript": "you dance like a penguin on roller skates"},
            declared_context={"is_roasting": True, "is_mutual": True, "targeted_users": ["friend-1"]},
        )
        assert result.decision == "approved"
        assert result.context_aware is True
        assert "roasting" in result.categories

    def test_payload_is_validated(self, author):
        pipeline = make_pipeline(FakeClassifier())
        with pytest.raises(ValidationError):
            pipeline.submit(content_id=uuid.uuid4(), author=author, content_type="text", payload={"text": "   "})
        with pytest.raises(ValidationError):
            pipeline.submit(content_id=uuid.uuid4(), author=author, content_type="image", payload={})

    def test_other_author_cannot_overwrite(self, author):
        pipeline = make_pipeline(FakeClassifier())
        result = submit_text(pipeline, author, "hello")
        intruder = get_user_model().objects.create()
        with pytest.raises(PermissionDenied):
            submit_text(pipeline, intruder, "hijacked", content_id=result.content_id)


class TestIdempotence:
    def test_same_payload_is_not_reclassified(self, author):
        fake = FakeClassifier()
        pipeline = make_pipeline(fake)
        content_id = uuid.uuid4()
        first = submit_text(pipeline, author, "hello there", content_id)
        second = submit_text(pipeline, author, "hello there", content_id)
        assert first.id == second.id
        assert fake.calls["text"] == 1
        assert ModerationResult.objects.filter(content_id=content_id, is_authoritative=True).count() == 1

    def test_edited_payload_supersedes(self, author):
        fake = FakeClassifier(text=lambda text: REJECT_HIGH if "idiot" in text else verdict_json())
        pipeline = make_pipeline(fake)
        content_id = uuid.uuid4()
        first = submit_text(pipeline, author, "hello there", content_id)
        second = submit_text(pipeline, author, "hello there idiot", content_id)
        assert second.revision == first.revision + 1
        assert second.decision == "rejected"

        first.refresh_from_db()
        assert first.is_authoritative is False
        assert ModerationResult.objects.filter(content_id=content_id).count() == 2
        assert ModerationResult.objects.filter(content_id=content_id, is_authoritative=True).get().id == second.id

    def test_resubmitting_pending_content_repoints_queue_item(self, author, moderator, events):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}), events)
        content_id = uuid.uuid4()
        first = submit_video(pipeline, author, content_id)
        second = submit_video(pipeline, author, content_id, url="https://cdn.example.com/v2.mp4")
        assert second.decision == "pending_review"

        queued = QueueItem.objects.get(content_id=content_id, reviewed=False)
        assert queued.moderation_id == second.id
        assert QueueItem.objects.filter(content_id=content_id).count() == 1
        assert [e["event"] for e in events] == [ITEM_ENQUEUED, ITEM_ENQUEUED]
        assert events[1]["data"]["moderation_id"] == str(second.id)

        first.refresh_from_db()
        assert first.is_authoritative is False
        result = pipeline.resolve(content_id, "rejected", reviewer=moderator)
        assert result.revision == second.revision

    def test_approved_edit_closes_stale_queue_item(self, author, moderator, events):
        fake = FakeClassifier(delays={"video": 0.5})
        pipeline = make_pipeline(fake, events)
        content_id = uuid.uuid4()
        submit_video(pipeline, author, content_id)
        fake.delays = {}
        approved = submit_video(pipeline, author, content_id, url="https://cdn.example.com/v2.mp4")
        assert approved.decision == "approved"

        assert pipeline.list_queue("video") == []
        closed = QueueItem.objects.get(content_id=content_id)
        assert closed.reviewed is True
        assert closed.review_result is None
        assert closed.review_notes == f"Superseded by revision {approved.revision}"
        assert [e["event"] for e in events] == [ITEM_ENQUEUED, ITEM_RESOLVED]

        with pytest.raises(AlreadyReviewed):
            pipeline.resolve(content_id, "rejected", reviewer=moderator)
        approved.refresh_from_db()
        assert approved.is_authoritative is True
        assert approved.decision == "approved"

    def test_resolve_refuses_item_for_another_result(self, author, moderator):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}))
        pending = submit_video(pipeline, author)
        # 큐 항목이 가리키는 결과가 더 이상 pending 이 아닌 상태
        ModerationResult.objects.filter(pk=pending.pk).update(decision="approved", is_approved=True)

        with pytest.raises(StaleQueueItem):
            pipeline.resolve(pending.content_id, "rejected", reviewer=moderator)
        assert QueueItem.objects.get(content_id=pending.content_id).reviewed is False
        assert ModerationResult.objects.filter(content_id=pending.content_id).count() == 1

    def test_concurrent_same_payload_returns_recorded_result(self, author):
        content_id = uuid.uuid4()
        inner = []

        async def classify_with_concurrent_submit(text):
            if not inner:
                inner.append(None)
                inner[0] = await sync_to_async(submit_text)(pipeline, author, "hello there", content_id)
            return verdict_json()

        fake = FakeClassifier(text=classify_with_concurrent_submit)
        pipeline = make_pipeline(fake, timeout=5)
        outer = submit_text(pipeline, author, "hello there", content_id)

        assert fake.calls["text"] == 2
        assert outer.id == inner[0].id
        assert ModerationResult.objects.filter(content_id=content_id).count() == 1

    def test_result_for_outdated_revision_is_not_authoritative(self, author):
        content_id = uuid.uuid4()

        async def classify_while_edited(text):
            if text == "hello there":
                await sync_to_async(ledger.register_content)(content_id=content_id, author=author, content_type="text", payload={"text": "hello there, edited"})
            return verdict_json()

        fake = FakeClassifier(text=classify_while_edited)
        pipeline = make_pipeline(fake, timeout=5)
        outdated = submit_text(pipeline, author, "hello there", content_id)

        assert outdated.revision == 1
        assert outdated.is_authoritative is False
        assert ledger.authoritative_result(content_id) is None

        current = submit_text(pipeline, author, "hello there, edited", content_id)
        assert current.revision == 2
        assert current.is_authoritative is True
        assert fake.calls["text"] == 2


class TestAppealable:
    @pytest.mark.parametrize("severity, appealable", [("critical", False), ("high", True), ("none", True)])
    def test_appealable_follows_severity(self, author, severity, appealable):
        fake = FakeClassifier(text=verdict_json(severity == "none", severity, ["hate_speech"] if severity != "none" else ["safe"], 0.9))
        result = submit_text(make_pipeline(fake), author, "some text")
        assert result.severity == severity
        assert result.appealable is appealable


class TestReviewQueue:
    def test_resolve_replaces_pending_result(self, author, moderator, events):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}), events)
        pending = submit_video(pipeline, author)

        result = pipeline.resolve(pending.content_id, "age_restricted", "mature but fine", reviewer=moderator)
        assert result.decision == "age_restricted"
        assert result.is_approved is True
        assert result.classifier_id == "human-review"
        assert result.confidence == 1.0
        assert result.is_authoritative is True

        pending.refresh_from_db()
        assert pending.is_authoritative is False
        queued = QueueItem.objects.get(content_id=pending.content_id)
        assert queued.reviewed is True
        assert queued.review_result == "age_restricted"
        assert queued.reviewed_by_id == moderator.id
        assert [e["event"] for e in events] == [ITEM_ENQUEUED, ITEM_RESOLVED]
        assert events[1]["data"]["resolution_id"] == str(result.id)

    def test_second_resolve_is_rejected_without_changes(self, author, moderator):
        pipeline = make_pipeline(FakeClassifier(delays={"audio": 0.5}))
        pending = pipeline.submit(content_id=uuid.uuid4(), author=author, content_type="audio", payload={"url": "https://cdn.example.com/a.mp3"})
        pipeline.resolve(pending.content_id, "approved", reviewer=moderator)
        before = ModerationResult.objects.filter(content_id=pending.content_id).count()

        with pytest.raises(AlreadyReviewed):
            pipeline.resolve(pending.content_id, "rejected", reviewer=moderator)

        assert ModerationResult.objects.filter(content_id=pending.content_id).count() == before
        assert QueueItem.objects.get(content_id=pending.content_id).review_result == "approved"

    def test_resolve_unknown_content(self, moderator):
        pipeline = make_pipeline(FakeClassifier())
        with pytest.raises(NotFound):
            pipeline.resolve(uuid.uuid4(), "approved", reviewer=moderator)

    def test_resolve_invalid_decision(self, author, moderator):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}))
        pending = submit_video(pipeline, author)
        with pytest.raises(ValidationError):
            pipeline.resolve(pending.content_id, "pending_review", reviewer=moderator)

    def test_list_and_counts(self, author):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5, "audio": 0.5}))
        first = submit_video(pipeline, author)
        second = submit_video(pipeline, author)
        pipeline.submit(content_id=uuid.uuid4(), author=author, content_type="audio", payload={"url": "https://cdn.example.com/a.mp3"})

        assert [q.content_id for q in pipeline.list_queue("video")] == [first.content_id, second.content_id]
        assert pipeline.pending_counts() == {"text": 0, "image": 0, "video": 2, "audio": 1}
        with pytest.raises(ValidationError):
            pipeline.list_queue("gif")


class TestAppeals:
    def test_file_appeal(self, author):
        pipeline = make_pipeline(FakeClassifier(text=REJECT_HIGH))
        result = submit_text(pipeline, author, "text")
        appeal = pipeline.file_appeal(result.id, author.id, "It was a joke between friends")
        assert appeal.status == "pending"
        assert appeal.content_id == result.content_id

        with pytest.raises(ValidationError):
            pipeline.file_appeal(result.id, author.id, "again")
        assert Appeal.objects.count() == 1

    def test_critical_is_not_appealable(self, author):
        pipeline = make_pipeline(FakeClassifier(text=verdict_json(False, "critical", ["hate_speech"], 0.99)))
        result = submit_text(pipeline, author, "text")
        with pytest.raises(NotAppealable):
            pipeline.file_appeal(result.id, author.id, "please")
        assert Appeal.objects.count() == 0

    def test_only_author_can_appeal(self, author):
        pipeline = make_pipeline(FakeClassifier(text=REJECT_HIGH))
        result = submit_text(pipeline, author, "text")
        with pytest.raises(PermissionDenied):
            pipeline.file_appeal(result.id, uuid.uuid4(), "not mine")

    def test_unknown_result(self, author):
        with pytest.raises(NotFound):
            make_pipeline(FakeClassifier()).file_appeal(uuid.uuid4(), author.id, "why")

    def test_blank_reason(self, author):
        pipeline = make_pipeline(FakeClassifier(text=REJECT_HIGH))
        result = submit_text(pipeline, author, "text")
        with pytest.raises(ValidationError):
            pipeline.file_appeal(result.id, author.id, "   ")


class TestSafetyMetrics:
    def test_unknown_user_has_zero_state(self):
        metrics = make_pipeline(FakeClassifier()).get_safety_metrics(uuid.uuid4())
        assert metrics.total_items == 0
        assert metrics.flagged_items == 0
        assert metrics.safety_score == 100
        assert metrics.level == "green"
        assert metrics.trend == []

    def test_metrics_accumulate(self, author):
        fake = FakeClassifier(text=lambda text: REJECT_HIGH if "idiot" in text else verdict_json())
        pipeline = make_pipeline(fake)
        submit_text(pipeline, author, "you idiot")
        submit_text(pipeline, author, "lovely weather")

        metrics = pipeline.get_safety_metrics(author.id)
        assert metrics.total_items == 2
        assert metrics.flagged_items == 1
        assert metrics.category_counts == {"harassment": 1}
        assert metrics.safety_score == 35
        assert metrics.level == "red"
        assert metrics.trend == [35, 35]

    def test_resubmission_does_not_count_twice(self, author):
        pipeline = make_pipeline(FakeClassifier())
        content_id = uuid.uuid4()
        submit_text(pipeline, author, "hello", content_id)
        submit_text(pipeline, author, "hello", content_id)
        assert pipeline.get_safety_metrics(author.id).total_items == 1

    def test_review_adjusts_flagged_only(self, author, moderator):
        pipeline = make_pipeline(FakeClassifier(delays={"video": 0.5}))
        pending = submit_video(pipeline, author)
        metrics = pipeline.get_safety_metrics(author.id)
        assert (metrics.total_items, metrics.flagged_items, metrics.level) == (1, 1, "yellow")

        pipeline.resolve(pending.content_id, "approved", reviewer=moderator)
        metrics = pipeline.get_safety_metrics(author.id)
        assert (metrics.total_items, metrics.flagged_items, metrics.level) == (1, 0, "green")


class TestSummary:
    def test_summary_hides_scores(self, author):
        pipeline = make_pipeline(FakeClassifier(text=REJECT_HIGH))
        result = submit_text(pipeline, author, "text")
        summary = pipeline.get_summary(result.content_id)
        assert summary["moderation_level"] == "Sensitive"
        assert summary["categories"] == ["Harassment"]
        assert "overall_score" not in summary
        assert "confidence" not in summary

    def test_summary_unknown(self):
        with pytest.raises(NotFound):
            make_pipeline(FakeClassifier()).get_summary(uuid.uuid4())


class TestBroadcaster:
    def test_unsubscribe(self):
        broadcaster = ModerationBroadcaster()
        seen = []
        unsubscribe = broadcaster.subscribe(seen.append)
        broadcaster.publish(ITEM_ENQUEUED, "text", {"n": 1})
        unsubscribe()
        broadcaster.publish(ITEM_ENQUEUED, "text", {"n": 2})
        assert seen == [{"event": ITEM_ENQUEUED, "content_type": "text", "data": {"n": 1}}]

    def test_failing_subscriber_does_not_block_others(self):
        broadcaster = ModerationBroadcaster()
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        broadcaster.subscribe(broken)
        broadcaster.subscribe(seen.append)
        broadcaster.publish(ITEM_RESOLVED, "image", {})
        assert len(seen) == 1
