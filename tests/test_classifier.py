import pytest

from feedback_triage.classifier import EventClassifier
from feedback_triage.correlation import ThreadOutcome
from feedback_triage.events import MessageEvent, parse_event
from feedback_triage.queue.models import Category

from conftest import BOT_USER, CHANNEL

ROOT = "1700000000.000100"
REPLY = "1700000050.000200"


@pytest.fixture
def classifier(store, dedup):
    return EventClassifier(BOT_USER, store, dedup)


def reply(user="U1", text="Still broken on Safari", **overrides):
    raw = {"ts": REPLY, "thread_ts": ROOT, "channel": CHANNEL, "user": user, "text": text}
    raw.update(overrides)
    return MessageEvent.from_dict(raw)


def track(store, clock, **kwargs):
    fields = dict(ticket_id="id-42", ticket_identifier="ENG-42", created_at=clock(), original_reporter_id="U1")
    fields.update(kwargs)
    store.put_thread(ROOT, ThreadOutcome(**fields))


class TestReplies:

    def test_deferred_thread_gives_followup(self, classifier, store, clock):
        track(store, clock, ticket_id="", ticket_identifier="", is_deferred=True, original_context="Roadmap?")
        item = classifier.classify(reply())
        assert item.category is Category.DEFERRED_FOLLOWUP
        assert item.payload.original_context == "Roadmap?"

    def test_tracked_thread_gives_thread_reply(self, classifier, store, clock):
        track(store, clock, is_duplicate=True)
        item = classifier.classify(reply())
        assert item.category is Category.THREAD_REPLY
        assert item.payload.ticket_identifier == "ENG-42"
        assert item.payload.ticket_id == "id-42"
        assert item.payload.is_duplicate is True
        assert item.payload.is_same_reporter is True

    def test_different_replier(self, classifier, store, clock):
        track(store, clock)
        assert classifier.classify(reply(user="U2")).payload.is_same_reporter is False

    def test_untracked_thread_gives_orphan(self, classifier):
        item = classifier.classify(reply())
        assert item.category is Category.ORPHAN_THREAD
        assert item.payload.thread_ts == ROOT
        assert item.payload.message_ts == REPLY

    def test_expired_thread_is_orphan(self, classifier, store, clock):
        track(store, clock)
        clock.advance(25 * 60 * 60)
        assert classifier.classify(reply()).category is Category.ORPHAN_THREAD


class TestDirectCommands:

    def test_mention_in_tracked_thread_carries_ticket_hint(self, classifier, store, clock):
        track(store, clock)
        item = classifier.classify(reply(text=f"<@{BOT_USER}> close this"))
        assert item.category is Category.DIRECT_COMMAND
        assert item.payload.ticket_context == "ENG-42"
        assert item.payload.thread_ts == ROOT

    def test_mention_at_top_level(self, classifier, dedup):
        event = MessageEvent.from_dict({"ts": ROOT, "channel": CHANNEL, "user": "U1", "text": f"hey <@{BOT_USER}>"})
        item = classifier.classify(event)
        assert item.category is Category.DIRECT_COMMAND
        assert item.payload.ticket_context is None
        assert item.payload.thread_ts == ROOT
        assert ROOT not in dedup

    def test_mention_in_deferred_thread_has_no_hint(self, classifier, store, clock):
        track(store, clock, ticket_id="", ticket_identifier="", is_deferred=True)
        item = classifier.classify(reply(text=f"<@{BOT_USER}> file it"))
        assert item.payload.ticket_context is None


class TestTopLevel:

    def test_new_message_is_deduplicated(self, classifier, dedup):
        event = MessageEvent.from_dict({"ts": ROOT, "channel": CHANNEL, "user": "U1", "text": "Export is slow"})
        first = classifier.classify(event)
        assert first.category is Category.NEW
        assert first.payload.text == "Export is slow"
        assert ROOT in dedup
        assert classifier.classify(event) is None


class TestEditsAndDeletes:

    def test_edit_maps_to_message_edited(self, classifier, store, clock):
        # Thread state must not influence edits
        track(store, clock)
        event = parse_event({
            "subtype": "message_changed",
            "channel": CHANNEL,
            "message": {"ts": ROOT, "user": "U1", "text": f"<@{BOT_USER}> Login fails", "thread_ts": ROOT},
            "previous_message": {"ts": ROOT, "text": "Login fails  "},
        })
        item = classifier.classify(event)
        assert item.category is Category.MESSAGE_EDITED
        assert item.payload.previous_text == "Login fails  "
        assert item.payload.message_ts == ROOT

    def test_delete_maps_to_message_deleted(self, classifier):
        event = parse_event({
            "subtype": "message_deleted",
            "channel": CHANNEL,
            "deleted_ts": ROOT,
            "previous_message": {"ts": ROOT, "thread_ts": ROOT},
        })
        item = classifier.classify(event)
        assert item.category is Category.MESSAGE_DELETED
        assert item.payload.thread_ts == ROOT
