"""Shared fakes for the relay tests."""
import pytest

from feedback_triage.correlation import CorrelationStore, DedupSet
from feedback_triage.triager import (
    DeferredFollowupVerdict,
    DirectCommandVerdict,
    NewMessageVerdict,
    OrphanThreadVerdict,
)

CHANNEL = "C0FEEDBACK"
BOT_USER = "UBOT"
START = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSlack:
    """Stands in for SlackClient."""

    def __init__(self, threads=None, history_pages=None, unreadable=()):
        self.threads = threads or {}
        self.history_pages = list(history_pages or [])
        self.unreadable = set(unreadable)
        self.reactions = []
        self.thread_requests = []
        self.history_requests = []

    async def fetch_thread(self, channel, thread_ts, limit=20):
        self.thread_requests.append((channel, thread_ts, limit))
        return list(self.threads.get(thread_ts, []))[:limit]

    async def try_fetch_thread(self, channel, thread_ts, limit=30):
        if channel in self.unreadable:
            return [], "channel_not_found"
        return await self.fetch_thread(channel, thread_ts, limit), None

    async def fetch_history_page(self, channel, oldest, cursor=None, limit=100):
        self.history_requests.append({"channel": channel, "oldest": oldest, "cursor": cursor})
        if not self.history_pages:
            return [], None
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(self.history_pages) else None
        return list(self.history_pages[index]), next_cursor

    async def add_reaction(self, channel, ts, name):
        self.reactions.append((channel, ts, name))
        return True


class FakeTriager:
    """Records every call and answers with preset verdicts."""

    def __init__(self):
        self.calls = []
        self.new_message_verdict = NewMessageVerdict(action="skipped", message="SKIPPED")
        self.orphan_verdict = OrphanThreadVerdict(action="skipped")
        self.deferred_verdict = DeferredFollowupVerdict(action="no_action")
        self.command_verdict = DirectCommandVerdict(action="executed", message="done")
        self.error = None

    def _record(self, name, request):
        self.calls.append((name, request))
        if self.error:
            raise self.error

    async def triage_message(self, request):
        self._record("triage_message", request)
        return self.new_message_verdict

    async def handle_thread_reply(self, request):
        self._record("handle_thread_reply", request)

    async def triage_orphan_thread(self, request):
        self._record("triage_orphan_thread", request)
        return self.orphan_verdict

    async def handle_deferred_followup(self, request):
        self._record("handle_deferred_followup", request)
        return self.deferred_verdict

    async def handle_direct_command(self, request):
        self._record("handle_direct_command", request)
        return self.command_verdict

    async def handle_message_edit(self, request):
        self._record("handle_message_edit", request)

    async def handle_message_delete(self, request):
        self._record("handle_message_delete", request)

    def names(self):
        return [name for name, _ in self.calls]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return CorrelationStore(ttl_seconds=24 * 60 * 60, clock=clock)


@pytest.fixture
def dedup():
    return DedupSet(max_entries=1000, trim_entries=500)


@pytest.fixture
def slack():
    return FakeSlack()


@pytest.fixture
def triager():
    return FakeTriager()
