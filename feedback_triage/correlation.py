"""In-memory correlation between Slack threads/messages and Linear tickets."""
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from feedback_triage import settings
from feedback_triage.logging_conf import logger

MESSAGE_ACTIONS = ("created", "duplicate", "skipped", "deferred", "error")
TRIAGED_ACTIONS = ("created", "duplicate")


@dataclass
class ThreadOutcome:
    """Ticket owning a thread. Deferred threads have no ticket until upgraded."""

    ticket_id: str
    ticket_identifier: str
    created_at: float
    is_duplicate: bool = False
    is_deferred: bool = False
    original_context: Optional[str] = None
    original_reporter_id: Optional[str] = None

    def __post_init__(self):
        if self.is_deferred and self.ticket_id:
            raise ValueError("A deferred thread cannot already own a ticket")


@dataclass(frozen=True)
class MessageOutcome:
    """Triage result for one top-level message."""

    ticket_id: str
    ticket_identifier: str
    created_at: float
    action: str
    ticket_url: Optional[str] = None
    was_triaged: bool = False

    def __post_init__(self):
        if self.action not in MESSAGE_ACTIONS:
            raise ValueError(f"Unknown message action: {self.action}")

    @classmethod
    def from_action(cls, action: str, created_at: float, ticket_id: Optional[str] = None,
                    ticket_identifier: Optional[str] = None, ticket_url: Optional[str] = None):
        """Factory method that derives `was_triaged` from the action."""
        return cls(
            ticket_id=ticket_id or "",
            ticket_identifier=ticket_identifier or "",
            created_at=created_at,
            action=action,
            ticket_url=ticket_url,
            was_triaged=action in TRIAGED_ACTIONS,
        )


class CorrelationStore:
    """Two TTL-bounded tables: thread_ts -> ThreadOutcome, message_ts -> MessageOutcome."""

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.time):
        if ttl_seconds is None:
            ttl_seconds = settings.OUTCOME_TTL_HOURS * 60 * 60
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._threads: Dict[str, ThreadOutcome] = {}
        self._messages: Dict[str, MessageOutcome] = {}

    def now(self) -> float:
        return self.clock()

    def _is_expired(self, created_at: float, now: float) -> bool:
        return now - created_at > self.ttl_seconds

    # Threads

    def put_thread(self, thread_ts: str, outcome: ThreadOutcome) -> None:
        self._threads[thread_ts] = outcome

    def get_thread(self, thread_ts: Optional[str]) -> Optional[ThreadOutcome]:
        if not thread_ts:
            return None
        outcome = self._threads.get(thread_ts)
        if outcome and self._is_expired(outcome.created_at, self.now()):
            del self._threads[thread_ts]
            return None
        return outcome

    def delete_thread(self, thread_ts: str) -> bool:
        return self._threads.pop(thread_ts, None) is not None

    def upgrade_deferred(self, thread_ts: str, ticket_id: str, ticket_identifier: Optional[str] = None) -> bool:
        """Attach a ticket to a deferred thread in place. Returns False if untracked."""
        outcome = self.get_thread(thread_ts)
        if outcome is None:
            return False
        outcome.ticket_id = ticket_id
        outcome.ticket_identifier = ticket_identifier or ticket_id
        outcome.is_deferred = False
        return True

    # Messages

    def put_message(self, message_ts: str, outcome: MessageOutcome) -> None:
        self._messages[message_ts] = outcome

    def get_message(self, message_ts: Optional[str]) -> Optional[MessageOutcome]:
        if not message_ts:
            return None
        outcome = self._messages.get(message_ts)
        if outcome and self._is_expired(outcome.created_at, self.now()):
            del self._messages[message_ts]
            return None
        return outcome

    def delete_message(self, message_ts: str) -> bool:
        return self._messages.pop(message_ts, None) is not None

    # Housekeeping

    def sweep(self) -> int:
        """Drop expired entries from both tables. Returns count removed."""
        now = self.now()
        removed = 0
        for table in (self._threads, self._messages):
            expired = [key for key, outcome in table.items() if self._is_expired(outcome.created_at, now)]
            for key in expired:
                del table[key]
            removed += len(expired)
        if removed:
            logger.debug(f"Swept {removed} expired correlation entries")
        return removed

    def thread_count(self) -> int:
        return len(self._threads)

    def message_count(self) -> int:
        return len(self._messages)


class DedupSet:
    """Insertion-ordered set of queued message timestamps with bulk eviction."""

    def __init__(self, max_entries: Optional[int] = None, trim_entries: Optional[int] = None):
        self.max_entries = max_entries if max_entries is not None else settings.DEDUP_MAX_ENTRIES
        self.trim_entries = trim_entries if trim_entries is not None else settings.DEDUP_TRIM_ENTRIES
        self._entries: "OrderedDict[str, None]" = OrderedDict()

    def __contains__(self, ts: str) -> bool:
        return ts in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, ts: str) -> bool:
        """Add a timestamp. Returns False if it was already present."""
        if ts in self._entries:
            return False
        self._entries[ts] = None
        if len(self._entries) > self.max_entries:
            # Evict the oldest insertions first
            for _ in range(min(self.trim_entries, len(self._entries))):
                self._entries.popitem(last=False)
        return True
