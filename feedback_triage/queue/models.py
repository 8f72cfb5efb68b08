"""Queue data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union

from feedback_triage.events import Attachment, SlackFile


class Category(str, Enum):
    """Handling category of a queued item."""

    NEW = "new"
    THREAD_REPLY = "thread_reply"
    ORPHAN_THREAD = "orphan_thread"
    DEFERRED_FOLLOWUP = "deferred_followup"
    DIRECT_COMMAND = "direct_command"
    MESSAGE_EDITED = "message_edited"
    MESSAGE_DELETED = "message_deleted"


@dataclass(frozen=True)
class NewMessage:
    """A top-level message to triage."""

    text: str
    user: str
    ts: str
    channel: str
    files: Tuple[SlackFile, ...] = ()
    attachments: Tuple[Attachment, ...] = ()


@dataclass(frozen=True)
class ThreadReply:
    """A reply in a thread already tracked to a ticket."""

    reply_text: str
    user: str
    channel: str
    thread_ts: str
    message_ts: str
    ticket_id: str
    ticket_identifier: str
    is_duplicate: bool
    is_same_reporter: bool
    files: Tuple[SlackFile, ...] = ()


@dataclass(frozen=True)
class OrphanThread:
    """A reply in a thread with no known ticket."""

    reply_text: str
    user: str
    channel: str
    thread_ts: str
    message_ts: str
    files: Tuple[SlackFile, ...] = ()


@dataclass(frozen=True)
class DeferredFollowup:
    """A reply in a thread where ticket creation was deferred."""

    reply_text: str
    user: str
    channel: str
    thread_ts: str
    message_ts: str
    original_context: Optional[str] = None
    files: Tuple[SlackFile, ...] = ()


@dataclass(frozen=True)
class DirectCommand:
    """A message that @-mentions the bot."""

    command_text: str
    user: str
    channel: str
    thread_ts: str
    message_ts: str
    ticket_context: Optional[str] = None
    files: Tuple[SlackFile, ...] = ()


@dataclass(frozen=True)
class MessageEdited:
    message_ts: str
    new_text: str
    previous_text: str
    user: str
    channel: str


@dataclass(frozen=True)
class MessageDeleted:
    message_ts: str
    channel: str
    thread_ts: Optional[str] = None


Payload = Union[
    NewMessage, ThreadReply, OrphanThread, DeferredFollowup,
    DirectCommand, MessageEdited, MessageDeleted,
]

PAYLOAD_CATEGORIES = {
    NewMessage: Category.NEW,
    ThreadReply: Category.THREAD_REPLY,
    OrphanThread: Category.ORPHAN_THREAD,
    DeferredFollowup: Category.DEFERRED_FOLLOWUP,
    DirectCommand: Category.DIRECT_COMMAND,
    MessageEdited: Category.MESSAGE_EDITED,
    MessageDeleted: Category.MESSAGE_DELETED,
}


@dataclass(frozen=True)
class WorkItem:
    """Represents an item in the processing queue."""

    category: Category
    payload: Payload

    def __post_init__(self):
        expected = PAYLOAD_CATEGORIES.get(type(self.payload))
        if expected is not self.category:
            raise ValueError(f"Payload {type(self.payload).__name__} does not match category {self.category.value}")

    @classmethod
    def create(cls, payload: Payload) -> "WorkItem":
        """Factory method to create a WorkItem tagged from its payload type."""
        return cls(category=PAYLOAD_CATEGORIES[type(payload)], payload=payload)

    @property
    def key(self) -> str:
        """Timestamp identifying the item in logs."""
        payload = self.payload
        if isinstance(payload, NewMessage):
            return payload.ts
        return payload.message_ts
