"""Inbound Slack event models."""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class SlackFile:
    """A file shared alongside a message."""

    id: str
    name: str
    mimetype: str
    url_private: str
    permalink: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "SlackFile":
        return cls(
            id=raw.get("id", ""),
            name=raw.get("name") or raw.get("title") or "file",
            mimetype=raw.get("mimetype") or "",
            url_private=raw.get("url_private", ""),
            permalink=raw.get("permalink"),
        )

    @property
    def is_image(self) -> bool:
        return self.mimetype.startswith("image/")


@dataclass(frozen=True)
class Attachment:
    """A message attachment; forwarded messages arrive as one of these."""

    text: Optional[str] = None
    author_name: Optional[str] = None
    author_id: Optional[str] = None
    from_url: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Attachment":
        return cls(
            text=raw.get("text"),
            author_name=raw.get("author_name"),
            author_id=raw.get("author_id"),
            from_url=raw.get("from_url"),
        )


@dataclass(frozen=True)
class MessageEvent:
    """A posted message: top-level, thread reply, or history entry."""

    ts: Optional[str]
    channel: Optional[str]
    user: Optional[str] = None
    text: Optional[str] = None
    thread_ts: Optional[str] = None
    subtype: Optional[str] = None
    bot_id: Optional[str] = None
    files: Tuple[SlackFile, ...] = ()
    attachments: Tuple[Attachment, ...] = ()
    reactions: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], default_channel: Optional[str] = None) -> "MessageEvent":
        return cls(
            ts=raw.get("ts"),
            channel=raw.get("channel") or default_channel,
            user=raw.get("user"),
            text=raw.get("text"),
            thread_ts=raw.get("thread_ts"),
            subtype=raw.get("subtype"),
            bot_id=raw.get("bot_id"),
            files=tuple(SlackFile.from_dict(f) for f in raw.get("files") or []),
            attachments=tuple(Attachment.from_dict(a) for a in raw.get("attachments") or []),
            reactions=tuple(r.get("name", "") for r in raw.get("reactions") or []),
        )

    @property
    def is_reply(self) -> bool:
        """True for replies inside a thread, False for thread roots and plain messages."""
        return bool(self.thread_ts) and self.thread_ts != self.ts

    @property
    def has_content(self) -> bool:
        return bool(self.text) or bool(self.files) or bool(self.attachments)

    def has_reaction(self, name: str) -> bool:
        return name in self.reactions


@dataclass(frozen=True)
class MessageChangedEvent:
    """A `message_changed` event: an existing message was edited."""

    channel: Optional[str]
    ts: Optional[str]
    user: Optional[str]
    text: str
    previous_text: str
    bot_id: Optional[str] = None
    previous_thread_ts: Optional[str] = None
    has_message: bool = True
    has_previous: bool = True

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MessageChangedEvent":
        message = raw.get("message") or {}
        previous = raw.get("previous_message") or {}
        return cls(
            channel=raw.get("channel"),
            ts=message.get("ts"),
            user=message.get("user"),
            text=message.get("text") or "",
            previous_text=previous.get("text") or "",
            bot_id=message.get("bot_id"),
            previous_thread_ts=previous.get("thread_ts"),
            has_message=bool(raw.get("message")),
            has_previous=bool(raw.get("previous_message")),
        )


@dataclass(frozen=True)
class MessageDeletedEvent:
    """A `message_deleted` event."""

    channel: Optional[str]
    deleted_ts: Optional[str]
    thread_ts: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "MessageDeletedEvent":
        previous = raw.get("previous_message") or {}
        return cls(
            channel=raw.get("channel"),
            deleted_ts=raw.get("deleted_ts"),
            thread_ts=previous.get("thread_ts"),
        )


ChatEvent = Union[MessageEvent, MessageChangedEvent, MessageDeletedEvent]


def parse_event(raw: Dict[str, Any]) -> ChatEvent:
    """Turn a raw Slack `message` event into its typed variant."""
    subtype = raw.get("subtype")
    if subtype == "message_changed":
        return MessageChangedEvent.from_dict(raw)
    if subtype == "message_deleted":
        return MessageDeletedEvent.from_dict(raw)
    return MessageEvent.from_dict(raw)
