"""Decide which Slack events are worth considering at all."""
from feedback_triage.events import MessageChangedEvent, MessageDeletedEvent, MessageEvent

# Subtypes that may carry feedback; everything else is rejected
ALLOWED_SUBTYPES = {"file_share"}

# Membership and topic noise
SKIP_SUBTYPES = {"channel_join", "channel_leave", "channel_topic", "channel_purpose"}


def is_bot_authored(event: MessageEvent) -> bool:
    return bool(event.bot_id) or event.subtype == "bot_message"


def is_processable(event: MessageEvent) -> bool:
    """Check if a top-level message should go through triage."""
    if is_bot_authored(event):
        return False
    if event.is_reply:
        return False
    if not event.has_content:
        return False
    if event.subtype in SKIP_SUBTYPES:
        return False
    if event.subtype and event.subtype not in ALLOWED_SUBTYPES:
        return False
    return True


class IngestFilter:
    """Live-event gate bound to the monitored channel."""

    def __init__(self, channel_id: str):
        self.channel_id = channel_id

    def accepts_message(self, event: MessageEvent) -> bool:
        """Posted messages, including thread replies, from a human in our channel."""
        if not event.has_content:
            return False
        if not event.user or not event.ts or not event.channel:
            return False
        if event.channel != self.channel_id:
            return False
        if is_bot_authored(event):
            return False
        if event.subtype and event.subtype not in ALLOWED_SUBTYPES:
            return False
        return True

    def accepts_edit(self, event: MessageChangedEvent) -> bool:
        if not event.has_message or not event.has_previous:
            return False
        if not event.user or not event.ts:
            return False
        if event.channel != self.channel_id:
            return False
        return not event.bot_id

    def accepts_delete(self, event: MessageDeletedEvent) -> bool:
        if not event.deleted_ts or not event.channel:
            return False
        return event.channel == self.channel_id

    def accepts(self, event) -> bool:
        if isinstance(event, MessageChangedEvent):
            return self.accepts_edit(event)
        if isinstance(event, MessageDeletedEvent):
            return self.accepts_delete(event)
        return self.accepts_message(event)
