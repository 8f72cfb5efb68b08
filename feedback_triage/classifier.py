"""Assign filtered Slack events to a handling category."""
from typing import Optional

from feedback_triage.correlation import CorrelationStore, DedupSet
from feedback_triage.events import ChatEvent, MessageChangedEvent, MessageDeletedEvent, MessageEvent
from feedback_triage.logging_conf import logger
from feedback_triage.queue.models import (
    DeferredFollowup,
    DirectCommand,
    MessageDeleted,
    MessageEdited,
    NewMessage,
    OrphanThread,
    ThreadReply,
    WorkItem,
)


class EventClassifier:
    """
    Turns events into work items using the current correlation state.

    Message events are checked in order: bot mention, thread reply
    (deferred / tracked / orphan), then top-level. Edits and deletions
    map straight to their own categories.
    """

    def __init__(self, bot_user_id: str, store: CorrelationStore, dedup: DedupSet):
        self.bot_user_id = bot_user_id
        self.store = store
        self.dedup = dedup

    @property
    def mention_token(self) -> str:
        return f"<@{self.bot_user_id}>"

    def classify(self, event: ChatEvent) -> Optional[WorkItem]:
        """Return the work item for an event, or None if it should be dropped."""
        if isinstance(event, MessageChangedEvent):
            return self._classify_edit(event)
        if isinstance(event, MessageDeletedEvent):
            return self._classify_delete(event)
        return self._classify_message(event)

    def _classify_message(self, event: MessageEvent) -> Optional[WorkItem]:
        text = event.text or ""

        if self.bot_user_id and self.mention_token in text:
            outcome = self.store.get_thread(event.thread_ts)
            ticket_context = outcome.ticket_identifier if outcome and outcome.ticket_identifier else None
            return WorkItem.create(DirectCommand(
                command_text=text,
                user=event.user,
                channel=event.channel,
                thread_ts=event.thread_ts or event.ts,
                message_ts=event.ts,
                ticket_context=ticket_context,
                files=event.files,
            ))

        if event.is_reply:
            return self._classify_reply(event, text)

        if event.ts in self.dedup:
            logger.info(f"Skipping already processed message {event.ts}")
            return None
        self.dedup.add(event.ts)

        return WorkItem.create(NewMessage(
            text=text,
            user=event.user,
            ts=event.ts,
            channel=event.channel,
            files=event.files,
            attachments=event.attachments,
        ))

    def _classify_reply(self, event: MessageEvent, text: str) -> WorkItem:
        outcome = self.store.get_thread(event.thread_ts)

        if outcome is None:
            return WorkItem.create(OrphanThread(
                reply_text=text,
                user=event.user,
                channel=event.channel,
                thread_ts=event.thread_ts,
                message_ts=event.ts,
                files=event.files,
            ))

        if outcome.is_deferred:
            return WorkItem.create(DeferredFollowup(
                reply_text=text,
                user=event.user,
                channel=event.channel,
                thread_ts=event.thread_ts,
                message_ts=event.ts,
                original_context=outcome.original_context,
                files=event.files,
            ))

        return WorkItem.create(ThreadReply(
            reply_text=text,
            user=event.user,
            channel=event.channel,
            thread_ts=event.thread_ts,
            message_ts=event.ts,
            ticket_id=outcome.ticket_id,
            ticket_identifier=outcome.ticket_identifier,
            is_duplicate=outcome.is_duplicate,
            is_same_reporter=outcome.original_reporter_id == event.user,
            files=event.files,
        ))

    def _classify_edit(self, event: MessageChangedEvent) -> WorkItem:
        return WorkItem.create(MessageEdited(
            message_ts=event.ts,
            new_text=event.text,
            previous_text=event.previous_text,
            user=event.user,
            channel=event.channel,
        ))

    def _classify_delete(self, event: MessageDeletedEvent) -> WorkItem:
        return WorkItem.create(MessageDeleted(
            message_ts=event.deleted_ts,
            channel=event.channel,
            thread_ts=event.thread_ts,
        ))
