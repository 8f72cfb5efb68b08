"""Route work items to the triager and fold verdicts back into correlation state."""
import asyncio
from typing import List, Optional, Sequence

from feedback_triage import settings
from feedback_triage.correlation import CorrelationStore, MessageOutcome, ThreadOutcome
from feedback_triage.events import SlackFile
from feedback_triage.image_uploader import ImageUploader, UploadedImage
from feedback_triage.logging_conf import logger
from feedback_triage.normalize import (
    extract_ticket_from_thread,
    format_source_lines,
    format_thread_transcript,
    normalize_text,
    parse_slack_url,
    slack_message_url,
    truncate,
)
from feedback_triage.queue.models import (
    Category,
    DeferredFollowup,
    DirectCommand,
    MessageDeleted,
    MessageEdited,
    NewMessage,
    OrphanThread,
    ThreadReply,
    WorkItem,
)
from feedback_triage.slack_client import SlackClient
from feedback_triage.triager import (
    DeferredFollowupInput,
    DirectCommandInput,
    ForwardedMessage,
    MessageDeleteInput,
    MessageEditInput,
    NewMessageInput,
    NewMessageVerdict,
    OrphanThreadInput,
    ThreadReplyInput,
    Triager,
)

BANNER = "=" * 60


class Dispatcher:
    """Handles one work item at a time on behalf of the sequential queue."""

    def __init__(self, triager: Triager, store: CorrelationStore, slack: SlackClient,
                 uploader: Optional[ImageUploader] = None,
                 linear_organization: Optional[str] = None,
                 marker_reaction: Optional[str] = None):
        self.triager = triager
        self.store = store
        self.slack = slack
        self.uploader = uploader
        self.linear_organization = linear_organization or settings.LINEAR_ORGANIZATION or ""
        self.marker_reaction = marker_reaction or settings.MARKER_REACTION
        self._handlers = {
            Category.NEW: self._handle_new,
            Category.THREAD_REPLY: self._handle_thread_reply,
            Category.ORPHAN_THREAD: self._handle_orphan_thread,
            Category.DEFERRED_FOLLOWUP: self._handle_deferred_followup,
            Category.DIRECT_COMMAND: self._handle_direct_command,
            Category.MESSAGE_EDITED: self._handle_message_edited,
            Category.MESSAGE_DELETED: self._handle_message_deleted,
        }

    async def handle(self, item: WorkItem) -> None:
        """Dispatch an item to the handler for its category."""
        await self._handlers[item.category](item.payload)

    # Helpers

    async def _upload_images(self, files: Sequence[SlackFile]) -> List[UploadedImage]:
        if not self.uploader or not any(f.is_image for f in files):
            return []
        images = await asyncio.to_thread(self.uploader.upload_all, files)
        if images:
            logger.info(f"Uploaded {len(images)} images to Linear CDN")
        return images

    async def _upload_image_urls(self, files: Sequence[SlackFile]) -> List[str]:
        return [image.url for image in await self._upload_images(files)]

    async def _thread_transcript(self, channel: str, thread_ts: str, limit: int) -> str:
        messages = await self.slack.fetch_thread(channel, thread_ts, limit)
        return format_thread_transcript(messages)

    async def _forwarded_message(self, msg: NewMessage) -> Optional[ForwardedMessage]:
        """Build forwarded-message context from the first attachment carrying text."""
        if not msg.attachments or not msg.attachments[0].text:
            return None

        attachment = msg.attachments[0]
        author = attachment.author_name or attachment.author_id or "unknown"
        logger.info(f"Detected forwarded message from {author}")

        thread_context: List[str] = []
        thread_context_error = None
        permalink = parse_slack_url(attachment.from_url) if attachment.from_url else None
        if permalink:
            thread_ts = permalink.thread_ts or permalink.message_ts
            logger.info(f"Fetching thread context from channel {permalink.channel_id}, thread {thread_ts}")
            messages, thread_context_error = await self.slack.try_fetch_thread(
                permalink.channel_id, thread_ts, settings.THREAD_FOLLOWUP_CONTEXT_LIMIT
            )
            thread_context = format_source_lines(messages)
            if thread_context:
                logger.info(f"Fetched {len(thread_context)} messages from source thread")

        return ForwardedMessage(
            text=attachment.text,
            original_author_id=attachment.author_id,
            original_author_name=attachment.author_name,
            source_url=attachment.from_url,
            thread_context=thread_context,
            thread_context_error=thread_context_error,
        )

    # Category handlers

    async def _handle_new(self, msg: NewMessage) -> None:
        await self.slack.add_reaction(msg.channel, msg.ts, self.marker_reaction)

        message_url = slack_message_url(msg.channel, msg.ts)
        forwarded = await self._forwarded_message(msg)
        images = await self._upload_images(msg.files)

        logger.info(BANNER)
        logger.info(f"Processing message from {msg.user}: {truncate(msg.text) or '(no text - forwarded message)'}")
        logger.info(f"Link: {message_url}")
        if forwarded:
            logger.info(f"Forwarded content: {truncate(forwarded.text)}")
        logger.info(BANNER)

        try:
            verdict = await self.triager.triage_message(NewMessageInput(
                message_text=msg.text,
                user_id=msg.user,
                channel=msg.channel,
                thread_ts=msg.ts,
                slack_message_url=message_url,
                images=images,
                forwarded_message=forwarded,
            ))
        except Exception as e:
            logger.error(f"Triage failed for message {msg.ts}: {e}", exc_info=True)
            verdict = NewMessageVerdict(action="error", message=str(e))

        logger.info(f"Triage result: {verdict.action}")
        if verdict.ticket_identifier:
            logger.info(f"Ticket: {verdict.ticket_identifier} - {verdict.ticket_url}")

        self.record_new_message_verdict(msg, verdict)

    def record_new_message_verdict(self, msg: NewMessage, verdict: NewMessageVerdict) -> None:
        """Write thread and message outcomes for a triaged top-level message."""
        now = self.store.now()

        if verdict.action in ("created", "duplicate") and verdict.has_ticket:
            ticket_id = verdict.ticket_id or verdict.ticket_identifier
            ticket_identifier = verdict.ticket_identifier or verdict.ticket_id
            self.store.put_thread(msg.ts, ThreadOutcome(
                ticket_id=ticket_id,
                ticket_identifier=ticket_identifier,
                created_at=now,
                is_duplicate=verdict.action == "duplicate",
                is_deferred=False,
                original_reporter_id=msg.user,
            ))
            logger.info(f"Tracking thread {msg.ts} for ticket {ticket_identifier} ({verdict.action}, reporter: {msg.user})")
        elif verdict.action == "deferred":
            self.store.put_thread(msg.ts, ThreadOutcome(
                ticket_id="",
                ticket_identifier="",
                created_at=now,
                is_deferred=True,
                original_context=msg.text,
                original_reporter_id=msg.user,
            ))
            logger.info(f"Tracking DEFERRED thread {msg.ts} for later follow-up")

        self.store.put_message(msg.ts, MessageOutcome.from_action(
            verdict.action,
            created_at=now,
            ticket_id=verdict.ticket_id,
            ticket_identifier=verdict.ticket_identifier,
            ticket_url=verdict.ticket_url,
        ))
        self.store.sweep()

    async def _handle_thread_reply(self, reply: ThreadReply) -> None:
        logger.info(BANNER)
        logger.info(
            f"Processing thread reply (cached ticket: {reply.ticket_identifier}, "
            f"isDuplicate: {reply.is_duplicate}, sameReporter: {reply.is_same_reporter})"
        )
        logger.info(f"From: {reply.user}")
        logger.info(f"Reply: {truncate(reply.reply_text) or '(no text)'}")
        logger.info(BANNER)

        image_urls = await self._upload_image_urls(reply.files)
        messages = await self.slack.fetch_thread(reply.channel, reply.thread_ts, settings.THREAD_REPLY_CONTEXT_LIMIT)

        # A human may have relinked the thread since we cached it
        found = extract_ticket_from_thread(messages, self.linear_organization)
        ticket_id = reply.ticket_id
        ticket_identifier = reply.ticket_identifier
        if found:
            if found.identifier != reply.ticket_identifier:
                logger.info(
                    f"Ticket found in thread ({found.identifier}) differs from cached "
                    f"({reply.ticket_identifier}) - using thread ticket"
                )
            ticket_id = found.identifier
            ticket_identifier = found.identifier
        logger.info(f"Using ticket: {ticket_identifier}")

        await self.triager.handle_thread_reply(ThreadReplyInput(
            reply_text=reply.reply_text,
            user_id=reply.user,
            channel=reply.channel,
            thread_ts=reply.thread_ts,
            message_ts=reply.message_ts,
            ticket_id=ticket_id,
            ticket_identifier=ticket_identifier,
            thread_context=format_thread_transcript(messages),
            is_duplicate=reply.is_duplicate,
            is_same_reporter=reply.is_same_reporter,
            image_urls=image_urls,
        ))

    async def _handle_orphan_thread(self, reply: OrphanThread) -> None:
        logger.info(BANNER)
        logger.info("Processing orphan thread reply (no tracked ticket)")
        logger.info(f"From: {reply.user}")
        logger.info(f"Reply: {truncate(reply.reply_text) or '(no text)'}")
        logger.info(BANNER)

        image_urls = await self._upload_image_urls(reply.files)
        thread_context = await self._thread_transcript(
            reply.channel, reply.thread_ts, settings.THREAD_REPLY_CONTEXT_LIMIT
        )

        verdict = await self.triager.triage_orphan_thread(OrphanThreadInput(
            reply_text=reply.reply_text,
            user_id=reply.user,
            channel=reply.channel,
            thread_ts=reply.thread_ts,
            message_ts=reply.message_ts,
            slack_message_url=slack_message_url(reply.channel, reply.message_ts, reply.thread_ts),
            thread_context=thread_context,
            image_urls=image_urls,
        ))
        logger.info(f"Orphan thread triage result: {verdict.action}")

        if verdict.action in ("created", "updated") and verdict.ticket_id:
            self.store.put_thread(reply.thread_ts, ThreadOutcome(
                ticket_id=verdict.ticket_id,
                ticket_identifier=verdict.ticket_identifier or verdict.ticket_id,
                created_at=self.store.now(),
                is_duplicate=verdict.action == "updated",
                is_deferred=False,
                original_reporter_id=reply.user,
            ))
            logger.info(f"Now tracking thread {reply.thread_ts} for ticket {verdict.ticket_identifier or verdict.ticket_id}")
            self.store.sweep()

    async def _handle_deferred_followup(self, reply: DeferredFollowup) -> None:
        logger.info(BANNER)
        logger.info("Processing deferred thread follow-up")
        logger.info(f"From: {reply.user}")
        logger.info(f"Reply: {truncate(reply.reply_text) or '(no text)'}")
        logger.info(BANNER)

        image_urls = await self._upload_image_urls(reply.files)
        thread_context = await self._thread_transcript(
            reply.channel, reply.thread_ts, settings.THREAD_FOLLOWUP_CONTEXT_LIMIT
        )

        verdict = await self.triager.handle_deferred_followup(DeferredFollowupInput(
            reply_text=reply.reply_text,
            user_id=reply.user,
            channel=reply.channel,
            thread_ts=reply.thread_ts,
            message_ts=reply.message_ts,
            thread_context=thread_context,
            original_context=reply.original_context,
            image_urls=image_urls,
        ))
        logger.info(f"Deferred follow-up result: {verdict.action}")

        if verdict.action == "created" and verdict.ticket_id:
            if self.store.upgrade_deferred(reply.thread_ts, verdict.ticket_id, verdict.ticket_identifier):
                logger.info(
                    f"Thread {reply.thread_ts} upgraded from DEFERRED to TRACKED "
                    f"(ticket: {verdict.ticket_identifier or verdict.ticket_id})"
                )
            else:
                logger.warning(f"Deferred thread {reply.thread_ts} expired before its ticket was created")

    async def _handle_direct_command(self, command: DirectCommand) -> None:
        logger.info(BANNER)
        logger.info("Processing direct command (@mention)")
        logger.info(f"From: {command.user}")
        logger.info(f"Command: {truncate(command.command_text) or '(no text)'}")
        logger.info(f"Ticket context: {command.ticket_context or 'none'}")
        logger.info(BANNER)

        image_urls = await self._upload_image_urls(command.files)

        thread_context = ""
        if command.thread_ts and command.thread_ts != command.message_ts:
            thread_context = await self._thread_transcript(
                command.channel, command.thread_ts, settings.THREAD_FOLLOWUP_CONTEXT_LIMIT
            )

        verdict = await self.triager.handle_direct_command(DirectCommandInput(
            command_text=command.command_text,
            user_id=command.user,
            channel=command.channel,
            thread_ts=command.thread_ts,
            message_ts=command.message_ts,
            ticket_context=command.ticket_context,
            thread_context=thread_context,
            image_urls=image_urls,
        ))
        logger.info(f"Direct command result: {verdict.action}")
        if verdict.message:
            logger.info(f"Response: {truncate(verdict.message, 200)}")

    async def _handle_message_edited(self, edit: MessageEdited) -> None:
        logger.info(f"Processing edit for message {edit.message_ts} from {edit.user}")

        outcome = self.store.get_message(edit.message_ts)
        if outcome is None:
            logger.info("Edited message not tracked (expired or never triaged) - skipping")
            return
        if not outcome.was_triaged:
            logger.info(f"Edited message was {outcome.action} originally - not re-triaging")
            return
        if normalize_text(edit.previous_text) == normalize_text(edit.new_text):
            logger.info("No meaningful text change (whitespace only) - skipping")
            return

        logger.info(f"Edited message tracked: ticket={outcome.ticket_identifier}, action={outcome.action}")
        await self.triager.handle_message_edit(MessageEditInput(
            ticket_id=outcome.ticket_id,
            ticket_identifier=outcome.ticket_identifier,
            original_text=edit.previous_text,
            edited_text=edit.new_text,
            user_id=edit.user,
            action=outcome.action,
        ))

    async def _handle_message_deleted(self, deletion: MessageDeleted) -> None:
        logger.info(f"Processing deletion of message {deletion.message_ts}")

        outcome = self.store.get_message(deletion.message_ts)
        if outcome is None:
            logger.info("Deleted message not tracked (expired or never triaged) - skipping")
            return
        if not outcome.was_triaged:
            logger.info(f"Deleted message was {outcome.action} originally - no ticket to update")
            return

        logger.info(f"Deleted message was linked to ticket {outcome.ticket_identifier}")
        await self.triager.handle_message_delete(MessageDeleteInput(
            ticket_id=outcome.ticket_id,
            ticket_identifier=outcome.ticket_identifier,
            message_ts=deletion.message_ts,
            action=outcome.action,
        ))

        self.store.delete_message(deletion.message_ts)
        if deletion.thread_ts:
            self.store.delete_thread(deletion.thread_ts)
        logger.info(f"Cleaned up tracking for message {deletion.message_ts}")
