"""Startup recovery of messages posted while the relay was down."""
import asyncio
import time
from typing import Callable, List, Optional

from feedback_triage import settings
from feedback_triage.correlation import DedupSet
from feedback_triage.events import MessageEvent
from feedback_triage.filters import is_processable
from feedback_triage.logging_conf import logger
from feedback_triage.queue.models import NewMessage, WorkItem
from feedback_triage.slack_client import SlackClient


class RecoveryScanner:
    """
    Finds missed top-level messages by walking history back to the marker.

    The marker reaction is left on every message the relay processes, so the
    newest marked message is the watermark. Everything newer than it is
    queued again, oldest first.
    """

    def __init__(self, slack: SlackClient, dedup: DedupSet, channel_id: str,
                 marker_reaction: Optional[str] = None,
                 lookback_days: Optional[int] = None,
                 page_size: int = settings.HISTORY_PAGE_SIZE,
                 page_delay: float = settings.HISTORY_PAGE_DELAY,
                 clock: Callable[[], float] = time.time):
        self.slack = slack
        self.dedup = dedup
        self.channel_id = channel_id
        self.marker_reaction = marker_reaction or settings.MARKER_REACTION
        self.lookback_days = settings.RECOVERY_LOOKBACK_DAYS if lookback_days is None else lookback_days
        self.page_size = page_size
        self.page_delay = page_delay
        self.clock = clock

    async def recover(self) -> List[WorkItem]:
        """Return `new` work items for missed messages, oldest first."""
        logger.info("Checking for missed messages...")

        missed, found_marker = await self._scan()

        if not found_marker and missed:
            logger.info("First run detected - skipping historical recovery to avoid flooding")
            return []
        if not missed:
            logger.info("No missed messages to recover")
            return []

        items = []
        for event in reversed(missed):
            if not self.dedup.add(event.ts):
                logger.debug(f"Message {event.ts} already queued, not recovering")
                continue
            items.append(WorkItem.create(NewMessage(
                text=event.text or "",
                user=event.user,
                ts=event.ts,
                channel=event.channel or self.channel_id,
                files=event.files,
                attachments=event.attachments,
            )))

        logger.info(f"Recovered {len(items)} missed messages - queued for processing")
        return items

    async def _scan(self):
        """Walk history newest first; stop at the first marked message."""
        oldest = str(self.clock() - self.lookback_days * 24 * 60 * 60)
        missed: List[MessageEvent] = []
        cursor = None

        while True:
            messages, cursor = await self.slack.fetch_history_page(
                self.channel_id, oldest=oldest, cursor=cursor, limit=self.page_size
            )
            for raw in messages:
                event = MessageEvent.from_dict(raw, default_channel=self.channel_id)
                if event.has_reaction(self.marker_reaction):
                    return missed, True
                if is_processable(event):
                    missed.append(event)

            if not cursor:
                return missed, False
            await asyncio.sleep(self.page_delay)
