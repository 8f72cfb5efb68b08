"""Slack event listener: filter, classify and queue incoming events."""
from typing import Any, Dict

from feedback_triage.classifier import EventClassifier
from feedback_triage.events import parse_event
from feedback_triage.filters import IngestFilter
from feedback_triage.logging_conf import logger
from feedback_triage.queue.sequential_queue import SequentialQueue


class MessageListener:
    """Receives raw `message` events and feeds the queue."""

    def __init__(self, ingest: IngestFilter, classifier: EventClassifier, queue: SequentialQueue):
        self.ingest = ingest
        self.classifier = classifier
        self.queue = queue

    def register(self, app) -> None:
        """Attach the listener and error handler to a Bolt app."""
        app.event("message")(self.on_message)
        app.error(self.on_error)

    async def on_message(self, event: Dict[str, Any]) -> None:
        try:
            self.route(event)
        except Exception as e:
            logger.error(f"Error queuing message: {e}", exc_info=True)

    async def on_error(self, error: Exception) -> None:
        logger.error(f"[Slack Error]: {error}")

    def route(self, raw: Dict[str, Any]) -> bool:
        """Queue a raw event if it passes the filter. Returns True if queued."""
        event = parse_event(raw)
        if not self.ingest.accepts(event):
            return False

        item = self.classifier.classify(event)
        if item is None:
            return False

        self.queue.enqueue(item)
        return True
