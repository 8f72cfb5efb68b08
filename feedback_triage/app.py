"""Main application - relays Slack feedback to the triager one message at a time."""
import asyncio
import signal
import sys
from typing import Any, Dict, Optional

from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from feedback_triage.logging_conf import logger
from feedback_triage import settings
from feedback_triage.classifier import EventClassifier
from feedback_triage.correlation import CorrelationStore, DedupSet
from feedback_triage.dispatcher import Dispatcher
from feedback_triage.filters import IngestFilter
from feedback_triage.image_uploader import ImageUploader
from feedback_triage.linear_client import LinearClient, LinearUnavailableError
from feedback_triage.listeners import MessageListener
from feedback_triage.queue.sequential_queue import SequentialQueue
from feedback_triage.recovery import RecoveryScanner
from feedback_triage.slack_client import SlackClient
from feedback_triage.triager import TriagerContext, load_triager

# Realtime disconnects the Socket Mode client reconnects from on its own
RECOVERABLE_TRANSPORT_ERRORS = ("server explicit disconnect", "too_many_websockets")


def is_recoverable_transport_error(error: Optional[BaseException], message: str = "") -> bool:
    text = f"{error or ''} {message}"
    return any(signature in text for signature in RECOVERABLE_TRANSPORT_ERRORS)


class Application:
    """Wires Slack, Linear and the triager around the sequential queue."""

    def __init__(self):
        self.store = CorrelationStore()
        self.dedup = DedupSet()
        self.linear = LinearClient()
        self.bolt: Optional[AsyncApp] = None
        self.handler: Optional[AsyncSocketModeHandler] = None
        self.queue: Optional[SequentialQueue] = None
        self.running = False
        self.exit_code = 0
        self._stopped: Optional[asyncio.Event] = None

    def start(self):
        """Validate config and print the startup banner."""
        logger.info("=" * 50)
        logger.info("Feedback Triage Relay")
        logger.info("=" * 50)
        logger.info(f"Channel: {settings.SLACK_CHANNEL_ID}")
        logger.info(f"Linear organization: {settings.LINEAR_ORGANIZATION}")
        logger.info(f"Marker reaction: :{settings.MARKER_REACTION}:")
        logger.info("=" * 50)

        settings.validate_config()
        self.running = True

    async def run(self) -> int:
        """Main coroutine. Returns the process exit code."""
        self.start()
        loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        loop.set_exception_handler(self._handle_loop_exception)
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.request_stop, sig)

        self.bolt = AsyncApp(
            token=settings.SLACK_BOT_TOKEN,
            signing_secret=settings.SLACK_SIGNING_SECRET,
        )
        slack = SlackClient(self.bolt.client)

        bot_user_id = await slack.get_bot_user_id()
        logger.info(f"Bot user ID: {bot_user_id}")

        try:
            await asyncio.to_thread(self.linear.wait_until_reachable)
        except LinearUnavailableError as e:
            logger.error(str(e))
            return 1

        triager = load_triager(settings.TRIAGER_FACTORY, TriagerContext(
            slack_client=self.bolt.client,
            linear_client=self.linear,
            channel_id=settings.SLACK_CHANNEL_ID,
            linear_organization=settings.LINEAR_ORGANIZATION,
            linear_team_id=settings.LINEAR_TEAM_ID,
            linear_project_id=settings.LINEAR_PROJECT_ID,
        ))

        dispatcher = Dispatcher(
            triager=triager,
            store=self.store,
            slack=slack,
            uploader=ImageUploader(self.linear),
        )
        self.queue = SequentialQueue(dispatcher.handle)

        classifier = EventClassifier(bot_user_id, self.store, self.dedup)
        MessageListener(IngestFilter(settings.SLACK_CHANNEL_ID), classifier, self.queue).register(self.bolt)

        # Recovered messages go in first so they are handled before live events
        scanner = RecoveryScanner(slack, self.dedup, settings.SLACK_CHANNEL_ID)
        recovered = await scanner.recover()
        if recovered:
            logger.info(f"Processing {len(recovered)} recovered messages...")
        for item in recovered:
            self.queue.enqueue(item)
        self.queue.start()

        self.handler = AsyncSocketModeHandler(self.bolt, settings.SLACK_APP_TOKEN)
        await self.handler.connect_async()
        logger.info("Feedback Triage Relay is running!")
        logger.info(f"Listening for messages in channel: {settings.SLACK_CHANNEL_ID}")

        await self._stopped.wait()
        await self.stop()
        return self.exit_code

    def request_stop(self, sig: Any = None, exit_code: int = 0):
        """Ask the main coroutine to shut down."""
        if sig is not None:
            logger.info(f"Received signal {getattr(sig, 'name', sig)}, shutting down...")
        if exit_code:
            self.exit_code = exit_code
        if self._stopped is not None:
            self._stopped.set()

    async def stop(self):
        """Stop the application. Queued items are not drained."""
        if not self.running:
            return
        self.running = False
        if self.handler:
            await self.handler.close_async()
        if self.queue:
            await self.queue.stop()
        logger.info("Stopped")

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
        """Swallow known transport hiccups; anything else is fatal."""
        error = context.get("exception")
        message = context.get("message", "")
        if is_recoverable_transport_error(error, message):
            logger.error(f"[Recoverable] Slack websocket error - reconnecting: {error or message}")
            return
        logger.error(f"Uncaught exception: {message}", exc_info=error)
        self.request_stop(exit_code=1)


def main():
    """Entry point."""
    app = Application()

    try:
        exit_code = asyncio.run(app.run())
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
