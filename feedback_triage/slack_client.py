"""Thin async wrapper over the Slack Web API calls the relay needs."""
from typing import Any, Dict, List, Optional, Tuple

from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from feedback_triage.logging_conf import logger


class SlackClient:
    """Reads channel history/threads and leaves marker reactions."""

    def __init__(self, web_client: AsyncWebClient):
        self.web = web_client

    async def get_bot_user_id(self) -> str:
        result = await self.web.auth_test()
        return result["user_id"]

    async def fetch_thread(self, channel: str, thread_ts: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Return the thread root and replies, oldest first."""
        result = await self.web.conversations_replies(channel=channel, ts=thread_ts, limit=limit)
        return list(result.get("messages") or [])

    async def try_fetch_thread(self, channel: str, thread_ts: str, limit: int = 30) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Fetch a thread we may not have access to.

        Returns:
            (messages, error); error is None on success
        """
        try:
            return await self.fetch_thread(channel, thread_ts, limit), None
        except SlackApiError as e:
            error = e.response.get("error") if e.response is not None else str(e)
            logger.info(f"Could not fetch thread context from {channel}: {error}")
            return [], error or str(e)
        except Exception as e:
            error = str(e) or type(e).__name__
            logger.warning(f"Could not fetch thread context from {channel}: {error}")
            return [], error

    async def fetch_history_page(self, channel: str, oldest: str, cursor: Optional[str] = None,
                                 limit: int = 100) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Fetch one page of channel history, newest first.

        Returns:
            (messages, next_cursor); next_cursor is None on the last page
        """
        kwargs = {"channel": channel, "oldest": oldest, "limit": limit}
        if cursor:
            kwargs["cursor"] = cursor
        result = await self.web.conversations_history(**kwargs)
        next_cursor = (result.get("response_metadata") or {}).get("next_cursor") or None
        return list(result.get("messages") or []), next_cursor

    async def add_reaction(self, channel: str, ts: str, name: str) -> bool:
        """Add a reaction; an existing one counts as success."""
        try:
            await self.web.reactions_add(channel=channel, timestamp=ts, name=name)
            return True
        except SlackApiError as e:
            error = e.response.get("error") if e.response is not None else None
            if error == "already_reacted":
                return True
            logger.info(f"Could not add reaction: {error or e}")
            return False
        except Exception as e:
            logger.warning(f"Could not add reaction: {e or type(e).__name__}")
            return False
