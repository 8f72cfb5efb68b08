"""Text, link and transcript helpers shared by the classifier and dispatcher."""
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import parse_qs, urlparse

SLACK_ARCHIVE_RE = re.compile(r"/archives/([A-Z0-9]+)/p(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class SlackPermalink:
    channel_id: str
    message_ts: str
    thread_ts: Optional[str] = None


@dataclass(frozen=True)
class TicketReference:
    identifier: str
    url: str


def normalize_text(text: Optional[str]) -> str:
    """Trim and collapse internal whitespace."""
    return re.sub(r"\s+", " ", (text or "").strip())


def truncate(text: Optional[str], limit: int = 100) -> str:
    return (text or "")[:limit]


def slack_message_url(channel: str, message_ts: str, thread_ts: Optional[str] = None) -> str:
    """Build a permalink; thread replies get the thread-aware form."""
    url = f"https://slack.com/archives/{channel}/p{message_ts.replace('.', '')}"
    if thread_ts:
        url += f"?thread_ts={thread_ts}&cid={channel}"
    return url


def parse_slack_url(url: str) -> Optional[SlackPermalink]:
    """
    Extract channel and timestamps from a Slack message permalink.

    Example: https://acme.slack.com/archives/C123/p1700000000123456?thread_ts=1699999999.000100
    -> channel C123, message 1700000000.123456, thread 1699999999.000100
    """
    match = SLACK_ARCHIVE_RE.search(url or "")
    if not match:
        return None

    channel_id, raw_ts = match.group(1), match.group(2)
    # Permalinks drop the dot; the last six digits are microseconds
    message_ts = f"{raw_ts[:-6]}.{raw_ts[-6:]}" if len(raw_ts) > 6 else raw_ts

    try:
        query = parse_qs(urlparse(url).query)
    except ValueError:
        query = {}
    thread_ts = query.get("thread_ts", [None])[0] or None

    return SlackPermalink(channel_id=channel_id, message_ts=message_ts, thread_ts=thread_ts)


def linear_issue_pattern(organization: str) -> "re.Pattern[str]":
    return re.compile(
        rf"https://linear\.app/{re.escape(organization)}/issue/([A-Z]+-\d+)(?:/[^\s|>)]+)?"
    )


def extract_ticket_from_thread(
    messages: Iterable[Dict[str, Any]], organization: str
) -> Optional[TicketReference]:
    """Return the first Linear issue link found in the thread, oldest message first."""
    pattern = linear_issue_pattern(organization)
    for message in messages:
        text = message.get("text")
        if not text:
            continue
        match = pattern.search(text)
        if match:
            return TicketReference(identifier=match.group(1), url=match.group(0).rstrip("|>"))
    return None


def format_thread_transcript(messages: Iterable[Dict[str, Any]]) -> str:
    """Flatten a thread into `[Bot]: ...` / `[User]: ...` lines."""
    lines = []
    for message in messages:
        speaker = "Bot" if message.get("bot_id") else "User"
        lines.append(f"[{speaker}]: {message.get('text') or '(no text)'}")
    return "\n".join(lines)


def format_source_lines(messages: Iterable[Dict[str, Any]]) -> List[str]:
    """Per-author lines for a forwarded message's source thread."""
    lines = []
    for message in messages:
        author = "Bot" if message.get("bot_id") else (message.get("user") or "Unknown")
        lines.append(f"[{author}]: {message.get('text') or '(no text)'}")
    return lines
