"""Boundary to the external triager that makes create/update/skip decisions.

The triager owns prompt construction, LLM calls and the Slack/Linear tool
calls made on its behalf. This module only defines what it receives and what
it must return, and loads the configured implementation.
"""
import importlib
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

from feedback_triage.image_uploader import UploadedImage

NEW_MESSAGE_ACTIONS = ("created", "duplicate", "skipped", "deferred", "error")
ORPHAN_THREAD_ACTIONS = ("created", "updated", "skipped", "error")
DEFERRED_FOLLOWUP_ACTIONS = ("no_action", "created", "error")
DIRECT_COMMAND_ACTIONS = ("executed", "help", "error", "clarification")


def _check_action(action: str, allowed) -> None:
    if action not in allowed:
        raise ValueError(f"Unexpected triager action {action!r}, expected one of {', '.join(allowed)}")


# Inputs

@dataclass(frozen=True)
class ForwardedMessage:
    text: str
    original_author_id: Optional[str] = None
    original_author_name: Optional[str] = None
    source_url: Optional[str] = None
    thread_context: List[str] = field(default_factory=list)
    thread_context_error: Optional[str] = None


@dataclass(frozen=True)
class NewMessageInput:
    message_text: str
    user_id: str
    channel: str
    thread_ts: str
    slack_message_url: str
    images: List[UploadedImage] = field(default_factory=list)
    forwarded_message: Optional[ForwardedMessage] = None


@dataclass(frozen=True)
class ThreadReplyInput:
    reply_text: str
    user_id: str
    channel: str
    thread_ts: str
    message_ts: str
    ticket_id: str
    ticket_identifier: str
    thread_context: str
    is_duplicate: bool
    is_same_reporter: bool
    image_urls: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class OrphanThreadInput:
    reply_text: str
    user_id: str
    channel: str
    thread_ts: str
    message_ts: str
    slack_message_url: str
    thread_context: str
    image_urls: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeferredFollowupInput:
    reply_text: str
    user_id: str
    channel: str
    thread_ts: str
    message_ts: str
    thread_context: str
    original_context: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DirectCommandInput:
    command_text: str
    user_id: str
    channel: str
    thread_ts: str
    message_ts: str
    ticket_context: Optional[str]
    thread_context: str
    image_urls: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MessageEditInput:
    ticket_id: str
    ticket_identifier: str
    original_text: str
    edited_text: str
    user_id: str
    action: str


@dataclass(frozen=True)
class MessageDeleteInput:
    ticket_id: str
    ticket_identifier: str
    message_ts: str
    action: str


# Verdicts

@dataclass(frozen=True)
class NewMessageVerdict:
    action: str
    message: str = ""
    ticket_id: Optional[str] = None
    ticket_identifier: Optional[str] = None
    ticket_url: Optional[str] = None

    def __post_init__(self):
        _check_action(self.action, NEW_MESSAGE_ACTIONS)

    @property
    def has_ticket(self) -> bool:
        return bool(self.ticket_id or self.ticket_identifier)


@dataclass(frozen=True)
class OrphanThreadVerdict:
    action: str
    message: str = ""
    ticket_id: Optional[str] = None
    ticket_identifier: Optional[str] = None

    def __post_init__(self):
        _check_action(self.action, ORPHAN_THREAD_ACTIONS)


@dataclass(frozen=True)
class DeferredFollowupVerdict:
    action: str
    message: str = ""
    ticket_id: Optional[str] = None
    ticket_identifier: Optional[str] = None

    def __post_init__(self):
        _check_action(self.action, DEFERRED_FOLLOWUP_ACTIONS)


@dataclass(frozen=True)
class DirectCommandVerdict:
    action: str
    message: str = ""

    def __post_init__(self):
        _check_action(self.action, DIRECT_COMMAND_ACTIONS)


class Triager(Protocol):
    """One async entry point per work item category."""

    async def triage_message(self, request: NewMessageInput) -> NewMessageVerdict: ...

    async def handle_thread_reply(self, request: ThreadReplyInput) -> None: ...

    async def triage_orphan_thread(self, request: OrphanThreadInput) -> OrphanThreadVerdict: ...

    async def handle_deferred_followup(self, request: DeferredFollowupInput) -> DeferredFollowupVerdict: ...

    async def handle_direct_command(self, request: DirectCommandInput) -> DirectCommandVerdict: ...

    async def handle_message_edit(self, request: MessageEditInput) -> None: ...

    async def handle_message_delete(self, request: MessageDeleteInput) -> None: ...


@dataclass(frozen=True)
class TriagerContext:
    """Clients and identifiers handed to the triager factory."""

    slack_client: Any
    linear_client: Any
    channel_id: str
    linear_organization: str
    linear_team_id: Optional[str] = None
    linear_project_id: Optional[str] = None


def load_triager(factory_path: str, context: TriagerContext) -> Triager:
    """Import `module:callable` and call it with the context."""
    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Triager factory must look like 'module:callable': {factory_path}")

    module = importlib.import_module(module_name)
    factory = getattr(module, attr, None)
    if factory is None:
        raise ValueError(f"Module {module_name} has no attribute {attr}")
    return factory(context)
