"""Reply guard core: validity check, retry controller, session tracker and send gate."""

from reply_guard.guard.controller import RetryController
from reply_guard.guard.gate import AutoContinueGate
from reply_guard.guard.runtime import GuardRuntime
from reply_guard.guard.scheduler import AsyncioScheduler, ManualScheduler, Scheduler
from reply_guard.guard.session import GenerationSessionTracker, resolve_target_index
from reply_guard.guard.types import ChatEntry, ConversationState, SlotKey, SlotObservation
from reply_guard.guard.validity import DEFAULT_CONTENT_TAGS, has_valid_content, make_validator

__all__ = [
    "GuardRuntime",
    "RetryController",
    "GenerationSessionTracker",
    "AutoContinueGate",
    "Scheduler",
    "AsyncioScheduler",
    "ManualScheduler",
    "SlotKey",
    "ChatEntry",
    "ConversationState",
    "SlotObservation",
    "DEFAULT_CONTENT_TAGS",
    "has_valid_content",
    "make_validator",
    "resolve_target_index",
]
