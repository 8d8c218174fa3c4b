"""Models package."""
from .schemas import (
    DialogueState,
    Classification,
    UserSession,
    InboundEvent,
    Reply,
    TransitionResult,
    WebSocketMessage,
    APIResponse
)

__all__ = [
    "DialogueState",
    "Classification",
    "UserSession",
    "InboundEvent",
    "Reply",
    "TransitionResult",
    "WebSocketMessage",
    "APIResponse"
]
