"""Pydantic models and schemas."""
import time
from pydantic import BaseModel, Field, AliasChoices, field_validator
from typing import Dict, List, Optional, Any
from enum import Enum, IntEnum
from datetime import datetime


class DialogueState(IntEnum):
    """Dialogue states. Integer codes are what the snapshot stores."""
    CHOOSING = 0
    TYPING_REPLY = 1
    TYPING_CATEGORY = 2


class Classification(str, Enum):
    """What an inbound text is taken to mean before the state machine runs."""
    START = "start"
    SHOW = "show"
    REGULAR_CATEGORY = "regular_category"
    CUSTOM_CATEGORY = "custom_category"
    DONE = "done"
    OTHER = "other"
    UNKNOWN_COMMAND = "unknown_command"


class UserSession(BaseModel):
    """Per-actor dialogue position and collected facts."""
    state: DialogueState = DialogueState.CHOOSING
    pending_category: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("pending_category", "current_key")
    )
    facts: Dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("facts", "user_data")
    )
    last_updated: int = Field(default_factory=lambda: int(time.time()))

    @field_validator('facts', mode='before')
    @classmethod
    def validate_facts(cls, v):
        """Older snapshots may carry a null mapping."""
        if v is None:
            return {}
        return v

    @field_validator('pending_category', mode='before')
    @classmethod
    def validate_pending_category(cls, v):
        """An empty category means nothing is being elicited."""
        if v == "":
            return None
        return v

    def touch(self):
        """Record a mutation."""
        self.last_updated = int(time.time())


class InboundEvent(BaseModel):
    """A text event received from a gateway."""
    actor_id: str = Field(..., description="Stable identifier of the remote user")
    text: str = Field(default="", description="Raw message text")
    is_command: bool = False
    command: Optional[str] = Field(default=None, description="Command name without slash or bot mention")
    chat_id: Optional[str] = Field(default=None, description="Reply target when it differs from the actor")
    username: Optional[str] = None

    @property
    def reply_to(self) -> str:
        """Identifier the replies for this event are sent to."""
        return self.chat_id or self.actor_id


class Reply(BaseModel):
    """Outbound reply produced by the state machine."""
    text: str
    keyboard: Optional[List[List[str]]] = None
    remove_keyboard: bool = False


class TransitionResult(BaseModel):
    """Outcome of handling one event for one session."""
    classification: Classification
    previous_state: DialogueState
    state: DialogueState
    replies: List[Reply] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.previous_state != self.state


class WebSocketMessage(BaseModel):
    """WebSocket message format."""
    type: str = Field(..., description="Message type")
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)


class APIResponse(BaseModel):
    """Standard API response."""
    success: bool = True
    message: str = ""
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
