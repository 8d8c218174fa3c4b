"""Core components package."""
from .session_store import SessionStore
from .state_machine import DialogueStateMachine, dialogue_state_machine
from .dispatcher import Dispatcher

__all__ = [
    "SessionStore",
    "DialogueStateMachine",
    "dialogue_state_machine",
    "Dispatcher"
]
