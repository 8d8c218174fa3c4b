"""
Fixtures shared by all tests.
"""
import os
import tempfile

# =============================================================================
# CRITICAL: Set env vars BEFORE any app imports
# =============================================================================
_log_dir = tempfile.mkdtemp(prefix="conversationbot-logs-")
os.environ.setdefault("LOG_DIR", _log_dir)
os.environ.setdefault("LOG_FILE", os.path.join(_log_dir, "test.log"))
os.environ.setdefault("GATEWAY", "websocket")
os.environ.setdefault("TELEGRAM_TOKEN", "test-token")
os.environ.setdefault("STORAGE_FILE", os.path.join(_log_dir, "conversationbot.json"))

from typing import AsyncIterator, Dict, List, Optional, Tuple

import pytest

from conversationbot.core.session_store import SessionStore
from conversationbot.core.state_machine import DialogueStateMachine
from conversationbot.gateway.base import Gateway, GatewayError
from conversationbot.models.schemas import InboundEvent, Reply


def make_event(text: str, actor_id: str = "1", command: bool = False, username: str = "TestUser") -> InboundEvent:
    """Build an inbound event; commands are given without the slash."""
    if command:
        return InboundEvent(
            actor_id=actor_id,
            text=f"/{text}",
            is_command=True,
            command=text,
            username=username
        )
    return InboundEvent(actor_id=actor_id, text=text, username=username)


class FakeGateway(Gateway):
    """In-memory gateway recording every reply."""

    def __init__(self, events: Optional[List[InboundEvent]] = None, fail_sends: bool = False):
        self._events = list(events or [])
        self.fail_sends = fail_sends
        self.sent: List[Tuple[str, Reply]] = []
        self.closed = False

    async def events(self) -> AsyncIterator[InboundEvent]:
        for event in self._events:
            yield event

    async def send(self, target_id: str, reply: Reply):
        if self.fail_sends:
            raise GatewayError("gateway unavailable")
        self.sent.append((target_id, reply))

    async def close(self):
        self.closed = True

    def texts(self, target_id: Optional[str] = None) -> List[str]:
        return [reply.text for target, reply in self.sent if target_id is None or target == target_id]


@pytest.fixture
def storage_path(tmp_path) -> str:
    return str(tmp_path / "conversationbot.json")


@pytest.fixture
def store(storage_path) -> SessionStore:
    return SessionStore(storage_path)


@pytest.fixture
def machine() -> DialogueStateMachine:
    return DialogueStateMachine()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
