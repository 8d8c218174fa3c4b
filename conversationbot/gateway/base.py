"""Gateway contract between the dispatcher and a messaging channel."""
from abc import ABC, abstractmethod
from typing import AsyncIterator

from conversationbot.models.schemas import InboundEvent, Reply


class GatewayError(Exception):
    """A reply could not be delivered or events could not be fetched."""


class Gateway(ABC):
    """Source of inbound events and sink for outbound replies."""

    @abstractmethod
    def events(self) -> AsyncIterator[InboundEvent]:
        """Yield inbound text events until the channel is closed."""

    @abstractmethod
    async def send(self, target_id: str, reply: Reply):
        """
        Deliver one reply.

        Raises:
            GatewayError: If the channel rejected or could not take the reply
        """

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self):
        """Acquire channel resources."""

    async def close(self):
        """Release channel resources."""
