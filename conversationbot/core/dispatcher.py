"""Event dispatch loop tying the gateway, the store and the state machine together."""
import asyncio
from typing import Optional, Set
import logging

from conversationbot.core.session_store import SessionStore
from conversationbot.core.state_machine import DialogueStateMachine, dialogue_state_machine
from conversationbot.gateway.base import Gateway, GatewayError
from conversationbot.models.schemas import InboundEvent, TransitionResult

logger = logging.getLogger(__name__)


class Dispatcher:
    """Feed gateway events through the state machine and persist after each one."""

    def __init__(
        self,
        store: SessionStore,
        gateway: Gateway,
        state_machine: Optional[DialogueStateMachine] = None,
        concurrent: bool = False
    ):
        """
        Initialize dispatcher.

        Args:
            store: Session store owning every session
            gateway: Source of events and sink for replies
            state_machine: Dialogue logic, the shared instance by default
            concurrent: Process each event in its own task
        """
        self.store = store
        self.gateway = gateway
        self.state_machine = state_machine or dialogue_state_machine
        self.concurrent = concurrent
        self._tasks: Set[asyncio.Task] = set()

    async def handle_event(self, event: InboundEvent) -> TransitionResult:
        """
        Apply one event and deliver its replies.

        Send failures are logged and do not undo the transition. The store is
        persisted whatever the outcome.
        """
        try:
            session = await self.store.get_or_create(event.actor_id)

            async with self.store.session_lock(event.actor_id):
                prior_state = session.state
                logger.info(
                    f"[UPDATE] User: {event.username} ({event.actor_id}) | "
                    f"Text: {event.text} | Current State: {prior_state.name}"
                )

                result = self.state_machine.handle(session, event)

                for reply in result.replies:
                    try:
                        await self.gateway.send(event.reply_to, reply)
                    except GatewayError as e:
                        logger.error(
                            f"Failed to send reply to {event.actor_id} "
                            f"(prior state {prior_state.name}, now {result.state.name}): {e}"
                        )

            return result

        finally:
            await self.store.persist()

    async def _process(self, event: InboundEvent):
        """Handle an event without letting its failure stop the loop."""
        try:
            await self.handle_event(event)
        except Exception as e:
            logger.error(f"Error processing event from {event.actor_id}: {e}", exc_info=True)

    async def run(self):
        """Consume gateway events until the stream ends or the task is cancelled."""
        logger.info(f"Dispatcher started (concurrent={self.concurrent})")

        try:
            async for event in self.gateway.events():
                if self.concurrent:
                    task = asyncio.create_task(self._process(event))
                    self._tasks.add(task)
                    task.add_done_callback(self._tasks.discard)
                else:
                    await self._process(event)
        finally:
            logger.info("Dispatcher stopped")

    async def shutdown(self):
        """Wait for in-flight events, then save the store one last time."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

        logger.info("Shutting down, saving storage...")
        await self.store.persist()
