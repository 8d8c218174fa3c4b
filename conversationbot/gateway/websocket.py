"""WebSocket gateway for browser and test clients."""
import asyncio
from typing import AsyncIterator, Dict, List, Optional
from datetime import datetime
import logging
from fastapi import WebSocket

from conversationbot.core.state_machine import command_name
from conversationbot.gateway.base import Gateway, GatewayError
from conversationbot.models.schemas import InboundEvent, Reply, WebSocketMessage

logger = logging.getLogger(__name__)


class MessageTypes:
    """WebSocket message types."""

    # Connection management
    CONNECTION_ESTABLISHED = "connection_established"
    HEARTBEAT = "heartbeat"
    HEARTBEAT_ACK = "heartbeat_ack"

    # Conversation
    USER_MESSAGE = "user_message"
    BOT_MESSAGE = "bot_message"

    # Errors and notifications
    WARNING = "warning"


class WebSocketGateway(Gateway):
    """Manage WebSocket connections and expose them as a gateway."""

    def __init__(self, heartbeat_interval: int = 30):
        """Initialize WebSocket gateway."""
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_connections: Dict[str, List[WebSocket]] = {}
        self.heartbeat_tasks: Dict[str, asyncio.Task] = {}
        self.heartbeat_interval = heartbeat_interval
        self._connection_actors: Dict[str, str] = {}
        self._queue: "asyncio.Queue[Optional[InboundEvent]]" = asyncio.Queue()
        self._closed = False

    async def connect(self, websocket: WebSocket, actor_id: str) -> str:
        """
        Accept a new WebSocket connection.

        Args:
            websocket: WebSocket connection
            actor_id: Actor the connection speaks for

        Returns:
            Connection identifier
        """
        await websocket.accept()

        connection_id = f"{actor_id}_{datetime.now().timestamp()}"

        self.active_connections[connection_id] = websocket
        self._connection_actors[connection_id] = actor_id
        self.session_connections.setdefault(actor_id, []).append(websocket)

        # Start heartbeat
        self.heartbeat_tasks[connection_id] = asyncio.create_task(
            self._heartbeat_loop(websocket, connection_id)
        )

        logger.info(f"WebSocket connected: {connection_id} (actor: {actor_id})")

        await websocket.send_json(WebSocketMessage(
            type=MessageTypes.CONNECTION_ESTABLISHED,
            data={"connection_id": connection_id, "actor_id": actor_id}
        ).model_dump(mode='json'))

        return connection_id

    def disconnect(self, actor_id: str, websocket: Optional[WebSocket] = None):
        """
        Forget a connection, or every connection of an actor.

        Args:
            actor_id: Actor identifier
            websocket: Specific WebSocket to disconnect (optional)
        """
        connections_to_remove = [
            conn_id for conn_id, conn_websocket in self.active_connections.items()
            if self._connection_actors.get(conn_id) == actor_id
            and (websocket is None or conn_websocket is websocket)
        ]

        for conn_id in connections_to_remove:
            task = self.heartbeat_tasks.pop(conn_id, None)
            if task:
                task.cancel()
            self.active_connections.pop(conn_id, None)
            self._connection_actors.pop(conn_id, None)
            logger.info(f"WebSocket disconnected: {conn_id}")

        if actor_id in self.session_connections:
            if websocket is not None:
                self.session_connections[actor_id] = [
                    conn for conn in self.session_connections[actor_id]
                    if conn is not websocket
                ]
            else:
                self.session_connections[actor_id] = []

            if not self.session_connections[actor_id]:
                del self.session_connections[actor_id]

    async def receive(self, actor_id: str, message: Dict):
        """
        Handle a client message.

        User text is queued for the dispatcher; anything else is answered
        here.
        """
        if not isinstance(message, dict):
            message = {}
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == MessageTypes.USER_MESSAGE:
            text = data.get("text") if isinstance(data, dict) else None
            if not isinstance(text, str) or not text:
                logger.debug(f"Ignoring user_message without text from {actor_id}")
                return

            is_command = text.startswith("/")
            await self._queue.put(InboundEvent(
                actor_id=actor_id,
                text=text,
                is_command=is_command,
                command=command_name(text) if is_command else None
            ))

        elif message_type == MessageTypes.HEARTBEAT:
            await self._send_json(actor_id, WebSocketMessage(type=MessageTypes.HEARTBEAT_ACK))

        else:
            logger.warning(f"Unknown message type: {message_type}")
            await self._send_json(actor_id, WebSocketMessage(
                type=MessageTypes.WARNING,
                data={"message": f"Unknown message type: {message_type}"}
            ))

    async def events(self) -> AsyncIterator[InboundEvent]:
        """Yield queued user messages until the gateway is closed."""
        while not self._closed:
            event = await self._queue.get()
            if event is None:
                break
            yield event

    async def send(self, target_id: str, reply: Reply):
        """Push a reply to every connection of an actor."""
        if target_id not in self.session_connections:
            raise GatewayError(f"No active connections for actor: {target_id}")

        delivered = await self._send_json(target_id, WebSocketMessage(
            type=MessageTypes.BOT_MESSAGE,
            data=reply.model_dump()
        ))
        if not delivered:
            raise GatewayError(f"Could not deliver reply to actor: {target_id}")

    async def _send_json(self, actor_id: str, message: WebSocketMessage) -> int:
        """Send to all connections of an actor, dropping the broken ones."""
        payload = message.model_dump(mode='json')
        delivered = 0
        disconnected = []

        for websocket in list(self.session_connections.get(actor_id, [])):
            try:
                await websocket.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.error(f"Error sending message to WebSocket: {e}")
                disconnected.append(websocket)

        for websocket in disconnected:
            self.disconnect(actor_id, websocket)

        return delivered

    async def close(self):
        """Disconnect all WebSocket connections and end the event stream."""
        self._closed = True
        await self._queue.put(None)

        for task in self.heartbeat_tasks.values():
            task.cancel()

        for websocket in self.active_connections.values():
            try:
                await websocket.close()
            except Exception as e:
                logger.error(f"Error closing WebSocket: {e}")

        self.active_connections.clear()
        self.session_connections.clear()
        self.heartbeat_tasks.clear()
        self._connection_actors.clear()

        logger.info("All WebSocket connections disconnected")

    def get_connection_count(self) -> int:
        """Get total number of active connections."""
        return len(self.active_connections)

    async def _heartbeat_loop(self, websocket: WebSocket, connection_id: str):
        """Maintain heartbeat with WebSocket connection."""
        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)
                await websocket.send_json(WebSocketMessage(
                    type=MessageTypes.HEARTBEAT,
                    data={"connection_id": connection_id}
                ).model_dump(mode='json'))

        except asyncio.CancelledError:
            logger.debug(f"Heartbeat cancelled for {connection_id}")
        except Exception as e:
            logger.error(f"Heartbeat error for {connection_id}: {e}")
            actor_id = self._connection_actors.get(connection_id)
            if actor_id is not None:
                self.disconnect(actor_id, websocket)
