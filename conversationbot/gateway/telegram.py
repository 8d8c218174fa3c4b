"""Telegram Bot API gateway using long polling."""
import aiohttp
import asyncio
import ssl
import certifi
from typing import Any, AsyncIterator, Dict, List, Optional
import logging
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from conversationbot.config import settings, ConfigurationError
from conversationbot.core.state_machine import command_name
from conversationbot.gateway.base import Gateway, GatewayError
from conversationbot.models.schemas import InboundEvent, Reply

logger = logging.getLogger(__name__)


def parse_update(update: Dict[str, Any]) -> Optional[InboundEvent]:
    """
    Turn a Bot API update into an inbound event.

    Returns:
        None for updates that carry no text message (stickers, edits, joins...)
    """
    message = update.get("message")
    if not message:
        return None

    text = message.get("text")
    sender = message.get("from")
    if text is None or not sender:
        return None

    entities = message.get("entities") or []
    is_command = bool(
        entities
        and entities[0].get("type") == "bot_command"
        and entities[0].get("offset") == 0
    )

    chat = message.get("chat") or {}
    return InboundEvent(
        actor_id=str(sender["id"]),
        chat_id=str(chat["id"]) if "id" in chat else None,
        text=text,
        is_command=is_command,
        command=command_name(text) if is_command else None,
        username=sender.get("username")
    )


def build_reply_markup(reply: Reply) -> Optional[Dict[str, Any]]:
    """Translate keyboard hints into Telegram reply markup."""
    if reply.remove_keyboard:
        return {"remove_keyboard": True}

    if reply.keyboard:
        return {
            "keyboard": [[{"text": label} for label in row] for row in reply.keyboard],
            "resize_keyboard": True
        }

    return None


class TelegramGateway(Gateway):
    """Raw HTTP client for the Telegram Bot API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        poll_timeout: Optional[int] = None
    ):
        """Initialize Telegram gateway."""
        self.token = token or settings.TELEGRAM_TOKEN
        if not self.token:
            raise ConfigurationError("TELEGRAM_TOKEN environment variable is required")

        self.base_url = f"{api_url or settings.TELEGRAM_API_URL}/bot{self.token}"
        self.poll_timeout = settings.POLL_TIMEOUT if poll_timeout is None else poll_timeout
        self.offset = 0
        self.session: Optional[aiohttp.ClientSession] = None
        self.timeout = aiohttp.ClientTimeout(total=self.poll_timeout + 10, connect=10)
        self._closed = False

        # Create SSL context with certifi certificates
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    async def open(self):
        """Create the HTTP session."""
        if self.session is None:
            connector = aiohttp.TCPConnector(ssl=self.ssl_context)
            self.session = aiohttp.ClientSession(timeout=self.timeout, connector=connector)
            self._closed = False

    async def close(self):
        """Stop polling and close the HTTP session."""
        self._closed = True
        if self.session:
            try:
                await self.session.close()
            except Exception as e:
                logger.warning(f"Error closing aiohttp session: {e}")
            finally:
                self.session = None

    async def _call(self, method: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        """POST a Bot API method and return its ``result``."""
        if not self.session:
            raise GatewayError("Client session not initialized. Use 'async with gateway:' or call open().")

        try:
            async with self.session.post(f"{self.base_url}/{method}", json=payload or {}) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise GatewayError(f"Telegram API request {method} failed: {e}") from e

        if status != 200 or not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else data
            raise GatewayError(f"Telegram API error on {method}: {status} - {description}")

        return data.get("result")

    async def get_me(self) -> Dict[str, Any]:
        """Fetch the bot account, which also validates the token."""
        me = await self._call("getMe")
        logger.info(f"Authorized on account {me.get('username')}")
        return me

    @retry(
        retry=retry_if_exception_type(GatewayError),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True
    )
    async def get_updates(self) -> List[Dict[str, Any]]:
        """Long-poll for updates after the current offset."""
        return await self._call("getUpdates", {
            "offset": self.offset,
            "timeout": self.poll_timeout,
            "allowed_updates": ["message"]
        }) or []

    async def events(self) -> AsyncIterator[InboundEvent]:
        """Yield text events until the gateway is closed."""
        await self.open()

        while not self._closed:
            try:
                updates = await self.get_updates()
            except GatewayError as e:
                logger.error(f"Polling failed, backing off: {e}")
                await asyncio.sleep(self.poll_timeout)
                continue

            for update in updates:
                self.offset = max(self.offset, update.get("update_id", 0) + 1)

                event = parse_update(update)
                if event is None:
                    logger.debug(f"Skipping non-text update {update.get('update_id')}")
                    continue

                yield event

    async def send(self, target_id: str, reply: Reply):
        """Send a reply with ``sendMessage``."""
        payload: Dict[str, Any] = {"chat_id": target_id, "text": reply.text}

        markup = build_reply_markup(reply)
        if markup:
            payload["reply_markup"] = markup

        await self._call("sendMessage", payload)
