"""Messaging gateways package."""
from .base import Gateway, GatewayError
from .telegram import TelegramGateway
from .websocket import WebSocketGateway, MessageTypes

__all__ = [
    "Gateway",
    "GatewayError",
    "TelegramGateway",
    "WebSocketGateway",
    "MessageTypes"
]
