from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from core.errors import ValidationError, failure
from .backends import build_dispatcher


class AssistantChatConsumer(AsyncJsonWebsocketConsumer):
    """
    One socket = one conversation. History lives on the connection and
    messages are handled one at a time, so turns never overlap.

    Client -> server: {"type": "SEND", "message": "..."} or {"type": "RESET"}
    Server -> client: {"type": "REPLY", ...}, {"type": "RESET"} or {"type": "ERROR", ...}
    """
    async def connect(self):
        self.history = []
        self.dispatcher = build_dispatcher()
        await self.accept()

    async def send_error(self, message):
        data = failure(ValidationError(message))
        data["type"] = "ERROR"
        await self.send_json(data)

    async def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            await self.send_error("Expected a JSON object")
            return

        msg_type = content.get("type")
        msg_type = msg_type.upper() if isinstance(msg_type, str) else ""

        if msg_type == "RESET":
            self.history = []
            await self.send_json({"type": "RESET", "turns": 0})
            return

        if msg_type != "SEND":
            await self.send_error("Unknown message type")
            return

        message = content.get("message")
        if not isinstance(message, str) or not message.strip():
            await self.send_error("Message is required")
            return

        result = await database_sync_to_async(self.dispatcher.send_chat_turn)(message, self.history)
        self.history = result["history"]

        await self.send_json({
            "type": "REPLY",
            "success": result["success"],
            "reply": result["reply"],
            "functionCalls": result["functionCalls"],
            "turns": len(self.history),
        })
