from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.contrib.auth.models import AnonymousUser

from .realtime import EMERGENCY_OPS_GROUP


class EmergencyOpsConsumer(AsyncJsonWebsocketConsumer):
    """
    Operations staff feed. Joins group: emergency_ops
    Server pushes every newly registered emergency request here.
    """
    async def connect(self):
        user = self.scope.get("user", None)
        if not user or isinstance(user, AnonymousUser) or not user.is_authenticated:
            await self.close()
            return

        if not getattr(user, "is_staff", False):
            await self.close()
            return

        self.group_name = EMERGENCY_OPS_GROUP
        await self.channel_layer.group_add(self.group_name, self.channel_name)
        await self.accept()

    async def disconnect(self, close_code):
        if hasattr(self, "group_name"):
            await self.channel_layer.group_discard(self.group_name, self.channel_name)

    async def emergency_event(self, event):
        await self.send_json(event.get("data", {}))
