from django.urls import path
from . import consumers

websocket_urlpatterns = [
    path("emergency/", consumers.EmergencyOpsConsumer.as_asgi()),
]
