from django.urls import path
from channels.routing import URLRouter

import assistant.routing
import blood.routing

websocket_urlpatterns = [
    path("ws/blood/", URLRouter(blood.routing.websocket_urlpatterns)),
    path("ws/assistant/", URLRouter(assistant.routing.websocket_urlpatterns)),
]
