from django.urls import path
from . import views

urlpatterns = [
    path('chat', views.chat_view, name='assistant_chat'),
    path('health', views.health_view, name='health'),
    path('test-db', views.test_db_view, name='test_db'),
]
