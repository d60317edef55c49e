from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("assistant.urls")),   # chat, health, test-db
    path("api/blood/", include("blood.urls")),  # compatibility, donors, emergency, drives
]
