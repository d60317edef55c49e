from django.contrib import admin

from .models import Notification, NotificationPreference, QueuedEmail


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "category", "level", "title", "emergency", "created_at", "read_at")
    list_filter = ("category", "level")
    search_fields = ("title", "user__username", "emergency__request_id")
    raw_id_fields = ("user", "emergency")


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = ("user", "email_enabled", "email_emergency_only", "mute_donation", "mute_drive", "mute_system")
    search_fields = ("user__username",)


@admin.register(QueuedEmail)
class QueuedEmailAdmin(admin.ModelAdmin):
    list_display = ("id", "to_email", "subject", "priority", "status", "attempts", "emergency", "created_at", "sent_at")
    list_filter = ("status", "priority")
    search_fields = ("to_email", "subject", "emergency__request_id")
    ordering = ("status", "priority", "created_at")
    readonly_fields = ("last_error", "attempts", "sent_at")
    raw_id_fields = ("user", "emergency")
