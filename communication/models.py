from django.conf import settings
from django.db import models
from django.utils import timezone

CATEGORY_SYSTEM = "SYSTEM"
CATEGORY_EMERGENCY = "EMERGENCY"
CATEGORY_DONATION = "DONATION"
CATEGORY_DRIVE = "DRIVE"

CATEGORIES = [
    (CATEGORY_SYSTEM, "System"),
    (CATEGORY_EMERGENCY, "Emergency"),
    (CATEGORY_DONATION, "Donation"),
    (CATEGORY_DRIVE, "Blood drive"),
]


class Notification(models.Model):
    """In-app alert. Emergency alerts point back at the request that raised them."""
    LEVELS = [("INFO", "Info"), ("SUCCESS", "Success"), ("WARNING", "Warning"), ("DANGER", "Danger")]

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notifications")
    category = models.CharField(max_length=20, choices=CATEGORIES, default=CATEGORY_SYSTEM)
    level = models.CharField(max_length=10, choices=LEVELS, default="INFO")
    emergency = models.ForeignKey(
        "blood.EmergencyRequest",
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="notifications",
    )

    title = models.CharField(max_length=120)
    body = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    read_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "read_at"], name="notif_user_unread_idx"),
        ]

    def mark_read(self):
        if self.read_at is None:
            self.read_at = timezone.now()
            self.save(update_fields=["read_at"])

    def __str__(self):
        return f"[{self.category}] {self.title} -> user {self.user_id}"


class NotificationPreference(models.Model):
    """
    Opt-outs per user. Emergency alerts always land in-app; the only way to
    stop emergency email is to switch email off entirely.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="notif_pref")

    mute_donation = models.BooleanField(default=False)
    mute_drive = models.BooleanField(default=False)
    mute_system = models.BooleanField(default=False)

    email_enabled = models.BooleanField(default=True)
    email_emergency_only = models.BooleanField(default=False)

    updated_at = models.DateTimeField(auto_now=True)

    def wants_inapp(self, category) -> bool:
        return not {
            CATEGORY_DONATION: self.mute_donation,
            CATEGORY_DRIVE: self.mute_drive,
            CATEGORY_SYSTEM: self.mute_system,
        }.get(category, False)

    def wants_email(self, category) -> bool:
        if not self.email_enabled:
            return False
        return category == CATEGORY_EMERGENCY or not self.email_emergency_only

    def __str__(self):
        return f"Preferences of user {self.user_id}"


class QueuedEmail(models.Model):
    """
    Outbox row, sent by `send_queued_emails`. Emergency mail is queued at
    PRIORITY_URGENT and always leaves before routine mail.
    """
    PRIORITY_URGENT = 0
    PRIORITY_ROUTINE = 1
    PRIORITIES = [(PRIORITY_URGENT, "Urgent"), (PRIORITY_ROUTINE, "Routine")]

    STATUS_PENDING = "PENDING"
    STATUS_SENT = "SENT"
    STATUS_FAILED = "FAILED"
    STATUS = [(STATUS_PENDING, "Pending"), (STATUS_SENT, "Sent"), (STATUS_FAILED, "Failed")]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="queued_emails",
    )
    emergency = models.ForeignKey(
        "blood.EmergencyRequest",
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="queued_emails",
    )
    to_email = models.EmailField()
    subject = models.CharField(max_length=200)
    body = models.TextField()

    priority = models.PositiveSmallIntegerField(choices=PRIORITIES, default=PRIORITY_ROUTINE)
    status = models.CharField(max_length=10, choices=STATUS, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "priority", "created_at"], name="outbox_next_idx"),
        ]

    def __str__(self):
        return f"{self.to_email} [{self.status}, p{self.priority}]"
