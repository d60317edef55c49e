from django.conf import settings
from django.db import models
from django.utils import timezone

from accounts.models import BLOOD_GROUPS

URGENCY_LEVELS = [
    ("low", "Low"),
    ("medium", "Medium"),
    ("high", "High"),
    ("critical", "Critical"),
]


class EmergencyRequest(models.Model):
    """
    Emergency blood request. Created here in `active`; moved forward only by
    operations staff (admin actions). Never deleted by the app.
    """
    STATUS_ACTIVE = "active"
    STATUS_PROCESSING = "processing"
    STATUS_FULFILLED = "fulfilled"

    STATUS = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_PROCESSING, "Processing"),
        (STATUS_FULFILLED, "Fulfilled"),
    ]

    # allowed forward moves
    TRANSITIONS = {
        STATUS_ACTIVE: STATUS_PROCESSING,
        STATUS_PROCESSING: STATUS_FULFILLED,
    }

    request_id = models.CharField(max_length=40, unique=True)
    blood_type = models.CharField(max_length=3, choices=BLOOD_GROUPS)
    hospital_name = models.CharField(max_length=150)
    hospital_location = models.CharField(max_length=100, blank=True)
    contact_info = models.CharField(max_length=150)
    urgency = models.CharField(max_length=10, choices=URGENCY_LEVELS, default="medium")
    units_needed = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=12, choices=STATUS, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="emergency_status_idx"),
        ]

    def advance_status(self, target: str) -> bool:
        if self.TRANSITIONS.get(self.status) != target:
            return False
        self.status = target
        self.save(update_fields=["status", "updated_at"])
        return True

    def __str__(self):
        return f"{self.request_id}: {self.blood_type} at {self.hospital_name} ({self.urgency})"


class BloodDrive(models.Model):
    title = models.CharField(max_length=200)
    description = models.TextField(blank=True)

    event_date = models.DateField()
    start_time = models.TimeField(null=True, blank=True)
    end_time = models.TimeField(null=True, blank=True)

    location = models.CharField(max_length=100, help_text="City or area")
    address = models.CharField(max_length=255, blank=True)

    expected_donors = models.PositiveIntegerField(default=0)
    registered_donors = models.PositiveIntegerField(default=0)

    contact_phone = models.CharField(max_length=20, blank=True)
    contact_email = models.EmailField(blank=True)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["event_date", "start_time"]

    def __str__(self):
        return f"{self.title} ({self.location}, {self.event_date})"


class BloodDonation(models.Model):
    STATUS = [
        ("scheduled", "Scheduled"),
        ("completed", "Completed"),
        ("cancelled", "Cancelled"),
    ]

    donor_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="blood_donations",
    )
    request = models.ForeignKey(
        EmergencyRequest,
        null=True, blank=True,
        on_delete=models.SET_NULL,
        related_name="donations",
    )

    blood_type = models.CharField(max_length=3, choices=BLOOD_GROUPS)
    units = models.PositiveIntegerField(default=1)
    hospital_name = models.CharField(max_length=150, blank=True)
    donated_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=10, choices=STATUS, default="scheduled")

    # filled in by ledger.services once the record is confirmed on-chain
    ledger_txid = models.CharField(max_length=64, blank=True)
    ledger_recorded_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-donated_at"]

    def __str__(self):
        return f"Donation#{self.id} {self.blood_type} by {self.donor_user}"


class DonorMatch(models.Model):
    """
    One compatible donor alerted for one emergency request, and their answer.
    Created `pending` when the alert goes out; the donor accepts or declines once.
    """
    RESPONSE_PENDING = "pending"
    RESPONSE_ACCEPTED = "accepted"
    RESPONSE_DECLINED = "declined"

    RESPONSES = [
        (RESPONSE_PENDING, "Pending"),
        (RESPONSE_ACCEPTED, "Accepted"),
        (RESPONSE_DECLINED, "Declined"),
    ]

    request = models.ForeignKey(EmergencyRequest, on_delete=models.CASCADE, related_name="matches")
    donor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="donor_matches",
    )

    response = models.CharField(max_length=10, choices=RESPONSES, default=RESPONSE_PENDING)
    created_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["request", "donor"], name="one_match_per_donor"),
        ]
        indexes = [
            models.Index(fields=["request", "response"], name="match_request_response_idx"),
        ]

    def __str__(self):
        return f"{self.request.request_id} -> donor {self.donor_id} ({self.response})"
