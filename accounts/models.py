from django.db import models
from django.contrib.auth.models import AbstractUser
from django.conf import settings

BLOOD_GROUPS = (
    ('A+', 'A+'), ('A-', 'A-'),
    ('B+', 'B+'), ('B-', 'B-'),
    ('AB+', 'AB+'), ('AB-', 'AB-'),
    ('O+', 'O+'), ('O-', 'O-'),
)


class CustomUser(AbstractUser):
    """
    Core User model.
    Users can be donors, recipients or operations staff (is_staff).
    """
    is_donor = models.BooleanField(default=False)
    is_recipient = models.BooleanField(default=False)

    phone_number = models.CharField(max_length=20, blank=True)

    def __str__(self):
        return self.username


class DonorProfile(models.Model):
    """
    Registered donor record. Holds PII through `user`; anything leaving the
    donor resolver is projected through blood.matching.anonymize_donor.
    """
    STATUS = (
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    )

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='donor_profile')

    blood_group = models.CharField(max_length=3, choices=BLOOD_GROUPS)
    city = models.CharField(max_length=100, blank=True, help_text="City or area, e.g. 'Andheri, Mumbai'")

    is_available = models.BooleanField(default=True)
    donor_status = models.CharField(max_length=10, choices=STATUS, default='active')
    last_donation_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['blood_group', 'is_available', 'donor_status'], name='donor_match_idx'),
        ]

    @property
    def contact_available(self) -> bool:
        return bool((self.user.phone_number or "").strip())

    def __str__(self):
        return f"Donor {self.blood_group} ({self.user.username})"
