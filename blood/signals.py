from django.db.models.signals import post_save
from django.dispatch import receiver
from django.utils import timezone

from accounts.models import DonorProfile
from .models import BloodDonation


@receiver(post_save, sender=BloodDonation)
def donation_completed_updates_donor(sender, instance, **kwargs):
    """
    A completed donation moves the donor's last_donation_date forward
    (never backwards), which restarts the eligibility window.
    """
    if instance.status != "completed":
        return

    donated_on = timezone.localdate(instance.donated_at)
    (
        DonorProfile.objects
        .filter(user_id=instance.donor_user_id)
        .exclude(last_donation_date__gte=donated_on)
        .update(last_donation_date=donated_on)
    )
