from datetime import timedelta

from django.conf import settings
from django.utils import timezone


def eligibility_days() -> int:
    return int(getattr(settings, "LIFELINE_ELIGIBILITY_DAYS", 90))


def next_eligible_date(last_donation_date):
    if not last_donation_date:
        return None
    return last_donation_date + timedelta(days=eligibility_days())


def is_eligible(last_donation_date, today=None):
    nxt = next_eligible_date(last_donation_date)
    today = today or timezone.localdate()
    return nxt is None or today >= nxt
