"""
Gateway to the relational store for the matching core.

Everything the resolver, registrar and drive search read or write goes
through DonorStore so callers (and tests) can swap it for another object
with the same methods.
"""
import logging

from django.db import DatabaseError, IntegrityError, transaction
from django.db.models import F, Q

from accounts.models import DonorProfile
from core.errors import StoreError
from .models import BloodDrive, EmergencyRequest

logger = logging.getLogger(__name__)


class DonorStore:

    def search_donors(self, blood_types, location_aliases, limit):
        """
        Available, active donors of the given types whose city contains any alias.
        Oldest (or no) last donation first.
        """
        q = Q()
        for a in location_aliases:
            if a:
                q |= Q(city__icontains=a)

        qs = (
            DonorProfile.objects
            .filter(
                blood_group__in=list(blood_types),
                is_available=True,
                donor_status="active",
                user__is_active=True,
            )
            .select_related("user")
        )
        if q:
            qs = qs.filter(q)

        qs = qs.order_by(F("last_donation_date").asc(nulls_first=True), "id")
        try:
            return list(qs[:limit])
        except DatabaseError as e:
            logger.error("Donor search failed: %s", e)
            raise StoreError("Donor search failed", details={"reason": str(e)[:200]}) from e

    def search_blood_drives(self, location, start_date=None, end_date=None, limit=10):
        qs = BloodDrive.objects.filter(is_active=True, location__icontains=location)
        if start_date:
            qs = qs.filter(event_date__gte=start_date)
        if end_date:
            qs = qs.filter(event_date__lte=end_date)
        qs = qs.order_by("event_date", "start_time")
        try:
            return list(qs[:limit])
        except DatabaseError as e:
            logger.error("Blood drive search failed: %s", e)
            raise StoreError("Blood drive search failed", details={"reason": str(e)[:200]}) from e

    def insert_emergency_request(self, **fields):
        """
        Insert and return the row. IntegrityError (duplicate request_id) is
        left to the caller, any other database failure becomes StoreError.
        """
        try:
            with transaction.atomic():
                return EmergencyRequest.objects.create(**fields)
        except IntegrityError:
            raise
        except DatabaseError as e:
            logger.error("Emergency request insert failed: %s", e)
            raise StoreError("Could not save emergency request", details={"reason": str(e)[:200]}) from e

    def ping(self) -> bool:
        try:
            DonorProfile.objects.exists()
        except DatabaseError as e:
            raise StoreError("Database unreachable", details={"reason": str(e)[:200]}) from e
        return True
