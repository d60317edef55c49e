import logging

from django.utils import timezone

from core.errors import StoreError, ValidationError, failure
from .forms import BloodDriveSearchForm
from .store import DonorStore

logger = logging.getLogger(__name__)


def serialize_drive(d):
    return {
        "id": d.id,
        "title": d.title,
        "description": d.description,
        "eventDate": d.event_date.isoformat(),
        "startTime": d.start_time.strftime("%H:%M") if d.start_time else None,
        "endTime": d.end_time.strftime("%H:%M") if d.end_time else None,
        "location": d.location,
        "address": d.address,
        "expectedDonors": d.expected_donors,
        "registeredDonors": d.registered_donors,
        "contactPhone": d.contact_phone,
        "contactEmail": d.contact_email,
    }


def find_blood_drives(params, store=None):
    """
    Active drives in `location`, from startDate (default today) to endDate.
    """
    store = store or DonorStore()

    form = BloodDriveSearchForm.from_payload(params)
    if not form.is_valid():
        errors = {k: [str(m) for m in v] for k, v in form.errors.items()}
        return failure(ValidationError("Invalid blood drive search", details={"fields": errors}))

    location = form.cleaned_data["location"].strip()
    start = form.cleaned_data.get("start_date") or timezone.localdate()
    end = form.cleaned_data.get("end_date")

    try:
        drives = store.search_blood_drives(location, start_date=start, end_date=end, limit=10)
    except StoreError as e:
        return failure(e)

    logger.info("Blood drive search %r: %d found", location, len(drives))

    return {
        "success": True,
        "location": location,
        "bloodDrives": [serialize_drive(d) for d in drives],
        "totalFound": len(drives),
    }
