"""
Emergency request registrar.

Validation happens before any store call. A request is persisted in
`active` and the notification intent is handed to blood.realtime after the
transaction commits, so a notification failure can never roll back or
fail the registration itself.
"""
import logging
import secrets

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.errors import StoreError, ValidationError, failure
from .forms import EmergencyRequestForm
from .models import EmergencyRequest
from .store import DonorStore

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 3

# Operational commitments shown to the requester. Declarative only.
NEXT_STEPS = (
    "Hospital staff will be contacted within 15 minutes",
    "Compatible donors in the area will be notified",
    "Blood bank inventory will be checked",
    "Updates will be provided every 30 minutes",
)


def new_request_id(now=None) -> str:
    ms = int((now or timezone.now()).timestamp() * 1000)
    return f"EMR-{ms}-{secrets.token_hex(3)}"


def _validated(payload):
    form = EmergencyRequestForm.from_payload(payload)
    if not form.is_valid():
        errors = {k: [str(m) for m in v] for k, v in form.errors.items()}
        raise ValidationError("Invalid emergency request", details={"fields": errors})
    return form.cleaned_data


def register_emergency_request(payload, store=None, notifier=None) -> EmergencyRequest:
    """
    Validate and persist. Raises ValidationError / StoreError.
    Two identical payloads give two distinct requests; there is no dedup key.
    """
    data = _validated(payload)
    store = store or DonorStore()

    if notifier is None:
        from .realtime import notify_emergency_request
        notifier = notify_emergency_request

    req = None
    for attempt in range(1, MAX_ID_ATTEMPTS + 1):
        try:
            req = store.insert_emergency_request(
                request_id=new_request_id(),
                blood_type=data["blood_type"],
                hospital_name=data["hospital_name"],
                hospital_location=data.get("hospital_location") or "",
                contact_info=data["contact_info"],
                urgency=data["urgency"],
                units_needed=data["units_needed"],
                status=EmergencyRequest.STATUS_ACTIVE,
                created_at=timezone.now(),
            )
            break
        except IntegrityError:
            logger.warning("Emergency request id collision (attempt %d)", attempt)

    if req is None:
        raise StoreError("Could not allocate a unique emergency request id")

    logger.info(
        "Emergency request %s registered: %s x%d at %s (%s)",
        req.request_id, req.blood_type, req.units_needed, req.hospital_name, req.urgency,
    )

    transaction.on_commit(lambda: notifier(req))
    return req


def submit_emergency_request(payload, store=None, notifier=None):
    """
    Inbound operation. Returns the acknowledgement dict or a failure envelope
    carrying the phone fallback.
    """
    try:
        req = register_emergency_request(payload, store=store, notifier=notifier)
    except (ValidationError, StoreError) as e:
        return failure(e, emergency=True)

    return {
        "success": True,
        "requestId": req.request_id,
        "bloodType": req.blood_type,
        "hospitalName": req.hospital_name,
        "urgency": req.urgency,
        "unitsNeeded": req.units_needed,
        "status": req.status,
        "createdAt": req.created_at.isoformat(),
        "message": "Emergency request registered successfully. Our team will process this immediately.",
        "nextSteps": list(NEXT_STEPS),
    }
