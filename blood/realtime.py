import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.contrib.auth import get_user_model
from django.db.models import Q

from communication.models import CATEGORY_EMERGENCY
from communication.services import notify_users
from .compatibility import compatible_donors_for
from .donor_matches import create_donor_matches
from .matching import city_aliases

logger = logging.getLogger(__name__)

EMERGENCY_OPS_GROUP = "emergency_ops"


def _payload(req):
    return {
        "type": "EMERGENCY_REQUEST",
        "request_id": req.request_id,
        "blood_type": req.blood_type,
        "units_needed": req.units_needed,
        "hospital": req.hospital_name,
        "location": req.hospital_location,
        "urgency": req.urgency,
        "status": req.status,
        "created_at": req.created_at.isoformat(),
    }


def push_ops_event(data) -> bool:
    """Fire-and-forget push to staff dashboards listening on ws/blood/emergency/."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False
    async_to_sync(channel_layer.group_send)(
        EMERGENCY_OPS_GROUP,
        {"type": "emergency_event", "data": data},
    )
    return True


def push_emergency_event(req) -> bool:
    return push_ops_event(_payload(req))


def staff_users():
    return get_user_model().objects.filter(is_active=True, is_staff=True)


def donor_users_for(req):
    """Compatible, available donors in the request's location (none without a location)."""
    location = (req.hospital_location or "").strip()
    if not location:
        return get_user_model().objects.none()

    q = Q()
    for a in city_aliases(location):
        if a:
            q |= Q(donor_profile__city__icontains=a)

    return (
        get_user_model().objects
        .filter(
            is_active=True,
            donor_profile__is_available=True,
            donor_profile__donor_status="active",
            donor_profile__blood_group__in=list(compatible_donors_for(req.blood_type)),
        )
        .filter(q)
    )


def notify_emergency_request(req):
    """
    Notification intent for a freshly registered request: ops staff, compatible
    donors nearby (each gets a pending DonorMatch), and the websocket ops feed.
    Each channel fails on its own.
    """
    title = f"Emergency: {req.blood_type} blood needed"
    body = (
        f"{req.units_needed} unit(s) of {req.blood_type} needed at {req.hospital_name}. "
        f"Urgency: {req.urgency}. Request {req.request_id}."
    )

    try:
        notify_users(
            staff_users(),
            title=title,
            body=body + f" Contact: {req.contact_info}",
            level="DANGER",
            category=CATEGORY_EMERGENCY,
            email_subject=f"[Lifeline] {title} ({req.urgency})",
            email_body=body + f"\nContact: {req.contact_info}",
            emergency=req,
        )
    except Exception:
        logger.exception("Staff notification failed for %s", req.request_id)

    try:
        donors = list(donor_users_for(req))
        matched = create_donor_matches(req, donors)
        notify_users(
            get_user_model().objects.filter(pk__in=[u.pk for u in donors]),
            title=title,
            body=body + " Open your pending matches to accept or decline.",
            level="DANGER",
            category=CATEGORY_EMERGENCY,
            email_subject=f"[Lifeline] {title}",
            email_body=body + "\nIf you can help, accept the match from your Lifeline dashboard.",
            emergency=req,
        )
        logger.info("Emergency %s matched %d donor(s)", req.request_id, matched)
    except Exception:
        logger.exception("Donor notification failed for %s", req.request_id)

    try:
        push_emergency_event(req)
    except Exception:
        logger.exception("Realtime push failed for %s", req.request_id)


def notify_match_response(match):
    """A donor answered. Acceptances go to every staff user; both go to the ops feed."""
    req = match.request

    if match.response == match.RESPONSE_ACCEPTED:
        try:
            notify_users(
                staff_users(),
                title=f"Donor found for {req.request_id}",
                body=(
                    f"A {req.blood_type}-compatible donor accepted the request at {req.hospital_name}. "
                    f"Match #{match.id}; see the admin for contact details."
                ),
                level="SUCCESS",
                category=CATEGORY_EMERGENCY,
                email_subject=f"[Lifeline] Donor accepted {req.request_id}",
                email_body=f"Match #{match.id} for {req.request_id} at {req.hospital_name} was accepted.",
                emergency=req,
            )
        except Exception:
            logger.exception("Staff notification failed for match %s", match.id)

    try:
        push_ops_event({
            "type": "DONOR_RESPONSE",
            "request_id": req.request_id,
            "match_id": match.id,
            "response": match.response,
            "responded_at": match.responded_at.isoformat() if match.responded_at else None,
        })
    except Exception:
        logger.exception("Realtime push failed for match %s", match.id)
