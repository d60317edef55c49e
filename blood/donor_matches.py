"""
Per-request donor matches: who was alerted for an emergency request and how
they answered. An acceptance is escalated to operations staff, who then call
the hospital; decline and accept both show up on the ops websocket feed.
"""
import logging

from django.db import transaction
from django.utils import timezone

from core.errors import ValidationError, failure
from .models import DonorMatch, EmergencyRequest

logger = logging.getLogger(__name__)

RESPONSES = (DonorMatch.RESPONSE_ACCEPTED, DonorMatch.RESPONSE_DECLINED)


def create_donor_matches(req, donors) -> int:
    """One pending match per donor; donors already matched to `req` are left alone."""
    already = set(DonorMatch.objects.filter(request=req).values_list("donor_id", flat=True))
    rows = [DonorMatch(request=req, donor_id=u.id) for u in donors if u.id not in already]
    DonorMatch.objects.bulk_create(rows, ignore_conflicts=True)
    return len(rows)


def serialize_match(match):
    req = match.request
    return {
        "matchId": match.id,
        "requestId": req.request_id,
        "bloodType": req.blood_type,
        "unitsNeeded": req.units_needed,
        "hospitalName": req.hospital_name,
        "hospitalLocation": req.hospital_location,
        "urgency": req.urgency,
        "requestStatus": req.status,
        "response": match.response,
        "respondedAt": match.responded_at.isoformat() if match.responded_at else None,
    }


def matches_for_donor(user, pending_only=False):
    qs = DonorMatch.objects.filter(donor=user).select_related("request").order_by("-created_at")
    if pending_only:
        qs = qs.filter(response=DonorMatch.RESPONSE_PENDING)
    return [serialize_match(m) for m in qs]


def match_summary(request_id):
    """Response counts for one request. No donor identities."""
    try:
        req = EmergencyRequest.objects.get(request_id=request_id)
    except EmergencyRequest.DoesNotExist:
        return failure(ValidationError("Unknown emergency request", details={"requestId": request_id}))

    counts = {r: 0 for r, _ in DonorMatch.RESPONSES}
    for response in req.matches.values_list("response", flat=True):
        counts[response] += 1

    return {
        "success": True,
        "requestId": req.request_id,
        "status": req.status,
        "matched": sum(counts.values()),
        "accepted": counts[DonorMatch.RESPONSE_ACCEPTED],
        "declined": counts[DonorMatch.RESPONSE_DECLINED],
        "pending": counts[DonorMatch.RESPONSE_PENDING],
    }


def _answer(match_id, user, response):
    if response not in RESPONSES:
        raise ValidationError("response must be 'accepted' or 'declined'", details={"field": "response"})

    match = (
        DonorMatch.objects
        .select_related("request")
        .filter(pk=match_id, donor=user)
        .first()
    )
    if match is None:
        raise ValidationError("No such match for this donor", details={"matchId": match_id})
    if match.request.status == EmergencyRequest.STATUS_FULFILLED:
        raise ValidationError("This emergency request is already fulfilled")

    now = timezone.now()
    # the pending filter makes a second answer (or a racing one) a no-op
    updated = (
        DonorMatch.objects
        .filter(pk=match.pk, response=DonorMatch.RESPONSE_PENDING)
        .update(response=response, responded_at=now)
    )
    if not updated:
        raise ValidationError("This match was already answered", details={"matchId": match_id})

    match.response = response
    match.responded_at = now
    return match


def respond_to_match(match_id, user, response, notifier=None):
    """
    Donor answers a match with "accepted" or "declined". Staff are told after
    commit; the notifier never affects the stored answer.
    """
    response = (response or "").strip().lower() if isinstance(response, str) else ""

    try:
        with transaction.atomic():
            match = _answer(match_id, user, response)
    except ValidationError as e:
        return failure(e)

    logger.info("Match %s for %s: donor %s", match.id, match.request.request_id, response)

    if notifier is None:
        from .realtime import notify_match_response
        notifier = notify_match_response
    transaction.on_commit(lambda: notifier(match))

    data = serialize_match(match)
    data["success"] = True
    return data
