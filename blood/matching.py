import logging
import math
import re

from django.conf import settings

from core.errors import StoreError, ValidationError, failure
from .compatibility import compatible_donors_for, normalize_blood_type, sort_blood_types
from .eligibility import is_eligible
from .store import DonorStore

logger = logging.getLogger(__name__)

URGENCY_CHOICES = ("low", "medium", "high", "critical")


# Searchable spellings per city. Donor rows are matched by substring on each.
CITY_ALIASES = {
    "mumbai": ("mumbai", "bombay"),
    "delhi": ("delhi",),
    "bengaluru": ("bengaluru", "bangalore"),
    "chennai": ("chennai", "madras"),
    "kolkata": ("kolkata", "calcutta"),
    "gurugram": ("gurugram", "gurgaon"),
}

# Shorthand people type into chat, too short to search on.
CITY_SHORTHAND = {"blr": "bengaluru", "ncr": "delhi", "bom": "mumbai"}

_SPELLING_TO_CITY = dict(CITY_SHORTHAND)
for _city, _spellings in CITY_ALIASES.items():
    for _s in _spellings:
        _SPELLING_TO_CITY[_s] = _city

_PLACE_SPLIT_RE = re.compile(r"[,|/;]+")


def canonical_city(value: str) -> str:
    """
    "Andheri, Mumbai" -> "mumbai", "Koramangala Bangalore" -> "bengaluru".
    The rightmost known city word wins; unknown places come back lowercased.
    """
    text = " ".join((value or "").lower().split())
    if not text:
        return ""

    for place in reversed(_PLACE_SPLIT_RE.split(text)):
        words = place.split()
        for word in reversed(words):
            if word in _SPELLING_TO_CITY:
                return _SPELLING_TO_CITY[word]

    return text


def city_aliases(value: str):
    city = canonical_city(value)
    return set(CITY_ALIASES.get(city, (city,)))


def anonymize_donor(profile, today=None):
    """
    The only donor projection allowed to leave the resolver.
    No name, phone, address or internal id.
    """
    last = profile.last_donation_date
    return {
        "bloodType": profile.blood_group,
        "location": profile.city,
        "lastDonation": last.isoformat() if last else None,
        "contactAvailable": profile.contact_available,
        "eligible": is_eligible(last, today=today),
    }


def clean_donor_query(query):
    query = query or {}

    blood_type = normalize_blood_type(query.get("requiredBloodType"))

    location = (query.get("hospitalLocation") or "")
    if not isinstance(location, str) or not location.strip():
        raise ValidationError("hospitalLocation is required", details={"field": "hospitalLocation"})

    urgency = (query.get("urgency") or "medium")
    urgency = str(urgency).strip().lower()
    if urgency not in URGENCY_CHOICES:
        raise ValidationError(f"Invalid urgency: {urgency}", details={"field": "urgency"})

    max_distance = query.get("maxDistance")
    if max_distance in (None, ""):
        max_distance = getattr(settings, "LIFELINE_DEFAULT_MAX_DISTANCE_KM", 50)
    try:
        max_distance = float(max_distance)
    except (TypeError, ValueError):
        raise ValidationError("maxDistance must be a number", details={"field": "maxDistance"})
    if not math.isfinite(max_distance) or max_distance <= 0:
        raise ValidationError("maxDistance must be positive", details={"field": "maxDistance"})

    return {
        "requiredBloodType": blood_type,
        "hospitalLocation": location.strip(),
        "urgency": urgency,
        "maxDistance": max_distance,
    }


def query_compatible_donors(query, store=None):
    """
    Resolve {requiredBloodType, hospitalLocation, urgency?, maxDistance?} into
    at most LIFELINE_DONOR_RESULT_LIMIT anonymized donors.

    Never raises: invalid input and store failures come back as failure envelopes.
    maxDistance is echoed only; there is no geocoding.
    """
    store = store or DonorStore()

    try:
        q = clean_donor_query(query)
    except ValidationError as e:
        return failure(e)

    compatible = compatible_donors_for(q["requiredBloodType"])
    limit = int(getattr(settings, "LIFELINE_DONOR_RESULT_LIMIT", 10))

    try:
        profiles = store.search_donors(compatible, city_aliases(q["hospitalLocation"]), limit)
    except StoreError as e:
        logger.warning("Donor search for %s failed", q["requiredBloodType"])
        return failure(e, emergency=q["urgency"] == "critical")

    donors = [anonymize_donor(p) for p in profiles[:limit]]

    logger.info(
        "Donor search %s in %r: %d found",
        q["requiredBloodType"], q["hospitalLocation"], len(donors),
    )

    return {
        "success": True,
        "requiredBloodType": q["requiredBloodType"],
        "compatibleBloodTypes": sort_blood_types(compatible),
        "donors": donors,
        "totalFound": len(donors),
        "urgency": q["urgency"],
        "searchLocation": q["hospitalLocation"],
        "maxDistance": q["maxDistance"],
    }
