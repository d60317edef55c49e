"""
ABO/Rh compatibility table.

CAN_DONATE_TO is the source of truth; CAN_RECEIVE_FROM is its inverse,
built once at import. Nothing mutates either table afterwards.
"""
from core.errors import InvalidBloodType

BLOOD_TYPES = ("A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-")

CAN_DONATE_TO = "canDonateTo"
CAN_RECEIVE_FROM = "canReceiveFrom"
DIRECTIONS = (CAN_DONATE_TO, CAN_RECEIVE_FROM)

_DONATE_TO = {
    "O-": ("O-", "O+", "A-", "A+", "B-", "B+", "AB-", "AB+"),
    "O+": ("O+", "A+", "B+", "AB+"),
    "A-": ("A-", "A+", "AB-", "AB+"),
    "A+": ("A+", "AB+"),
    "B-": ("B-", "B+", "AB-", "AB+"),
    "B+": ("B+", "AB+"),
    "AB-": ("AB-", "AB+"),
    "AB+": ("AB+",),
}


def _invert(table):
    inverted = {bt: [] for bt in BLOOD_TYPES}
    for donor, recipients in table.items():
        for recipient in recipients:
            inverted[recipient].append(donor)
    return inverted


_RECEIVE_FROM = _invert(_DONATE_TO)

TABLE = {
    bt: {
        CAN_DONATE_TO: frozenset(_DONATE_TO[bt]),
        CAN_RECEIVE_FROM: frozenset(_RECEIVE_FROM[bt]),
    }
    for bt in BLOOD_TYPES
}


def normalize_blood_type(value) -> str:
    """
    " o- " -> "O-". Also accepts "O neg" / "ab positive" style input.
    Raises InvalidBloodType for anything outside the eight canonical groups.
    """
    raw = (value or "")
    if not isinstance(raw, str):
        raise InvalidBloodType(f"Invalid blood type: {value!r}")

    raw = raw.strip().upper().replace(" ", "")
    raw = raw.replace("POSITIVE", "+").replace("NEGATIVE", "-")
    raw = raw.replace("POS", "+").replace("NEG", "-")
    raw = raw.replace("VE", "")

    if raw not in TABLE:
        raise InvalidBloodType(f"Invalid blood type: {value!r}")
    return raw


def sort_blood_types(types):
    return [bt for bt in BLOOD_TYPES if bt in types]


def compatibility_of(blood_type, direction):
    bt = normalize_blood_type(blood_type)
    if direction not in DIRECTIONS:
        raise InvalidBloodType(f"Unknown compatibility direction: {direction!r}")
    return TABLE[bt][direction]


def compatible_donors_for(required_type):
    """Every blood type whose canDonateTo set contains `required_type`."""
    return compatibility_of(required_type, CAN_RECEIVE_FROM)


def can_donate(donor_type, recipient_type) -> bool:
    try:
        return normalize_blood_type(recipient_type) in compatibility_of(donor_type, CAN_DONATE_TO)
    except InvalidBloodType:
        return False


def lookup_compatibility(blood_type, direction):
    """
    Inbound operation: sorted list of compatible types, InvalidBloodType otherwise.
    """
    return sort_blood_types(compatibility_of(blood_type, direction))


def get_blood_compatibility(blood_type, check_type):
    """Function-call shaped answer used by the assistant."""
    bt = normalize_blood_type(blood_type)
    types = lookup_compatibility(bt, check_type)
    if check_type == CAN_DONATE_TO:
        explanation = f"{bt} blood can be donated to: {', '.join(types)}"
    else:
        explanation = f"{bt} blood can receive from: {', '.join(types)}"
    return {
        "success": True,
        "bloodType": bt,
        "checkType": check_type,
        "compatibleTypes": types,
        "explanation": explanation,
    }
