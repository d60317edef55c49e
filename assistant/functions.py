"""
The closed set of operations the language model may ask for, their declared
schemas, and the Toolbox that executes them against the blood app.
"""
import logging
from enum import Enum

from blood.compatibility import BLOOD_TYPES, DIRECTIONS, get_blood_compatibility
from blood.drives import find_blood_drives
from blood.emergency import submit_emergency_request
from blood.matching import URGENCY_CHOICES, query_compatible_donors
from core.errors import LifelineError, UnknownFunction, failure

logger = logging.getLogger(__name__)


class FunctionName(str, Enum):
    FIND_COMPATIBLE_DONORS = "findCompatibleDonors"
    FIND_BLOOD_DRIVES = "findBloodDrives"
    GET_BLOOD_COMPATIBILITY = "getBloodCompatibility"
    REGISTER_EMERGENCY_REQUEST = "registerEmergencyRequest"


FUNCTION_DECLARATIONS = [
    {
        "name": FunctionName.FIND_COMPATIBLE_DONORS.value,
        "description": "Find compatible blood donors based on blood type and location requirements",
        "parameters": {
            "type": "object",
            "properties": {
                "requiredBloodType": {
                    "type": "string",
                    "description": "The blood type needed (A+, A-, B+, B-, AB+, AB-, O+, O-)",
                    "enum": list(BLOOD_TYPES),
                },
                "hospitalLocation": {
                    "type": "string",
                    "description": "The hospital or area where blood is needed",
                },
                "urgency": {
                    "type": "string",
                    "description": "Urgency level of the request",
                    "enum": list(URGENCY_CHOICES),
                },
                "maxDistance": {
                    "type": "number",
                    "description": "Maximum distance in kilometers from the hospital (default 50)",
                },
            },
            "required": ["requiredBloodType", "hospitalLocation"],
        },
    },
    {
        "name": FunctionName.FIND_BLOOD_DRIVES.value,
        "description": "Find upcoming blood drives in a specific area",
        "parameters": {
            "type": "object",
            "properties": {
                "location": {"type": "string", "description": "City or area to search for blood drives"},
                "startDate": {"type": "string", "description": "Start date to search from (YYYY-MM-DD format)"},
                "endDate": {"type": "string", "description": "End date to search until (YYYY-MM-DD format)"},
            },
            "required": ["location"],
        },
    },
    {
        "name": FunctionName.GET_BLOOD_COMPATIBILITY.value,
        "description": "Get blood type compatibility information for donors and recipients",
        "parameters": {
            "type": "object",
            "properties": {
                "bloodType": {
                    "type": "string",
                    "description": "The blood type to check compatibility for",
                    "enum": list(BLOOD_TYPES),
                },
                "checkType": {
                    "type": "string",
                    "description": "Whether to check who this blood type can donate to or receive from",
                    "enum": list(DIRECTIONS),
                },
            },
            "required": ["bloodType", "checkType"],
        },
    },
    {
        "name": FunctionName.REGISTER_EMERGENCY_REQUEST.value,
        "description": "Register an emergency blood request in the system",
        "parameters": {
            "type": "object",
            "properties": {
                "bloodType": {"type": "string", "description": "Required blood type", "enum": list(BLOOD_TYPES)},
                "hospitalName": {"type": "string", "description": "Name of the hospital"},
                "contactInfo": {"type": "string", "description": "Contact information for the request"},
                "urgency": {"type": "string", "description": "Urgency level", "enum": list(URGENCY_CHOICES)},
                "unitsNeeded": {"type": "number", "description": "Number of blood units needed"},
                "hospitalLocation": {"type": "string", "description": "City or area of the hospital, if known"},
            },
            "required": ["bloodType", "hospitalName", "contactInfo", "urgency"],
        },
    },
]


class Toolbox:
    """
    Executes one model function call. Always returns a JSON-shaped dict;
    unknown names and domain errors come back as failure envelopes.
    """

    def __init__(self, store=None, notifier=None):
        self.store = store
        self.notifier = notifier
        self._handlers = {
            FunctionName.FIND_COMPATIBLE_DONORS: self._find_compatible_donors,
            FunctionName.FIND_BLOOD_DRIVES: self._find_blood_drives,
            FunctionName.GET_BLOOD_COMPATIBILITY: self._get_blood_compatibility,
            FunctionName.REGISTER_EMERGENCY_REQUEST: self._register_emergency_request,
        }
        missing = set(FunctionName) - set(self._handlers)
        assert not missing, f"no handler for {missing}"

    def execute(self, name, args):
        try:
            fn = FunctionName(name)
        except ValueError:
            logger.warning("Model requested unknown function %r", name)
            return failure(UnknownFunction(f"Unknown function: {name}"))

        args = dict(args or {})
        try:
            return self._handlers[fn](args)
        except LifelineError as e:
            logger.warning("Function %s failed: %s", fn.value, e)
            return failure(e)

    def _find_compatible_donors(self, args):
        return query_compatible_donors(args, store=self.store)

    def _find_blood_drives(self, args):
        return find_blood_drives(args, store=self.store)

    def _get_blood_compatibility(self, args):
        return get_blood_compatibility(args.get("bloodType"), args.get("checkType"))

    def _register_emergency_request(self, args):
        return submit_emergency_request(args, store=self.store, notifier=self.notifier)
