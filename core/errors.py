"""
Error taxonomy shared by the blood, assistant and ledger apps.

Public operations catch these at their boundary and hand back a
``failure(...)`` envelope instead of letting the exception escape.
"""
from django.conf import settings


class LifelineError(Exception):
    code = "error"
    user_message = "Something went wrong. Please try again."

    def __init__(self, message="", details=None):
        super().__init__(message or self.user_message)
        self.details = details or {}


class ValidationError(LifelineError):
    """Bad or missing input. Caller's fault, never retried automatically."""
    code = "validation_error"
    user_message = "Some of the information provided is missing or invalid."


class InvalidBloodType(ValidationError):
    code = "invalid_blood_type"
    user_message = "That is not a recognised blood type."


class StoreError(LifelineError):
    """Data store unreachable or query rejected. Retry is the caller's call."""
    code = "store_error"
    user_message = "We could not reach the donor database right now."


class ModelError(LifelineError):
    code = "model_error"
    user_message = "The assistant is unavailable at the moment."


class UnknownFunction(LifelineError):
    code = "unknown_function"
    user_message = "The assistant asked for something we cannot do yet."


class LedgerError(LifelineError):
    code = "ledger_error"
    user_message = "The donation could not be recorded on the ledger."


def emergency_fallback_text():
    phone = getattr(settings, "LIFELINE_EMERGENCY_PHONE", "108")
    return (
        f"If this is a blood emergency, call {phone} or contact the hospital "
        "blood bank directly. Do not wait for the assistant."
    )


def failure(exc, emergency=False):
    """
    Structured failure result: {"success": False, "error": <code>, "message": ...}.
    Emergency callers also get the phone fallback line.
    """
    data = {
        "success": False,
        "error": getattr(exc, "code", LifelineError.code),
        "message": getattr(exc, "user_message", LifelineError.user_message),
    }
    details = getattr(exc, "details", None)
    if details:
        data["details"] = details
    if emergency:
        data["fallback"] = emergency_fallback_text()
    return data
