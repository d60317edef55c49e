from functools import lru_cache

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from .services import AlgorandLedger, DisabledLedger


@lru_cache(maxsize=1)
def get_ledger():
    backend = str(getattr(settings, "LIFELINE_LEDGER_BACKEND", "disabled")).strip().lower()

    if backend == "algorand":
        return AlgorandLedger.connect(
            settings.ALGORAND_ALGOD_URL,
            getattr(settings, "ALGORAND_ALGOD_TOKEN", ""),
            sender_mnemonic=getattr(settings, "ALGORAND_SENDER_MNEMONIC", ""),
            confirmation_rounds=int(getattr(settings, "ALGORAND_CONFIRMATION_ROUNDS", 4)),
        )
    if backend == "disabled":
        return DisabledLedger()

    raise ImproperlyConfigured(f"Unknown LIFELINE_LEDGER_BACKEND: {backend!r}")
