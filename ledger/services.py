"""
Algorand ledger gateway.

Only completed donations are written, as a zero-amount self payment whose
note carries a small JSON record (no donor PII). Nothing here is on the
emergency request path; record_donation_safely never raises.
"""
import json
import logging

from algosdk import account, mnemonic, transaction
from algosdk.v2client import algod
from django.utils import timezone

from core.errors import LedgerError

logger = logging.getLogger(__name__)

NOTE_PREFIX = "lifeline:donation:"


def donation_note(donation) -> bytes:
    record = {
        "donation": donation.id,
        "bloodType": donation.blood_type,
        "units": donation.units,
        "donatedAt": timezone.localdate(donation.donated_at).isoformat(),
        "request": donation.request.request_id if donation.request_id else None,
    }
    return (NOTE_PREFIX + json.dumps(record, separators=(",", ":"), sort_keys=True)).encode()


class AlgorandLedger:

    def __init__(self, client, sender_mnemonic="", confirmation_rounds=4):
        self.client = client
        self.sender_mnemonic = sender_mnemonic
        self.confirmation_rounds = confirmation_rounds

    @classmethod
    def connect(cls, algod_url, algod_token="", **kwargs):
        return cls(algod.AlgodClient(algod_token, algod_url), **kwargs)

    # -------- accounts --------
    @staticmethod
    def create_account():
        private_key, address = account.generate_account()
        return {"address": address, "mnemonic": mnemonic.from_private_key(private_key)}

    @staticmethod
    def restore_account(words):
        try:
            private_key = mnemonic.to_private_key(words)
        except Exception as e:
            raise LedgerError("Invalid account mnemonic") from e
        return {"address": account.address_from_private_key(private_key), "private_key": private_key}

    def account_state(self, address):
        try:
            info = self.client.account_info(address)
        except Exception as e:
            raise LedgerError(f"Could not read account {address}", details={"reason": str(e)[:200]}) from e
        return {
            "address": info.get("address", address),
            "amount": info.get("amount", 0),
            "assets": info.get("assets", []),
            "round": info.get("round"),
        }

    # -------- transactions --------
    def submit_signed(self, signed_txn):
        try:
            return self.client.send_transaction(signed_txn)
        except Exception as e:
            raise LedgerError("Transaction rejected", details={"reason": str(e)[:200]}) from e

    def wait_for_confirmation(self, txid):
        try:
            return transaction.wait_for_confirmation(self.client, txid, self.confirmation_rounds)
        except Exception as e:
            raise LedgerError(f"Transaction {txid} not confirmed", details={"reason": str(e)[:200]}) from e

    def record_donation(self, donation):
        """
        Write a completed donation and store the confirmed txid on the row.

        The txid is saved as soon as the node accepts the transaction, before
        confirmation. A row with a txid but no ledger_recorded_at is only
        re-confirmed on the next run, never submitted again.
        """
        if donation.status != "completed":
            raise LedgerError(f"Donation {donation.id} is not completed")
        if donation.ledger_recorded_at:
            return donation.ledger_txid

        txid = donation.ledger_txid
        if not txid:
            txid = self._submit_note(donation_note(donation))
            donation.ledger_txid = txid
            donation.save(update_fields=["ledger_txid"])
            logger.info("Donation %s submitted to ledger: %s", donation.id, txid)

        self.wait_for_confirmation(txid)

        donation.ledger_recorded_at = timezone.now()
        donation.save(update_fields=["ledger_recorded_at"])
        logger.info("Donation %s confirmed on ledger: %s", donation.id, txid)
        return txid

    def _submit_note(self, note):
        if not self.sender_mnemonic:
            raise LedgerError("ALGORAND_SENDER_MNEMONIC missing")

        sender = self.restore_account(self.sender_mnemonic)
        try:
            params = self.client.suggested_params()
        except Exception as e:
            raise LedgerError("Ledger unreachable", details={"reason": str(e)[:200]}) from e

        txn = transaction.PaymentTxn(
            sender=sender["address"],
            sp=params,
            receiver=sender["address"],
            amt=0,
            note=note,
        )
        return self.submit_signed(txn.sign(sender["private_key"]))


class DisabledLedger:
    """LIFELINE_LEDGER_BACKEND = "disabled"."""

    def record_donation(self, donation):
        raise LedgerError("Ledger recording is disabled")

    def account_state(self, address):
        raise LedgerError("Ledger recording is disabled")


def record_donation_safely(donation, ledger):
    try:
        return ledger.record_donation(donation)
    except LedgerError as e:
        logger.warning("Ledger record skipped for donation %s: %s", donation.id, e)
        return None
