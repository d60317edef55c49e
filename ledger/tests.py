import json
from io import StringIO
from unittest import mock

from algosdk import transaction
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from accounts.models import CustomUser
from blood.models import BloodDonation, EmergencyRequest
from core.errors import LedgerError
from .services import NOTE_PREFIX, AlgorandLedger, DisabledLedger, donation_note, record_donation_safely

TESTNET_GENESIS = "SGO1GKSzyE7IEPItTxCByw9x8FmnrCDexi9/cOUJOiI="


def fake_algod():
    client = mock.Mock()
    client.suggested_params.return_value = transaction.SuggestedParams(
        fee=1000, first=1000, last=2000, gh=TESTNET_GENESIS, gen="testnet-v1.0", flat_fee=True,
    )
    client.send_transaction.return_value = "TXID123"
    return client


class AccountTests(SimpleTestCase):

    def test_create_and_restore(self):
        created = AlgorandLedger.create_account()
        restored = AlgorandLedger.restore_account(created["mnemonic"])
        self.assertEqual(restored["address"], created["address"])

    def test_bad_mnemonic(self):
        with self.assertRaises(LedgerError):
            AlgorandLedger.restore_account("not a real mnemonic")

    def test_account_state(self):
        client = mock.Mock()
        client.account_info.return_value = {"address": "ADDR", "amount": 5000, "round": 7}
        state = AlgorandLedger(client).account_state("ADDR")
        self.assertEqual(state, {"address": "ADDR", "amount": 5000, "assets": [], "round": 7})

        client.account_info.side_effect = ConnectionError("down")
        with self.assertRaises(LedgerError):
            AlgorandLedger(client).account_state("ADDR")


class RecordDonationTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = CustomUser.objects.create_user(username="giver", password="x", first_name="Ravi", phone_number="+919111111111")
        cls.request_row = EmergencyRequest.objects.create(
            request_id="EMR-9-abcdef", blood_type="O-", hospital_name="City General",
            contact_info="+911234567890", urgency="critical",
        )

    def setUp(self):
        self.mnemonic = AlgorandLedger.create_account()["mnemonic"]
        self.donation = BloodDonation.objects.create(
            donor_user=self.user, request=self.request_row, blood_type="O-", units=2, status="completed",
        )

    def test_note_has_no_donor_details(self):
        note = donation_note(self.donation).decode()
        self.assertTrue(note.startswith(NOTE_PREFIX))
        record = json.loads(note[len(NOTE_PREFIX):])
        self.assertEqual(record["request"], "EMR-9-abcdef")
        self.assertEqual(record["units"], 2)
        self.assertNotIn("Ravi", note)
        self.assertNotIn("+919111111111", note)

    def test_records_and_stores_txid(self):
        client = fake_algod()
        ledger = AlgorandLedger(client, sender_mnemonic=self.mnemonic)

        with mock.patch("ledger.services.transaction.wait_for_confirmation") as wait:
            txid = ledger.record_donation(self.donation)

        self.assertEqual(txid, "TXID123")
        wait.assert_called_once_with(client, "TXID123", 4)
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.ledger_txid, "TXID123")
        self.assertIsNotNone(self.donation.ledger_recorded_at)

    def test_unconfirmed_txid_is_kept_and_not_resubmitted(self):
        client = fake_algod()
        ledger = AlgorandLedger(client, sender_mnemonic=self.mnemonic)

        with mock.patch("ledger.services.transaction.wait_for_confirmation", side_effect=Exception("timeout")):
            self.assertIsNone(record_donation_safely(self.donation, ledger))

        self.donation.refresh_from_db()
        self.assertEqual(self.donation.ledger_txid, "TXID123")
        self.assertIsNone(self.donation.ledger_recorded_at)

        with mock.patch("ledger.services.transaction.wait_for_confirmation") as wait:
            self.assertEqual(ledger.record_donation(self.donation), "TXID123")
            self.assertEqual(ledger.record_donation(self.donation), "TXID123")

        wait.assert_called_once_with(client, "TXID123", 4)
        self.assertEqual(client.send_transaction.call_count, 1)
        self.donation.refresh_from_db()
        self.assertIsNotNone(self.donation.ledger_recorded_at)

    def test_scheduled_donation_refused(self):
        self.donation.status = "scheduled"
        with self.assertRaises(LedgerError):
            AlgorandLedger(fake_algod(), sender_mnemonic=self.mnemonic).record_donation(self.donation)

    def test_rejected_transaction(self):
        client = fake_algod()
        client.send_transaction.side_effect = Exception("overspend")
        ledger = AlgorandLedger(client, sender_mnemonic=self.mnemonic)

        self.assertIsNone(record_donation_safely(self.donation, ledger))
        self.donation.refresh_from_db()
        self.assertEqual(self.donation.ledger_txid, "")

    def test_disabled_ledger(self):
        self.assertIsNone(record_donation_safely(self.donation, DisabledLedger()))

    def test_command_records_pending_donations(self):
        BloodDonation.objects.create(donor_user=self.user, blood_type="O-", status="scheduled")
        ledger = mock.Mock()
        ledger.record_donation.return_value = "TX1"

        out = StringIO()
        with mock.patch("ledger.management.commands.record_donations_on_ledger.get_ledger", return_value=ledger):
            call_command("record_donations_on_ledger", stdout=out)

        ledger.record_donation.assert_called_once_with(self.donation)
        self.assertIn("Recorded: 1", out.getvalue())
