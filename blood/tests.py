import json
from datetime import date, timedelta
from unittest import mock

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TestCase
from django.utils import timezone

from accounts.models import CustomUser, DonorProfile
from communication.models import Notification, QueuedEmail
from core.errors import InvalidBloodType, StoreError
from .compatibility import (
    BLOOD_TYPES, CAN_DONATE_TO, CAN_RECEIVE_FROM,
    compatibility_of, compatible_donors_for, lookup_compatibility, normalize_blood_type,
)
from .consumers import EmergencyOpsConsumer
from .donor_matches import create_donor_matches, match_summary, matches_for_donor, respond_to_match
from .drives import find_blood_drives
from .emergency import NEXT_STEPS, submit_emergency_request
from .matching import canonical_city, query_compatible_donors
from .models import BloodDonation, BloodDrive, DonorMatch, EmergencyRequest


def make_donor(username, blood, city="Andheri, Mumbai", available=True, status="active",
               last=None, phone="+919800000000"):
    user = CustomUser.objects.create_user(
        username=username,
        password="pass12345",
        first_name="Full",
        last_name=username.title(),
        phone_number=phone,
        is_donor=True,
    )
    return DonorProfile.objects.create(
        user=user,
        blood_group=blood,
        city=city,
        is_available=available,
        donor_status=status,
        last_donation_date=last,
    )


def noop_notifier(req):
    pass


class CompatibilityTableTests(SimpleTestCase):

    def test_table_is_symmetric(self):
        for x in BLOOD_TYPES:
            for y in BLOOD_TYPES:
                if y in compatible_donors_for(x):
                    self.assertIn(x, compatibility_of(y, CAN_DONATE_TO))
                if x in compatibility_of(y, CAN_DONATE_TO):
                    self.assertIn(y, compatibility_of(x, CAN_RECEIVE_FROM))

    def test_universal_donor_and_recipient(self):
        self.assertEqual(len(compatibility_of("O-", CAN_DONATE_TO)), 8)
        self.assertEqual(len(compatibility_of("AB+", CAN_RECEIVE_FROM)), 8)
        self.assertEqual(lookup_compatibility("AB+", CAN_DONATE_TO), ["AB+"])
        self.assertEqual(lookup_compatibility("O-", CAN_RECEIVE_FROM), ["O-"])

    def test_a_positive_receives_from_four_types(self):
        self.assertEqual(lookup_compatibility("A+", CAN_RECEIVE_FROM), ["A+", "A-", "O+", "O-"])

    def test_invalid_blood_type(self):
        with self.assertRaises(InvalidBloodType):
            compatibility_of("C+", CAN_DONATE_TO)
        with self.assertRaises(InvalidBloodType):
            compatibility_of("O-", "sideways")
        with self.assertRaises(InvalidBloodType):
            normalize_blood_type(None)

    def test_normalize_accepts_loose_spellings(self):
        self.assertEqual(normalize_blood_type(" ab+ "), "AB+")
        self.assertEqual(normalize_blood_type("O negative"), "O-")
        self.assertEqual(normalize_blood_type("B+ve"), "B+")


class CityNormalizationTests(SimpleTestCase):

    def test_area_and_city(self):
        self.assertEqual(canonical_city("Andheri, Mumbai"), "mumbai")
        self.assertEqual(canonical_city("Bombay"), "mumbai")
        self.assertEqual(canonical_city("Koramangala Bangalore"), "bengaluru")
        self.assertEqual(canonical_city("Pune"), "pune")
        self.assertEqual(canonical_city("  "), "")

    def test_shorthand_and_rightmost_city_wins(self):
        self.assertEqual(canonical_city("New Delhi"), "delhi")
        self.assertEqual(canonical_city("HSR Layout, BLR"), "bengaluru")
        self.assertEqual(canonical_city("Gurgaon / Delhi NCR"), "delhi")


class BrokenStore:
    def search_donors(self, *args, **kwargs):
        raise StoreError("connection refused")

    def insert_emergency_request(self, **fields):
        raise StoreError("connection refused")

    def search_blood_drives(self, *args, **kwargs):
        raise StoreError("connection refused")


class DonorResolverTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        make_donor("opos", "O+", last=date(2024, 1, 1))
        make_donor("oneg", "O-")
        make_donor("abpos", "AB+", city="Bandra, Bombay", last=date(2025, 6, 1))
        make_donor("aneg_nophone", "A-", phone="")
        make_donor("unavailable", "B+", available=False)
        make_donor("inactive", "B-", status="inactive")
        make_donor("delhi", "O-", city="New Delhi")

    def test_ab_positive_in_mumbai(self):
        result = query_compatible_donors({"requiredBloodType": "AB+", "hospitalLocation": "Mumbai"})

        self.assertTrue(result["success"])
        self.assertEqual(len(result["compatibleBloodTypes"]), 8)
        self.assertEqual(result["totalFound"], 4)
        types = {d["bloodType"] for d in result["donors"]}
        self.assertEqual(types, {"O+", "O-", "AB+", "A-"})
        self.assertEqual(result["urgency"], "medium")
        self.assertEqual(result["maxDistance"], 50)

    def test_output_is_anonymized(self):
        result = query_compatible_donors({"requiredBloodType": "AB+", "hospitalLocation": "Mumbai"})
        dumped = json.dumps(result)

        for d in result["donors"]:
            self.assertEqual(set(d), {"bloodType", "location", "lastDonation", "contactAvailable", "eligible"})
        self.assertNotIn("+919800000000", dumped)
        self.assertNotIn("Opos", dumped)
        self.assertNotIn("Full", dumped)

    def test_contact_available_flag(self):
        result = query_compatible_donors({"requiredBloodType": "A-", "hospitalLocation": "Mumbai"})
        by_type = {d["bloodType"]: d for d in result["donors"]}
        self.assertFalse(by_type["A-"]["contactAvailable"])
        self.assertTrue(by_type["O-"]["contactAvailable"])

    def test_never_donated_and_oldest_first(self):
        result = query_compatible_donors({"requiredBloodType": "AB+", "hospitalLocation": "Mumbai"})
        dates = [d["lastDonation"] for d in result["donors"]]
        self.assertEqual(dates, [None, None, "2024-01-01", "2025-06-01"])

    def test_only_compatible_types(self):
        result = query_compatible_donors({"requiredBloodType": "O-", "hospitalLocation": "Mumbai"})
        self.assertEqual([d["bloodType"] for d in result["donors"]], ["O-"])

    def test_result_cap(self):
        for i in range(12):
            make_donor(f"extra{i}", "O-", city="Mumbai")
        result = query_compatible_donors({"requiredBloodType": "AB+", "hospitalLocation": "Mumbai"})
        self.assertEqual(result["totalFound"], 10)

    def test_recent_donor_not_eligible(self):
        make_donor("recent", "AB-", city="Pune", last=timezone.localdate() - timedelta(days=10))
        result = query_compatible_donors({"requiredBloodType": "AB-", "hospitalLocation": "pune"})
        self.assertEqual(result["totalFound"], 1)
        self.assertFalse(result["donors"][0]["eligible"])

    def test_invalid_input_is_a_failure_result(self):
        result = query_compatible_donors({"requiredBloodType": "Z+", "hospitalLocation": "Mumbai"})
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "invalid_blood_type")

        result = query_compatible_donors({"requiredBloodType": "O+", "hospitalLocation": "  "})
        self.assertEqual(result["error"], "validation_error")

        result = query_compatible_donors({"requiredBloodType": "O+", "hospitalLocation": "Mumbai", "maxDistance": -5})
        self.assertEqual(result["error"], "validation_error")

    def test_non_finite_distance_rejected(self):
        for bad in (float("nan"), float("inf"), "Infinity"):
            result = query_compatible_donors(
                {"requiredBloodType": "O+", "hospitalLocation": "Mumbai", "maxDistance": bad}
            )
            self.assertEqual(result["error"], "validation_error", bad)

    def test_store_failure_is_a_failure_result(self):
        result = query_compatible_donors(
            {"requiredBloodType": "O+", "hospitalLocation": "Mumbai", "urgency": "critical"},
            store=BrokenStore(),
        )
        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "store_error")
        self.assertIn("fallback", result)


class RecordingStore:
    def __init__(self):
        self.inserts = []

    def insert_emergency_request(self, **fields):
        self.inserts.append(fields)
        return EmergencyRequest.objects.create(**fields)


class EmergencyRegistrarTests(TestCase):

    payload = {
        "bloodType": "O-",
        "hospitalName": "City General",
        "contactInfo": "+911234567890",
        "urgency": "critical",
    }

    def test_submit_returns_acknowledgement(self):
        result = submit_emergency_request(self.payload, notifier=noop_notifier)

        self.assertTrue(result["success"])
        self.assertTrue(result["requestId"].startswith("EMR-"))
        self.assertEqual(result["unitsNeeded"], 1)
        self.assertEqual(result["nextSteps"], list(NEXT_STEPS))

        req = EmergencyRequest.objects.get(request_id=result["requestId"])
        self.assertEqual(req.status, "active")
        self.assertEqual(req.blood_type, "O-")

    def test_missing_hospital_fails_without_persistence(self):
        store = RecordingStore()
        result = submit_emergency_request(dict(self.payload, hospitalName=""), store=store, notifier=noop_notifier)

        self.assertFalse(result["success"])
        self.assertEqual(result["error"], "validation_error")
        self.assertIn("hospital_name", result["details"]["fields"])
        self.assertIn("fallback", result)
        self.assertEqual(store.inserts, [])
        self.assertFalse(EmergencyRequest.objects.exists())

    def test_zero_units_rejected(self):
        result = submit_emergency_request(dict(self.payload, unitsNeeded=0), notifier=noop_notifier)
        self.assertFalse(result["success"])

    def test_large_request_is_saved(self):
        result = submit_emergency_request(dict(self.payload, unitsNeeded=60), notifier=noop_notifier)
        self.assertTrue(result["success"])
        self.assertEqual(EmergencyRequest.objects.get(request_id=result["requestId"]).units_needed, 60)

    def test_spelled_out_blood_type(self):
        result = submit_emergency_request(dict(self.payload, bloodType="O negative"), notifier=noop_notifier)
        self.assertTrue(result["success"])
        self.assertEqual(EmergencyRequest.objects.get(request_id=result["requestId"]).blood_type, "O-")

        result = submit_emergency_request(dict(self.payload, bloodType="O neutral"), notifier=noop_notifier)
        self.assertFalse(result["success"])
        self.assertIn("blood_type", result["details"]["fields"])

    def test_float_units_from_model_accepted(self):
        result = submit_emergency_request(dict(self.payload, unitsNeeded=3.0), notifier=noop_notifier)
        self.assertEqual(result["unitsNeeded"], 3)

    def test_duplicate_submissions_stay_distinct(self):
        a = submit_emergency_request(self.payload, notifier=noop_notifier)
        b = submit_emergency_request(self.payload, notifier=noop_notifier)
        self.assertNotEqual(a["requestId"], b["requestId"])
        self.assertEqual(EmergencyRequest.objects.count(), 2)

    def test_id_collision_is_retried(self):
        EmergencyRequest.objects.create(
            request_id="EMR-1-aaaaaa", blood_type="A+", hospital_name="X", contact_info="y", urgency="low",
        )
        with mock.patch("blood.emergency.new_request_id", side_effect=["EMR-1-aaaaaa", "EMR-2-bbbbbb"]):
            result = submit_emergency_request(self.payload, notifier=noop_notifier)
        self.assertEqual(result["requestId"], "EMR-2-bbbbbb")

    def test_store_failure(self):
        result = submit_emergency_request(self.payload, store=BrokenStore(), notifier=noop_notifier)
        self.assertEqual(result["error"], "store_error")
        self.assertIn("fallback", result)

    def test_notification_intent_after_commit(self):
        staff = CustomUser.objects.create_user(username="ops", password="x", email="ops@example.com", is_staff=True)
        donor = make_donor("helper", "O-", city="Andheri, Mumbai")
        make_donor("wrongtype", "A+", city="Mumbai")

        with self.captureOnCommitCallbacks(execute=True):
            result = submit_emergency_request(dict(self.payload, hospitalLocation="Mumbai"))

        self.assertTrue(result["success"])
        self.assertEqual(Notification.objects.filter(user=staff, category="EMERGENCY").count(), 1)
        self.assertEqual(Notification.objects.filter(user=donor.user).count(), 1)
        self.assertEqual(Notification.objects.count(), 2)
        mail = QueuedEmail.objects.get(to_email="ops@example.com")
        self.assertEqual(mail.priority, QueuedEmail.PRIORITY_URGENT)
        self.assertEqual(mail.emergency.request_id, result["requestId"])
        self.assertEqual(
            list(DonorMatch.objects.values_list("donor_id", "response")),
            [(donor.user_id, "pending")],
        )

    def test_notification_failure_does_not_fail_registration(self):
        with mock.patch("blood.realtime.notify_users", side_effect=RuntimeError("smtp down")):
            with self.captureOnCommitCallbacks(execute=True):
                result = submit_emergency_request(self.payload)
        self.assertTrue(result["success"])
        self.assertTrue(EmergencyRequest.objects.filter(request_id=result["requestId"]).exists())


class EmergencyStatusTests(TestCase):

    def test_forward_only(self):
        req = EmergencyRequest.objects.create(
            request_id="EMR-3-cccccc", blood_type="B+", hospital_name="H", contact_info="c", urgency="high",
        )
        self.assertFalse(req.advance_status("fulfilled"))
        self.assertTrue(req.advance_status("processing"))
        self.assertFalse(req.advance_status("active"))
        self.assertTrue(req.advance_status("fulfilled"))
        req.refresh_from_db()
        self.assertEqual(req.status, "fulfilled")


class BloodDriveTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        today = timezone.localdate()
        BloodDrive.objects.create(title="Past camp", event_date=today - timedelta(days=3), location="Pune")
        BloodDrive.objects.create(title="Later camp", event_date=today + timedelta(days=20), location="Pune")
        BloodDrive.objects.create(title="Soon camp", event_date=today + timedelta(days=2), location="Pune Camp")
        BloodDrive.objects.create(title="Cancelled", event_date=today + timedelta(days=2), location="Pune", is_active=False)

    def test_upcoming_in_date_order(self):
        result = find_blood_drives({"location": "pune"})
        self.assertTrue(result["success"])
        self.assertEqual([d["title"] for d in result["bloodDrives"]], ["Soon camp", "Later camp"])

    def test_date_window(self):
        end = (timezone.localdate() + timedelta(days=5)).isoformat()
        result = find_blood_drives({"location": "Pune", "endDate": end})
        self.assertEqual(result["totalFound"], 1)

    def test_bad_date(self):
        result = find_blood_drives({"location": "Pune", "startDate": "next week"})
        self.assertEqual(result["error"], "validation_error")


class DonationSignalTests(TestCase):

    def test_completed_donation_moves_last_donation_date(self):
        profile = make_donor("giver", "O+", last=date(2024, 1, 1))
        BloodDonation.objects.create(donor_user=profile.user, blood_type="O+", status="scheduled")
        profile.refresh_from_db()
        self.assertEqual(profile.last_donation_date, date(2024, 1, 1))

        BloodDonation.objects.create(donor_user=profile.user, blood_type="O+", status="completed")
        profile.refresh_from_db()
        self.assertEqual(profile.last_donation_date, timezone.localdate())


class BloodApiTests(TestCase):

    def test_compatibility_endpoint(self):
        resp = self.client.get("/api/blood/compatibility/O-/", {"direction": "canReceiveFrom"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["compatibleTypes"], ["O-"])

        resp = self.client.get("/api/blood/compatibility/Q-/")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["error"], "invalid_blood_type")

    def test_emergency_endpoint(self):
        resp = self.client.post(
            "/api/blood/emergency/",
            data=json.dumps(EmergencyRegistrarTests.payload),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 201)
        self.assertTrue(resp.json()["requestId"])

        resp = self.client.post("/api/blood/emergency/", data="{oops", content_type="application/json")
        self.assertEqual(resp.status_code, 400)

    def test_donor_search_endpoint(self):
        make_donor("apidonor", "O-", city="Mumbai")
        resp = self.client.post(
            "/api/blood/donors/search/",
            data=json.dumps({"requiredBloodType": "O+", "hospitalLocation": "Mumbai"}),
            content_type="application/json",
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["totalFound"], 1)


def make_request(request_id="EMR-9-matchx", blood="O-", location="Mumbai", status="active"):
    return EmergencyRequest.objects.create(
        request_id=request_id, blood_type=blood, hospital_name="City General",
        hospital_location=location, contact_info="+911234567890", urgency="critical", status=status,
    )


class DonorMatchTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.staff = CustomUser.objects.create_user(username="desk", password="x", is_staff=True)
        cls.donor = make_donor("matcher", "O-").user
        cls.other = make_donor("bystander", "O+").user

    def setUp(self):
        self.req = make_request()
        create_donor_matches(self.req, [self.donor, self.other])
        self.match = DonorMatch.objects.get(request=self.req, donor=self.donor)

    def test_matches_are_created_once_per_donor(self):
        self.assertEqual(create_donor_matches(self.req, [self.donor, self.other]), 0)
        self.assertEqual(self.req.matches.count(), 2)

    def test_accept_notifies_staff_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = respond_to_match(self.match.id, self.donor, "Accepted")

        self.assertTrue(result["success"])
        self.assertEqual(result["response"], "accepted")
        self.assertIsNotNone(result["respondedAt"])
        note = Notification.objects.get(user=self.staff)
        self.assertEqual(note.emergency, self.req)
        self.assertIn(self.req.request_id, note.title)

    def test_decline_does_not_bother_staff(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = respond_to_match(self.match.id, self.donor, "declined")

        self.assertEqual(result["response"], "declined")
        self.assertFalse(Notification.objects.filter(user=self.staff).exists())

    def test_second_answer_is_refused(self):
        respond_to_match(self.match.id, self.donor, "accepted", notifier=noop_notifier)
        result = respond_to_match(self.match.id, self.donor, "declined", notifier=noop_notifier)

        self.assertFalse(result["success"])
        self.match.refresh_from_db()
        self.assertEqual(self.match.response, "accepted")

    def test_only_the_matched_donor_may_answer(self):
        result = respond_to_match(self.match.id, self.other, "accepted", notifier=noop_notifier)
        self.assertEqual(result["error"], "validation_error")
        self.match.refresh_from_db()
        self.assertEqual(self.match.response, "pending")

    def test_bad_response_and_fulfilled_request(self):
        result = respond_to_match(self.match.id, self.donor, "maybe", notifier=noop_notifier)
        self.assertFalse(result["success"])

        self.req.advance_status("processing")
        self.req.advance_status("fulfilled")
        result = respond_to_match(self.match.id, self.donor, "accepted", notifier=noop_notifier)
        self.assertFalse(result["success"])

    def test_summary_counts(self):
        respond_to_match(self.match.id, self.donor, "accepted", notifier=noop_notifier)
        summary = match_summary(self.req.request_id)

        self.assertEqual(
            {k: summary[k] for k in ("matched", "accepted", "declined", "pending")},
            {"matched": 2, "accepted": 1, "declined": 0, "pending": 1},
        )
        self.assertFalse(match_summary("EMR-0-nothere")["success"])

    def test_pending_list_for_donor(self):
        self.assertEqual([m["matchId"] for m in matches_for_donor(self.donor, pending_only=True)], [self.match.id])
        respond_to_match(self.match.id, self.donor, "declined", notifier=noop_notifier)
        self.assertEqual(matches_for_donor(self.donor, pending_only=True), [])
        self.assertEqual(len(matches_for_donor(self.donor)), 1)


class DonorMatchApiTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.staff = CustomUser.objects.create_user(username="apidesk", password="x", is_staff=True)
        cls.donor = make_donor("apimatcher", "O-").user
        cls.req = make_request(request_id="EMR-9-apimat")
        create_donor_matches(cls.req, [cls.donor])
        cls.match = DonorMatch.objects.get(donor=cls.donor)

    def answer(self, response):
        return self.client.post(
            f"/api/blood/matches/{self.match.id}/respond/",
            data=json.dumps({"response": response}),
            content_type="application/json",
        )

    def test_anonymous_cannot_answer(self):
        self.assertEqual(self.answer("accepted").status_code, 401)
        self.assertEqual(self.client.get("/api/blood/matches/").status_code, 401)

    def test_donor_answers(self):
        self.client.force_login(self.donor)
        resp = self.client.get("/api/blood/matches/", {"pending": "1"})
        self.assertEqual(resp.json()["totalFound"], 1)

        resp = self.answer("accepted")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["response"], "accepted")

        self.assertEqual(self.answer("declined").status_code, 400)

    def test_summary_is_staff_only(self):
        url = f"/api/blood/emergency/{self.req.request_id}/matches/"
        self.client.force_login(self.donor)
        self.assertEqual(self.client.get(url).status_code, 403)

        self.client.force_login(self.staff)
        resp = self.client.get(url)
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["pending"], 1)
        self.assertEqual(self.client.get("/api/blood/emergency/EMR-0-nothere/matches/").status_code, 404)


class EmergencyOpsConsumerTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.staff = CustomUser.objects.create_user(username="opsscreen", password="x", is_staff=True)
        cls.plain = CustomUser.objects.create_user(username="plainuser", password="x")

    async def connect_as(self, user):
        communicator = WebsocketCommunicator(EmergencyOpsConsumer.as_asgi(), "/ws/blood/emergency/")
        communicator.scope["user"] = user
        connected, _ = await communicator.connect()
        return communicator, connected

    def register(self):
        with self.captureOnCommitCallbacks(execute=True):
            return submit_emergency_request(dict(EmergencyRegistrarTests.payload, hospitalLocation="Mumbai"))

    async def test_anonymous_and_non_staff_refused(self):
        for user in (AnonymousUser(), self.plain):
            communicator, connected = await self.connect_as(user)
            self.assertFalse(connected)
            await communicator.disconnect()

    async def test_staff_receives_new_request(self):
        await get_channel_layer().flush()
        communicator, connected = await self.connect_as(self.staff)
        self.assertTrue(connected)

        result = await database_sync_to_async(self.register)()
        event = await communicator.receive_json_from(timeout=5)

        self.assertEqual(event["type"], "EMERGENCY_REQUEST")
        self.assertEqual(event["request_id"], result["requestId"])
        self.assertEqual(event["blood_type"], "O-")
        await communicator.disconnect()
