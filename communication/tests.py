from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core import mail
from django.core.management import call_command
from django.test import TestCase, override_settings

from blood.models import EmergencyRequest
from .models import Notification, NotificationPreference, QueuedEmail
from .services import notify_users


def make_emergency(request_id="EMR-5-commsx"):
    return EmergencyRequest.objects.create(
        request_id=request_id, blood_type="AB-", hospital_name="Ruby Hall",
        contact_info="020-0000", urgency="high",
    )


class NotifyUsersTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        User = get_user_model()
        cls.plain = User.objects.create_user(username="plain", password="x", email="plain@example.com")
        cls.quiet = User.objects.create_user(username="quiet", password="x", email="quiet@example.com")
        cls.no_email = User.objects.create_user(username="noemail", password="x", email="")
        NotificationPreference.objects.create(
            user=cls.quiet, mute_drive=True, mute_system=True, email_emergency_only=True,
        )

    def users(self):
        return get_user_model().objects.filter(pk__in=[self.plain.pk, self.quiet.pk, self.no_email.pk])

    def test_emergency_reaches_everyone_and_links_the_request(self):
        req = make_emergency()
        inapp, emails = notify_users(
            self.users(), title="Need AB-", body="b", category="emergency",
            email_subject="s", email_body="b", emergency=req,
        )

        self.assertEqual((inapp, emails), (3, 2))
        self.assertTrue(Notification.objects.filter(user=self.quiet, category="EMERGENCY").exists())
        self.assertEqual(req.notifications.count(), 3)
        self.assertEqual(
            set(req.queued_emails.values_list("priority", flat=True)),
            {QueuedEmail.PRIORITY_URGENT},
        )

    def test_muted_category_and_emergency_only_email(self):
        inapp, emails = notify_users(
            self.users(), title="Camp", category="DRIVE", email_subject="s", email_body="b",
        )
        self.assertEqual((inapp, emails), (2, 1))
        self.assertFalse(Notification.objects.filter(user=self.quiet).exists())
        mail_row = QueuedEmail.objects.get()
        self.assertEqual(mail_row.to_email, "plain@example.com")
        self.assertEqual(mail_row.priority, QueuedEmail.PRIORITY_ROUTINE)
        self.assertIsNone(mail_row.emergency)

    def test_email_switched_off(self):
        NotificationPreference.objects.filter(user=self.quiet).update(email_enabled=False)
        _, emails = notify_users(
            self.users(), title="Need AB-", category="EMERGENCY", email_subject="s", email_body="b",
        )
        self.assertEqual(emails, 1)

    def test_no_email_without_subject(self):
        inapp, emails = notify_users(self.users(), title="Hello", category="DONATION")
        self.assertEqual((inapp, emails), (3, 0))

    def test_nobody_to_notify(self):
        self.assertEqual(notify_users(get_user_model().objects.none(), title="x"), (0, 0))

    def test_mark_read(self):
        notify_users(self.users(), title="Hello", category="DONATION")
        note = Notification.objects.filter(user=self.plain).get()
        note.mark_read()
        first = note.read_at
        note.mark_read()
        self.assertEqual(note.read_at, first)


@override_settings(EMAIL_QUEUE_MAX_ATTEMPTS=2)
class SendQueuedEmailsTests(TestCase):

    def setUp(self):
        self.item = QueuedEmail.objects.create(to_email="donor@example.com", subject="Camp", body="Body")

    def test_sends_pending(self):
        out = StringIO()
        call_command("send_queued_emails", stdout=out)

        self.item.refresh_from_db()
        self.assertEqual(self.item.status, "SENT")
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Sent: 1", out.getvalue())

    def test_emergency_mail_leaves_first(self):
        urgent = QueuedEmail.objects.create(
            to_email="ops@example.com", subject="Need AB-", body="Body",
            priority=QueuedEmail.PRIORITY_URGENT, emergency=make_emergency(),
        )
        call_command("send_queued_emails", "--batch-size", "1", stdout=StringIO())

        urgent.refresh_from_db()
        self.item.refresh_from_db()
        self.assertEqual((urgent.status, self.item.status), ("SENT", "PENDING"))
        self.assertEqual(mail.outbox[0].subject, "Need AB-")

    def test_urgent_only(self):
        out = StringIO()
        call_command("send_queued_emails", "--urgent-only", stdout=out)
        self.assertIn("No queued emails.", out.getvalue())
        self.assertEqual(len(mail.outbox), 0)

    def test_failure_retries_then_gives_up(self):
        target = "communication.management.commands.send_queued_emails.send_mail"
        with mock.patch(target, side_effect=OSError("smtp down")):
            call_command("send_queued_emails", stdout=StringIO())
            self.item.refresh_from_db()
            self.assertEqual((self.item.status, self.item.attempts), ("PENDING", 1))

            out = StringIO()
            call_command("send_queued_emails", stdout=out)
            self.item.refresh_from_db()
            self.assertEqual((self.item.status, self.item.attempts), ("FAILED", 2))
            self.assertIn("smtp down", self.item.last_error)
            self.assertIn("Failed: 1", out.getvalue())

    def test_empty_queue(self):
        QueuedEmail.objects.all().delete()
        out = StringIO()
        call_command("send_queued_emails", stdout=out)
        self.assertIn("No queued emails.", out.getvalue())
