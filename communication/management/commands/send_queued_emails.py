from django.conf import settings
from django.core.mail import send_mail
from django.core.management.base import BaseCommand
from django.utils import timezone

from communication.models import QueuedEmail


class Command(BaseCommand):
    help = (
        "Deliver the email outbox, urgent (emergency) mail first. "
        "Failures are retried on later runs up to EMAIL_QUEUE_MAX_ATTEMPTS."
    )

    def add_arguments(self, parser):
        parser.add_argument("--batch-size", type=int, default=None)
        parser.add_argument(
            "--urgent-only",
            action="store_true",
            help="Only deliver emergency mail (for a tighter cron schedule).",
        )

    def handle(self, *args, **options):
        batch_size = options["batch_size"] or int(getattr(settings, "EMAIL_QUEUE_BATCH_SIZE", 40))
        self.max_attempts = int(getattr(settings, "EMAIL_QUEUE_MAX_ATTEMPTS", 3))

        outbox = QueuedEmail.objects.filter(status=QueuedEmail.STATUS_PENDING, attempts__lt=self.max_attempts)
        if options["urgent_only"]:
            outbox = outbox.filter(priority=QueuedEmail.PRIORITY_URGENT)
        batch = list(outbox.order_by("priority", "created_at")[:batch_size])

        if not batch:
            self.stdout.write("No queued emails.")
            return

        results = [self.deliver(item) for item in batch]
        sent = sum(results)

        self.stdout.write(self.style.SUCCESS(f"Sent: {sent}, Failed: {len(results) - sent}"))

    def deliver(self, item) -> bool:
        try:
            send_mail(item.subject, item.body, settings.DEFAULT_FROM_EMAIL, [item.to_email])
        except Exception as e:
            item.attempts += 1
            item.last_error = str(e)[:2000]
            if item.attempts >= self.max_attempts:
                item.status = QueuedEmail.STATUS_FAILED
            item.save(update_fields=["attempts", "last_error", "status"])
            return False

        item.status = QueuedEmail.STATUS_SENT
        item.sent_at = timezone.now()
        item.last_error = ""
        item.save(update_fields=["status", "sent_at", "last_error"])
        return True
