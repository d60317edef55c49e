from django.core.management.base import BaseCommand

from blood.models import BloodDonation
from ledger.backends import get_ledger
from ledger.services import record_donation_safely


class Command(BaseCommand):
    help = "Record completed donations that are not yet on the Algorand ledger."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=50)

    def handle(self, *args, **options):
        ledger = get_ledger()

        qs = (
            BloodDonation.objects
            .filter(status="completed", ledger_recorded_at__isnull=True)
            .select_related("request")
            .order_by("donated_at")[:options["limit"]]
        )

        recorded = 0
        skipped = 0
        for donation in qs:
            if record_donation_safely(donation, ledger):
                recorded += 1
            else:
                skipped += 1

        self.stdout.write(self.style.SUCCESS(f"Ledger recording complete. Recorded: {recorded}, Skipped: {skipped}"))
