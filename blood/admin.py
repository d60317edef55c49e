from django.contrib import admin, messages

from .models import BloodDonation, BloodDrive, DonorMatch, EmergencyRequest


@admin.register(EmergencyRequest)
class EmergencyRequestAdmin(admin.ModelAdmin):
    list_display = (
        "request_id",
        "blood_type",
        "units_needed",
        "hospital_name",
        "hospital_location",
        "urgency",
        "status",
        "created_at",
    )
    list_filter = ("status", "urgency", "blood_type", "created_at")
    search_fields = ("request_id", "hospital_name", "hospital_location", "contact_info")
    ordering = ("-created_at",)
    readonly_fields = ("request_id", "status", "created_at", "updated_at")

    fieldsets = (
        ("Need", {
            "fields": ("request_id", "blood_type", "units_needed", "urgency")
        }),
        ("Hospital", {
            "fields": ("hospital_name", "hospital_location", "contact_info")
        }),
        ("State", {
            "fields": ("status", "created_at", "updated_at")
        }),
    )

    actions = ["mark_processing", "mark_fulfilled"]

    def has_delete_permission(self, request, obj=None):
        return False

    def _advance(self, request, queryset, target):
        moved = skipped = 0
        for req in queryset:
            if req.advance_status(target):
                moved += 1
            else:
                skipped += 1
        self.message_user(request, f"{moved} request(s) moved to {target}.", messages.SUCCESS)
        if skipped:
            self.message_user(
                request,
                f"{skipped} request(s) skipped: only active -> processing -> fulfilled is allowed.",
                messages.WARNING,
            )

    def mark_processing(self, request, queryset):
        self._advance(request, queryset, EmergencyRequest.STATUS_PROCESSING)

    mark_processing.short_description = "Mark selected requests as PROCESSING"

    def mark_fulfilled(self, request, queryset):
        self._advance(request, queryset, EmergencyRequest.STATUS_FULFILLED)

    mark_fulfilled.short_description = "Mark selected requests as FULFILLED"


@admin.register(BloodDrive)
class BloodDriveAdmin(admin.ModelAdmin):
    list_display = ("id", "title", "location", "event_date", "start_time", "registered_donors", "expected_donors", "is_active")
    list_filter = ("is_active", "event_date", "location")
    search_fields = ("title", "location", "address")
    ordering = ("event_date",)


@admin.register(BloodDonation)
class BloodDonationAdmin(admin.ModelAdmin):
    list_display = ("id", "donor_user", "blood_type", "units", "status", "donated_at", "ledger_txid")
    list_filter = ("status", "blood_type")
    search_fields = ("donor_user__username", "hospital_name", "ledger_txid")
    ordering = ("-donated_at",)
    autocomplete_fields = ("request", "donor_user")
    readonly_fields = ("ledger_txid", "ledger_recorded_at")

    actions = ["record_on_ledger"]

    def record_on_ledger(self, request, queryset):
        from ledger.backends import get_ledger
        from ledger.services import record_donation_safely

        ledger = get_ledger()
        done = 0
        for d in queryset.filter(status="completed", ledger_recorded_at__isnull=True):
            if record_donation_safely(d, ledger=ledger):
                done += 1
        self.message_user(request, f"{done} donation(s) recorded on the ledger.")

    record_on_ledger.short_description = "Record selected completed donations on the ledger"


@admin.register(DonorMatch)
class DonorMatchAdmin(admin.ModelAdmin):
    list_display = ("id", "request", "donor", "response", "created_at", "responded_at")
    list_filter = ("response", "created_at")
    search_fields = (
        "request__request_id",
        "request__hospital_name",
        "donor__username",
        "donor__phone_number",
    )
    ordering = ("-created_at",)
    autocomplete_fields = ("request", "donor")
    readonly_fields = ("created_at", "responded_at")
