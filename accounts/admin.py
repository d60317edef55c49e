from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from .models import CustomUser, DonorProfile


class DonorProfileInline(admin.StackedInline):
    model = DonorProfile
    can_delete = False
    verbose_name_plural = 'Donor Profile'


class CustomUserAdmin(UserAdmin):
    inlines = (DonorProfileInline,)

    list_display = ('username', 'email', 'is_donor', 'is_recipient', 'is_staff')
    list_filter = ('is_donor', 'is_recipient', 'is_staff')
    search_fields = ('username', 'email', 'phone_number')

    fieldsets = UserAdmin.fieldsets + (
        ('Lifeline Roles', {'fields': ('is_donor', 'is_recipient', 'phone_number')}),
    )


@admin.register(DonorProfile)
class DonorProfileAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'blood_group', 'city', 'is_available', 'donor_status', 'last_donation_date')
    list_filter = ('blood_group', 'is_available', 'donor_status')
    search_fields = ('user__username', 'city')
    autocomplete_fields = ('user',)


admin.site.register(CustomUser, CustomUserAdmin)
