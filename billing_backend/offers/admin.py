# offers/admin.py

from django.contrib import admin

from offers.models import CustomerRewardSettings


@admin.register(CustomerRewardSettings)
class CustomerRewardSettingsAdmin(admin.ModelAdmin):
    """
    Read-mostly view of the shared document.

    Edits should go through PATCH /api/offers/settings/ (optimistic retry);
    admin saves bypass the version check, so the document is read-only here.
    """

    list_display = ("id", "enabled", "version", "updated_at")

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False
