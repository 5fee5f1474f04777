# customers/admin.py

from django.contrib import admin

from customers.models import Customer


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = (
        "phone",
        "name",
        "reward_points",
        "is_offer_eligible",
        "total_offers_redeemed",
        "random_offer_assigned",
        "random_offer_redeemed",
    )
    list_filter = ("is_offer_eligible", "random_offer_assigned", "random_offer_redeemed")
    search_fields = ("phone", "name")
    readonly_fields = ("created_at", "updated_at")
