# billing/admin.py

from django.contrib import admin

from billing.models import Bill, BillItem


# ======================================================
# BILL ITEMS (INLINE)
# ======================================================


class BillItemInline(admin.TabularInline):
    model = BillItem
    extra = 0
    can_delete = False
    fields = (
        "name",
        "quantity",
        "unit_price",
        "effective_unit_price",
        "subtotal",
        "status",
        "is_offer_free_item",
        "is_price_offer_applied",
        "is_random_customer_offer_item",
        "notes",
    )
    readonly_fields = fields


# ======================================================
# BILL ADMIN
# ======================================================


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    """Totals and offer flags are engine-owned; edit bills through the API."""

    inlines = [BillItemInline]
    list_display = (
        "invoice_number",
        "kot_number",
        "branch",
        "status",
        "customer_phone",
        "total_amount",
        "customer_reward_processed",
        "offer_counters_processed",
        "created_at",
    )
    readonly_fields = (
        "invoice_number",
        "kot_number",
        "gross_amount",
        "customer_offer_applied",
        "customer_offer_discount",
        "total_percentage_offer_applied",
        "total_percentage_offer_discount",
        "total_amount",
        "customer_reward_processed",
        "offer_counters_processed",
        "reward_points_earned",
        "created_at",
        "completed_at",
    )
    search_fields = ("invoice_number", "kot_number", "customer_phone")
    list_filter = ("status", "branch", "created_at")
