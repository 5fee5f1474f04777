# billing/api/serializers.py

from rest_framework import serializers

from billing.models import Bill, BillItem
from billing.services.item_lifecycle import BILL_STATUSES, ITEM_STATUSES


# ==========================================================
# READ
# ==========================================================


class BillItemSerializer(serializers.ModelSerializer):
    """Bill line (read-only). Generated rows carry their offer provenance."""

    is_generated = serializers.BooleanField(read_only=True)

    class Meta:
        model = BillItem
        fields = [
            "id",
            "product",
            "name",
            "quantity",
            "unit_price",
            "effective_unit_price",
            "subtotal",
            "status",
            "notes",
            "position",
            "is_generated",
            "is_offer_free_item",
            "offer_rule_key",
            "is_price_offer_applied",
            "price_offer_rule_key",
            "price_offer_discount",
            "is_random_customer_offer_item",
            "random_offer_campaign_code",
        ]
        read_only_fields = fields


class BillSerializer(serializers.ModelSerializer):
    items = BillItemSerializer(many=True, read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)

    class Meta:
        model = Bill
        fields = [
            "id",
            "branch",
            "branch_name",
            "company",
            "created_by",
            "status",
            "invoice_number",
            "kot_number",
            "customer",
            "customer_phone",
            "customer_name",
            "apply_customer_offer",
            "gross_amount",
            "customer_offer_applied",
            "customer_offer_discount",
            "total_percentage_offer_applied",
            "total_percentage_offer_discount",
            "total_amount",
            "customer_reward_processed",
            "offer_counters_processed",
            "reward_points_earned",
            "payment_method",
            "notes",
            "items",
            "created_at",
            "updated_at",
            "completed_at",
        ]
        read_only_fields = fields


# ==========================================================
# WRITE
# ==========================================================


class BillItemInputSerializer(serializers.Serializer):
    id = serializers.UUIDField(required=False, allow_null=True)
    product_id = serializers.UUIDField(required=False, allow_null=True)
    name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    quantity = serializers.DecimalField(max_digits=12, decimal_places=3, required=False)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    status = serializers.ChoiceField(choices=sorted(ITEM_STATUSES), required=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):
        # Existing generated rows may be named by id with only a status change.
        if not attrs.get("id"):
            if not attrs.get("product_id"):
                raise serializers.ValidationError({"product_id": "This field is required."})
            if attrs.get("quantity") is None:
                raise serializers.ValidationError({"quantity": "This field is required."})
        return attrs


class BillCreateSerializer(serializers.Serializer):
    branch_id = serializers.UUIDField(required=False)
    status = serializers.ChoiceField(choices=sorted(BILL_STATUSES), required=False, default=Bill.STATUS_ORDERED)
    items = BillItemInputSerializer(many=True, allow_empty=False)

    customer_phone = serializers.CharField(required=False, allow_blank=True, default="", max_length=32)
    customer_name = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)
    apply_customer_offer = serializers.BooleanField(required=False, default=False)

    payment_method = serializers.CharField(required=False, allow_blank=True, default="cash", max_length=32)
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class BillUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=sorted(BILL_STATUSES), required=False)
    items = BillItemInputSerializer(many=True, required=False, allow_empty=False)

    customer_phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    customer_name = serializers.CharField(required=False, allow_blank=True, max_length=255)
    apply_customer_offer = serializers.BooleanField(required=False)

    payment_method = serializers.CharField(required=False, allow_blank=True, max_length=32)
    notes = serializers.CharField(required=False, allow_blank=True)


class ItemStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=sorted(ITEM_STATUSES))


def item_payload(validated_items) -> list[dict]:
    """Validated item input -> plain dicts for bill_service (ids as str)."""
    payload = []
    for raw in validated_items:
        item = dict(raw)
        for key in ("id", "product_id"):
            if item.get(key) is not None:
                item[key] = str(item[key])
        payload.append(item)
    return payload
