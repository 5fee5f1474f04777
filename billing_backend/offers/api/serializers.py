# offers/api/serializers.py

from rest_framework import serializers


# ==========================================================
# READ (normalized document)
# ==========================================================


class ProductToProductOfferRuleSerializer(serializers.Serializer):
    id = serializers.CharField()
    rule_key = serializers.CharField(read_only=True)
    enabled = serializers.BooleanField()
    buy_product = serializers.CharField()
    buy_quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    free_product = serializers.CharField()
    free_quantity = serializers.DecimalField(max_digits=12, decimal_places=3)
    max_offer_count = serializers.IntegerField()
    max_customer_count = serializers.IntegerField()
    offer_given_count = serializers.IntegerField(read_only=True)
    offer_customer_count = serializers.IntegerField(read_only=True)
    offer_customers = serializers.ListField(child=serializers.CharField(), read_only=True)


class ProductPriceOfferRuleSerializer(serializers.Serializer):
    id = serializers.CharField()
    rule_key = serializers.CharField(read_only=True)
    enabled = serializers.BooleanField()
    product = serializers.CharField()
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    max_offer_count = serializers.IntegerField()
    max_customer_count = serializers.IntegerField()
    offer_given_count = serializers.IntegerField(read_only=True)
    offer_customer_count = serializers.IntegerField(read_only=True)
    offer_customers = serializers.ListField(child=serializers.CharField(), read_only=True)


class RandomCustomerOfferProductRuleSerializer(serializers.Serializer):
    id = serializers.CharField()
    enabled = serializers.BooleanField()
    product = serializers.CharField()
    winner_count = serializers.IntegerField()
    assigned_count = serializers.IntegerField(read_only=True)
    redeemed_count = serializers.IntegerField(read_only=True)
    selected_customers = serializers.ListField(child=serializers.CharField(), read_only=True)


class RewardSettingsSerializer(serializers.Serializer):
    version = serializers.SerializerMethodField()

    enabled = serializers.BooleanField()
    spend_amount_per_step = serializers.DecimalField(max_digits=12, decimal_places=2)
    points_per_step = serializers.IntegerField()
    points_needed_for_offer = serializers.IntegerField()
    offer_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    reset_on_redeem = serializers.BooleanField()

    enable_product_to_product_offer = serializers.BooleanField()
    product_to_product_offers = ProductToProductOfferRuleSerializer(many=True)

    enable_product_price_offer = serializers.BooleanField()
    product_price_offers = ProductPriceOfferRuleSerializer(many=True)

    enable_random_customer_product_offer = serializers.BooleanField()
    random_customer_offer_products = RandomCustomerOfferProductRuleSerializer(many=True)
    random_customer_offer_campaign_code = serializers.CharField()
    random_customer_offer_assigned_count = serializers.IntegerField()
    random_customer_offer_redeemed_count = serializers.IntegerField()
    random_customer_offer_last_assigned_at = serializers.DateTimeField(allow_null=True)

    enable_total_percentage_offer = serializers.BooleanField()
    total_percentage_offer_percent = serializers.DecimalField(max_digits=5, decimal_places=2)
    total_percentage_offer_max_offer_count = serializers.IntegerField()
    total_percentage_offer_max_customer_count = serializers.IntegerField()
    total_percentage_offer_given_count = serializers.IntegerField()
    total_percentage_offer_customer_count = serializers.IntegerField()
    total_percentage_offer_customers = serializers.ListField(child=serializers.CharField())

    def get_version(self, obj) -> int:
        return int(self.context.get("version", 0))


# ==========================================================
# WRITE (partial document)
# ==========================================================


class RewardSettingsPatchSerializer(serializers.Serializer):
    """
    Shape check only. Values are normalized by the settings repository,
    usage counters are ignored.
    """

    enabled = serializers.BooleanField(required=False)
    spend_amount_per_step = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    points_per_step = serializers.IntegerField(min_value=0, required=False)
    points_needed_for_offer = serializers.IntegerField(min_value=0, required=False)
    offer_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    reset_on_redeem = serializers.BooleanField(required=False)

    enable_product_to_product_offer = serializers.BooleanField(required=False)
    product_to_product_offers = serializers.ListField(child=serializers.DictField(), required=False)

    enable_product_price_offer = serializers.BooleanField(required=False)
    product_price_offers = serializers.ListField(child=serializers.DictField(), required=False)

    enable_random_customer_product_offer = serializers.BooleanField(required=False)
    random_customer_offer_products = serializers.ListField(child=serializers.DictField(), required=False)
    random_customer_offer_campaign_code = serializers.CharField(required=False, allow_blank=True, max_length=64)
    reselect_random_customer_offer = serializers.BooleanField(required=False, default=False)

    enable_total_percentage_offer = serializers.BooleanField(required=False)
    total_percentage_offer_percent = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False
    )
    total_percentage_offer_max_offer_count = serializers.IntegerField(min_value=0, required=False)
    total_percentage_offer_max_customer_count = serializers.IntegerField(min_value=0, required=False)


class RandomDrawResultSerializer(serializers.Serializer):
    campaign_code = serializers.CharField()
    assigned_count = serializers.IntegerField()
    cleared_count = serializers.IntegerField()
    winners_by_rule = serializers.DictField(child=serializers.ListField(child=serializers.CharField()))
