# billing/api/filters.py

import django_filters

from billing.models import Bill


class BillFilter(django_filters.FilterSet):
    status = django_filters.ChoiceFilter(choices=Bill.STATUS_CHOICES)
    branch = django_filters.UUIDFilter(field_name="branch_id")
    customer_phone = django_filters.CharFilter(field_name="customer_phone", lookup_expr="icontains")
    invoice_number = django_filters.CharFilter(field_name="invoice_number", lookup_expr="icontains")
    date_from = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    date_to = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")

    class Meta:
        model = Bill
        fields = ["status", "branch", "customer_phone", "invoice_number", "date_from", "date_to"]
