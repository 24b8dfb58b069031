import django_filters as filters

from payments.models import RefundRequest
from payments.state_machines import RefundKind, RefundRequestStatus


class RefundRequestFilter(filters.FilterSet):
    status = filters.ChoiceFilter(choices=RefundRequestStatus.choices)
    refund_kind = filters.ChoiceFilter(choices=RefundKind.choices)
    company = filters.UUIDFilter(field_name="company_id")
    created_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = RefundRequest
        fields = ["status", "refund_kind", "company", "created_after", "created_before"]
