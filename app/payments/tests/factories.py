"""
Factory Boy factories for payment test data.

Usage:
    from payments.tests.factories import (
        PendingPaymentFactory,
        RefundRequestFactory,
        SubscriptionPaymentFactory,
        WebhookEventFactory,
    )

    # Checkout awaiting a Mercado Pago confirmation
    pending = PendingPaymentFactory()

    # Refund request for an existing order
    request = RefundRequestFactory(order=order, company=order.company)
"""

from decimal import Decimal

import factory

from payments.models import (
    PendingPayment,
    RefundRequest,
    SubscriptionPayment,
    WebhookEvent,
)
from payments.providers import RawStatusPayload
from payments.state_machines import (
    PaymentProvider,
    RefundKind,
    SubscriptionPaymentStatus,
    WebhookEventStatus,
)
from stores.tests.factories import CompanyFactory, OrderFactory


def checkout_payload(**overrides) -> dict:
    """Serialized order as stored by the checkout."""
    payload = {
        "customer_name": "Ana",
        "customer_phone": "11999990000",
        "customer_email": "Ana@Example.com",
        "items": [
            {
                "product_id": "burger-1",
                "product_name": "X-Burger",
                "quantity": 2,
                "unit_price": "20.00",
            },
        ],
        "subtotal": "40.00",
        "delivery_fee": "5.00",
        "total": "45.00",
        "notes": "Sem cebola",
    }
    payload.update(overrides)
    return payload


def status_payload(raw_status, provider=PaymentProvider.MERCADOPAGO, reference="900000") -> RawStatusPayload:
    """Status lookup result as returned by a provider client."""
    return RawStatusPayload(
        provider=provider,
        reference=reference,
        raw_status=raw_status,
        amount=Decimal("45.00"),
        body={"status": raw_status},
        strategy="status",
    )


class PendingPaymentFactory(factory.django.DjangoModelFactory):
    """
    Checkout in PENDING waiting for Mercado Pago.

    Example:
        PendingPaymentFactory(provider=PaymentProvider.PICPAY, provider_reference="link-1")
    """

    class Meta:
        model = PendingPayment
        skip_postgeneration_save = True

    company = factory.SubFactory(CompanyFactory)
    provider = PaymentProvider.MERCADOPAGO
    provider_reference = factory.Sequence(lambda n: f"{900000 + n}")
    order_payload = factory.LazyFunction(checkout_payload)


class SubscriptionPaymentFactory(factory.django.DjangoModelFactory):
    """Pending plan charge on the platform Mercado Pago account."""

    class Meta:
        model = SubscriptionPayment
        skip_postgeneration_save = True

    company = factory.SubFactory(CompanyFactory)
    plan_key = "pro"
    plan_name = "Pro"
    amount = Decimal("99.90")
    payment_reference = factory.Sequence(lambda n: f"{700000 + n}")
    payment_status = SubscriptionPaymentStatus.PENDING


class RefundRequestFactory(factory.django.DjangoModelFactory):
    """
    Pending full refund of a paid Mercado Pago order.

    The order's reference prefix is stripped the same way intake does it.
    """

    class Meta:
        model = RefundRequest
        skip_postgeneration_save = True

    company = factory.SubFactory(CompanyFactory)
    order = factory.SubFactory(
        OrderFactory,
        company=factory.SelfAttribute("..company"),
    )
    refund_kind = RefundKind.ORDER
    payment_provider = PaymentProvider.MERCADOPAGO
    payment_id = factory.LazyAttribute(
        lambda o: RefundRequest.split_reference(o.order.payment_reference)[1]
    )
    requested_amount = factory.LazyAttribute(lambda o: o.order.total)
    original_amount = factory.LazyAttribute(lambda o: o.order.total)
    customer_name = factory.LazyAttribute(lambda o: o.order.customer_name)
    reason = "Pedido chegou frio"


class WebhookEventFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    provider = PaymentProvider.PICPAY
    event_type = "PAYMENT"
    payload = factory.Sequence(lambda n: {"id": f"charge-{n}", "status": "PAID"})
    event_key = factory.LazyAttribute(lambda o: WebhookEvent.build_event_key(o.provider, o.payload))
    status = WebhookEventStatus.PENDING
