from decimal import Decimal

import pydantic
import pytest

from storefront.checkout import (
    AddressModel,
    BillingAddressModel,
    CheckoutSession,
    CheckoutSessionModel,
    CheckoutStep,
    SessionPatch,
    ShippingMethodModel,
    TaxQuoteModel,
    format_postal_code,
)
from storefront.errors import ValidationError

from tests.fakes import SHIPPING_ADDRESS


def first_error(model, data) -> ValidationError:
    with pytest.raises(pydantic.ValidationError) as exc:
        model.model_validate(data)
    return ValidationError.from_pydantic(exc.value)


@pytest.mark.parametrize(
    ("code", "country", "expected"),
    [
        ("k1a0b1", "CA", "K1A 0B1"),
        ("K1A 0B1", "CA", "K1A 0B1"),
        ("123456789", "US", "12345-6789"),
        (" 94105 ", "US", "94105"),
        ("sw1a 1aa", "GB", "SW1A 1AA"),
        (" 75001 ", "FR", "75001"),
    ],
)
def test_format_postal_code(code, country, expected):
    assert format_postal_code(code, country) == expected


class TestAddress:
    def test_valid_address(self):
        address = AddressModel.model_validate(SHIPPING_ADDRESS).to_domain()

        assert address.postal_code == "94105"
        assert address.lines() == [
            "Jane Doe",
            "1 Market St",
            "San Francisco, CA 94105",
            "US",
            "+1 415 555 0100",
        ]

    @pytest.mark.parametrize(
        ("country", "postal"),
        [("US", "94105-1234"), ("CA", "K1A 0B1"), ("GB", "sw1a 1aa"), ("DE", "10115")],
    )
    def test_postal_codes_per_country(self, country, postal):
        AddressModel.model_validate({**SHIPPING_ADDRESS, "country": country, "postalCode": postal})

    def test_postal_code_must_match_country(self):
        error = first_error(AddressModel, {**SHIPPING_ADDRESS, "country": "CA", "postalCode": "94105"})

        assert error.message == "Please enter a valid postal/ZIP code for the selected country"

    def test_unknown_country(self):
        error = first_error(AddressModel, {**SHIPPING_ADDRESS, "country": "ZZ"})

        assert error.message == "Please select a valid country"
        assert error.field == "country"

    def test_bad_phone(self):
        error = first_error(AddressModel, {**SHIPPING_ADDRESS, "phone": "555"})

        assert error.message == "Please enter a valid phone number"

    def test_blank_phone_is_dropped(self):
        address = AddressModel.model_validate({**SHIPPING_ADDRESS, "phone": ""})

        assert "phone" not in address.to_wire()

    def test_missing_field_path(self):
        data = {k: v for k, v in SHIPPING_ADDRESS.items() if k != "city"}

        assert first_error(AddressModel, data).field == "city"

    def test_domain_roundtrip_keeps_wire_shape(self):
        model = AddressModel.model_validate(SHIPPING_ADDRESS)

        assert AddressModel.from_domain(model.to_domain()).to_wire() == SHIPPING_ADDRESS


class TestBillingAddress:
    def test_same_as_shipping(self):
        billing = BillingAddressModel.model_validate({"sameAsShipping": True}).to_domain()
        shipping = AddressModel.model_validate(SHIPPING_ADDRESS).to_domain()

        assert billing.resolve(shipping) == shipping

    def test_flat_separate_address(self):
        model = BillingAddressModel.model_validate({**SHIPPING_ADDRESS, "sameAsShipping": False, "city": "Oakland"})

        assert model.to_domain().address.city == "Oakland"
        assert model.to_wire()["sameAsShipping"] is False
        assert model.to_wire()["city"] == "Oakland"

    def test_separate_address_required(self):
        error = first_error(BillingAddressModel, {"sameAsShipping": False})

        assert error.message == "Billing address is required"


class TestSessionPatch:
    def test_only_set_fields_are_sent(self):
        patch = SessionPatch.model_validate({"customerEmail": "jane@shopper.io", "orderNotes": None})

        assert patch.to_wire() == {"customerEmail": "jane@shopper.io", "orderNotes": None}

    def test_empty_patch(self):
        assert SessionPatch.model_validate({}).is_empty

    def test_unknown_field_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            SessionPatch.model_validate({"totals": {"total": "0.01"}})

    def test_long_email(self):
        error = first_error(SessionPatch, {"customerEmail": "a" * 95 + "@shopper.io"})

        assert error.message == "Email must be less than 100 characters"

    def test_long_notes(self):
        error = first_error(SessionPatch, {"orderNotes": "x" * 501})

        assert error.message == "Order notes must be less than 500 characters"

    def test_unknown_payment_type(self):
        error = first_error(SessionPatch, {"paymentMethod": {"type": "cash"}})

        assert error.message == "Please select a payment method"
        assert error.field == "paymentMethod.type"

    def test_apply_merges_into_session(self):
        session = CheckoutSession.new("sess_1")
        patch = SessionPatch.model_validate({
            "shippingAddress": SHIPPING_ADDRESS,
            "termsAccepted": True,
        })

        merged = patch.apply(session)

        assert merged.shipping_address.city == "San Francisco"
        assert merged.terms_accepted is True
        assert merged.totals == session.totals
        assert merged.customer_email is None


class TestResponses:
    def test_session_payload(self):
        body = {
            "session": {
                "id": "sess_1",
                "customerEmail": "jane@shopper.io",
                "shippingMethod": {"id": "express", "name": "Express Shipping", "price": 12.99, "estimatedDays": 3},
                "totals": {"subtotal": "50.00", "shipping": "12.99", "tax": "4.38", "total": "67.37"},
                "stepCompletion": {"cart": True, "shipping": False},
                "expiresAt": "2026-10-19T00:00:00Z",
            }
        }

        assert CheckoutSessionModel.is_session(body)
        session = CheckoutSessionModel.model_validate(body).to_domain()

        assert session.shipping_method.price == Decimal("12.99")
        assert session.shipping_method.estimated_days == "3"
        assert session.totals.is_consistent
        assert session.step_completion == frozenset({CheckoutStep.CART})

    def test_not_a_session(self):
        assert not CheckoutSessionModel.is_session({"success": True})
        assert not CheckoutSessionModel.is_session([])

    @pytest.mark.parametrize(
        "body",
        [
            {"tax": "4.38", "rate": "0.0875"},
            {"tax": {"amount": "4.38", "rate": "0.0875"}},
        ],
    )
    def test_tax_shapes(self, body):
        quote = TaxQuoteModel.model_validate(body).to_domain()

        assert quote.amount == Decimal("4.38")
        assert quote.rate == Decimal("0.0875")

    def test_shipping_method_price_from_float(self):
        method = ShippingMethodModel.model_validate({"id": "standard", "name": "Standard", "price": 24.99}).to_domain()

        assert method.price == Decimal("24.99")
