"""
Request validation helpers: strict integers, allow-listed bodies and model patches.
"""

import pytest

from retail_pos.errors import InvalidInputError
from retail_pos.models import Register
from retail_pos.services.register_service import REGISTER_POLICY
from retail_pos.validation import (
    MAX_AMOUNT_CENTS,
    BodySchema,
    coerce_cents,
    coerce_int,
    enforce_rules_register,
    validate_body,
    validate_payload,
)


class TestCoerceInt:
    @pytest.mark.parametrize("value,expected", [(5, 5), ("12", 12), (" 7 ", 7), ("-3", -3)])
    def test_accepts_plain_integers(self, value, expected):
        assert coerce_int("n", value) == expected

    @pytest.mark.parametrize("value", [True, 1.0, "1.5", "1e3", "", "ten", None, [1]])
    def test_rejects_everything_else(self, value):
        with pytest.raises(InvalidInputError):
            coerce_int("n", value)

    def test_minimum(self):
        with pytest.raises(InvalidInputError) as exc:
            coerce_int("page", 0, minimum=1)
        assert exc.value.details == {"field": "page", "value": 0}


class TestCoerceCents:
    def test_negative_rejected_by_default(self):
        with pytest.raises(InvalidInputError):
            coerce_cents("amount", -1)
        assert coerce_cents("amount", -1, allow_negative=True) == -1

    def test_upper_bound(self):
        assert coerce_cents("amount", MAX_AMOUNT_CENTS) == MAX_AMOUNT_CENTS
        with pytest.raises(InvalidInputError):
            coerce_cents("amount", MAX_AMOUNT_CENTS + 1)


class TestValidateBody:
    SCHEMA = BodySchema(allowed={"a", "b"}, required={"a"})

    def test_unknown_keys(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_body({"a": 1, "z": 2, "y": 3}, self.SCHEMA)
        assert exc.value.details["fields"] == ["y", "z"]

    def test_missing_required(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_body({"b": 1}, self.SCHEMA)
        assert exc.value.details["missing"] == ["a"]

    def test_not_an_object(self):
        with pytest.raises(InvalidInputError):
            validate_body(["a"], self.SCHEMA)

    def test_returns_copy(self):
        payload = {"a": 1}
        assert validate_body(payload, self.SCHEMA) == payload
        assert validate_body(payload, self.SCHEMA) is not payload


class TestValidatePayload:
    def test_create_requires_name(self):
        with pytest.raises(InvalidInputError) as exc:
            validate_payload(model=Register, payload={"location": "Floor"}, policy=REGISTER_POLICY, partial=False)
        assert exc.value.details["missing"] == ["name"]

    def test_field_not_writable(self):
        with pytest.raises(InvalidInputError):
            validate_payload(
                model=Register,
                payload={"current_balance_cents": 5},
                policy=REGISTER_POLICY,
                partial=True,
            )

    def test_strings_are_stripped_and_bounded(self):
        patch = validate_payload(model=Register, payload={"name": "  Till 2 "}, policy=REGISTER_POLICY, partial=True)
        assert patch == {"name": "Till 2"}
        with pytest.raises(InvalidInputError):
            validate_payload(model=Register, payload={"name": "x" * 129}, policy=REGISTER_POLICY, partial=True)

    def test_blank_required_string(self):
        with pytest.raises(InvalidInputError):
            validate_payload(model=Register, payload={"name": "   "}, policy=REGISTER_POLICY, partial=True)

    def test_boolean_must_be_bool(self):
        with pytest.raises(InvalidInputError):
            validate_payload(model=Register, payload={"is_active": "yes"}, policy=REGISTER_POLICY, partial=True)

    def test_register_rules(self):
        patch = {"currency": "eur"}
        enforce_rules_register(patch)
        assert patch["currency"] == "EUR"
        with pytest.raises(InvalidInputError):
            enforce_rules_register({"currency": "EURO"})
        with pytest.raises(InvalidInputError):
            enforce_rules_register({"opening_balance_cents": -100})
