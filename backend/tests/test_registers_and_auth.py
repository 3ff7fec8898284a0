"""
Register administration and operator authentication services.
"""

from datetime import timedelta

import pytest

from retail_pos.errors import ConflictError, InvalidInputError, InvalidStateError, NotFoundError
from retail_pos.extensions import db
from retail_pos.models import AuthToken
from retail_pos.services import auth_service, register_service

from conftest import TEST_PIN, make_operator


class TestRegisterService:
    def test_create_defaults(self, db_session):
        register = register_service.create_register(
            {"name": "Till 3", "opening_balance_cents": 2500, "currency": "cad"},
        )
        assert register.currency == "CAD"
        assert register.is_active is True
        assert register.current_balance_cents == 2500

    def test_default_currency(self, db_session):
        register = register_service.create_register({"name": "Till 4"}, default_currency="EUR")
        assert register.currency == "EUR"

    def test_duplicate_name(self, register):
        with pytest.raises(ConflictError):
            register_service.create_register({"name": register.name})

    def test_unknown_field(self, db_session):
        with pytest.raises(InvalidInputError):
            register_service.create_register({"name": "Till", "drawer_size": 4})

    def test_list_filters_and_orders(self, register, other_register):
        register_service.update_register(other_register.id, {"is_active": False})
        assert [r.name for r in register_service.list_registers()] == ["Back Office", "Front Counter"]
        assert [r.name for r in register_service.list_registers(is_active=True)] == ["Front Counter"]

    def test_rename_conflict(self, register, other_register):
        with pytest.raises(ConflictError):
            register_service.update_register(other_register.id, {"name": register.name})

    def test_cannot_deactivate_with_open_session(self, register, open_session):
        with pytest.raises(InvalidStateError):
            register_service.update_register(register.id, {"is_active": False})
        db.session.rollback()
        assert register_service.get_register(register.id).is_active is True

    def test_unknown_register(self, db_session):
        with pytest.raises(NotFoundError):
            register_service.get_register(777)
        with pytest.raises(NotFoundError):
            register_service.update_register(777, {"location": "Nowhere"})


class TestOperators:
    def test_duplicate_username(self, cashier):
        with pytest.raises(ConflictError):
            make_operator("cashier")

    @pytest.mark.parametrize("pin", ["123", "123456789", "12a4", 1234, None])
    def test_pin_format(self, db_session, pin):
        with pytest.raises(InvalidInputError):
            make_operator("newbie", pin=pin)

    def test_pin_is_hashed(self, cashier):
        assert cashier.pin_hash != TEST_PIN
        assert auth_service.verify_pin(TEST_PIN, cashier.pin_hash)
        assert not auth_service.verify_pin("0000", cashier.pin_hash)

    def test_assign_registers(self, cashier, register, other_register):
        auth_service.assign_registers(cashier.id, [other_register.id])
        assert cashier.can_access_register(other_register.id)
        assert not cashier.can_access_register(register.id)

    def test_assign_unknown_register(self, cashier):
        with pytest.raises(NotFoundError):
            auth_service.assign_registers(cashier.id, [606])


class TestTokens:
    def test_login_issues_hashed_token(self, cashier):
        record, plaintext = auth_service.authenticate("cashier", TEST_PIN)
        assert record.token_hash == auth_service.hash_token(plaintext)
        assert record.token_hash != plaintext
        assert auth_service.validate_token(plaintext).id == cashier.id
        assert cashier.last_login_at is not None

    @pytest.mark.parametrize("username,pin", [("cashier", "9999"), ("nobody", TEST_PIN), ("cashier", 4321)])
    def test_bad_credentials(self, cashier, username, pin):
        assert auth_service.authenticate(username, pin) is None

    def test_inactive_operator(self, cashier):
        cashier.is_active = False
        db.session.commit()
        assert auth_service.authenticate("cashier", TEST_PIN) is None

    def test_revoked_token(self, cashier):
        _, plaintext = auth_service.authenticate("cashier", TEST_PIN)
        assert auth_service.revoke_token(plaintext) is True
        assert auth_service.validate_token(plaintext) is None
        assert auth_service.revoke_token(plaintext) is False

    def test_expired_token(self, cashier):
        record, plaintext = auth_service.authenticate("cashier", TEST_PIN)
        record.expires_at = record.expires_at - timedelta(days=2)
        db.session.commit()
        assert auth_service.validate_token(plaintext) is None

    def test_unknown_token(self, db_session):
        assert auth_service.validate_token("not-a-token") is None
        assert db.session.query(AuthToken).count() == 0
