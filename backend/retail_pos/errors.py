# Overview: Error taxonomy shared by POS services and routes.

from __future__ import annotations


class PosError(Exception):
    """Base class for POS operation errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(PosError):
    """Register, session, transaction, product or operator is absent."""
    status_code = 404


class InvalidStateError(PosError):
    """Entity is in the wrong lifecycle state for the requested operation."""
    status_code = 409


class InvalidInputError(PosError, ValueError):
    """400-level input problem (malformed items, bad quantity, unknown field)."""
    status_code = 400


class ConflictError(PosError):
    """409-level uniqueness conflict (duplicate register name, username)."""
    status_code = 409


class ForbiddenError(PosError):
    """Operator is not allowed to act on the register."""
    status_code = 403


class InsufficientStockError(PosError):
    """Availability check failed for a line item."""
    status_code = 409

    def __init__(
        self,
        *,
        product_id: int,
        variant_id: int | None,
        product_name: str,
        available_quantity: int,
        requested_quantity: int,
    ):
        super().__init__(
            f"Insufficient inventory for {product_name}",
            details={
                "product_id": product_id,
                "variant_id": variant_id,
                "product_name": product_name,
                "available_quantity": available_quantity,
                "requested_quantity": requested_quantity,
            },
        )
        self.product_id = product_id
        self.variant_id = variant_id
        self.product_name = product_name
        self.available_quantity = available_quantity
        self.requested_quantity = requested_quantity


class InconsistencyError(PosError):
    """
    A post-commit step failed after the transaction record was persisted.

    The transaction stays (it is the record that the sale or refund
    happened); `failures` lists the inventory movements that need manual
    reconciliation.
    """
    status_code = 201

    def __init__(self, message: str, *, transaction, failures: list):
        super().__init__(
            message,
            details={
                "transaction_id": transaction.id,
                "transaction_number": transaction.transaction_number,
                "inventory_failures": [f.to_dict() for f in failures],
            },
        )
        self.transaction = transaction
        self.failures = failures
