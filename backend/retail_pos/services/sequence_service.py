# Overview: Allocation of human-readable transaction numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TransactionSequence


class SequenceError(Exception):
    """Raised when transaction number allocation fails."""
    pass


def _read_allocated(register_id: int) -> int:
    current = (
        db.session.query(TransactionSequence.next_number)
        .filter_by(register_id=register_id)
        .scalar()
    )
    return current - 1


def next_transaction_number(*, register_id: int, prefix: str = "POS", pad: int = 6) -> str:
    """
    Allocate the next transaction number for a register.

    The UPDATE ... SET next_number = next_number + 1 takes the row lock, so
    two concurrent sales on one register never receive the same number.
    Numbers are unique globally because the register id is part of them.
    Does not commit; the caller's transaction owns the allocation.
    """
    if not register_id:
        raise SequenceError("register_id is required")

    stmt = (
        update(TransactionSequence)
        .where(TransactionSequence.register_id == register_id)
        .values(next_number=TransactionSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _read_allocated(register_id)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(TransactionSequence(register_id=register_id, next_number=2))
            next_num = 1
        except IntegrityError:
            # Another request created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            db.session.flush()
            next_num = _read_allocated(register_id)

    return f"{prefix}-{register_id:03d}-{next_num:0{pad}d}"
