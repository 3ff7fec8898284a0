from .catalog import Product, ProductVariant, StockMovement
from .operators import Operator, AuthToken, operator_registers
from .registers import (
    Register, RegisterSession, TransactionSequence,
    SESSION_STATUS_OPEN, SESSION_STATUS_CLOSED,
)
from .transactions import (
    PosTransaction, TransactionLine, TransactionPayment,
    TRANSACTION_TYPE_SALE, TRANSACTION_TYPE_REFUND,
    TRANSACTION_STATUS_COMPLETED, TRANSACTION_STATUS_VOIDED, TRANSACTION_STATUS_REFUNDED,
    INVENTORY_STATUS_OK, INVENTORY_STATUS_NEEDS_RECONCILIATION,
)

__all__ = [
    'Product', 'ProductVariant', 'StockMovement',
    'Operator', 'AuthToken', 'operator_registers',
    'Register', 'RegisterSession', 'TransactionSequence',
    'SESSION_STATUS_OPEN', 'SESSION_STATUS_CLOSED',
    'PosTransaction', 'TransactionLine', 'TransactionPayment',
    'TRANSACTION_TYPE_SALE', 'TRANSACTION_TYPE_REFUND',
    'TRANSACTION_STATUS_COMPLETED', 'TRANSACTION_STATUS_VOIDED', 'TRANSACTION_STATUS_REFUNDED',
    'INVENTORY_STATUS_OK', 'INVENTORY_STATUS_NEEDS_RECONCILIATION',
]
