"""Domain error taxonomy.

Services raise these; the API layer maps each family to a status code
(see ``tillpoint.main.pos_error_handler``). Nothing here is retried by the
services themselves.
"""

from decimal import Decimal
from typing import Optional


class PosError(Exception):
    """Base class for all business-rule and infrastructure failures."""

    code = "pos_error"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


# ===================== Validation =====================

class PosValidationError(PosError):
    """Bad input shape or value; rejected before any mutation."""

    code = "validation_error"


class OrderValidationError(PosValidationError):
    code = "invalid_order"


class InvalidDiscount(PosValidationError):
    code = "invalid_discount"


class PaymentValidationError(PosValidationError):
    code = "invalid_payment"


class AmountMismatch(PaymentValidationError):
    """Payment amount does not equal the order total."""

    code = "amount_mismatch"

    def __init__(self, expected: Decimal, received: Decimal):
        self.expected = expected
        self.received = received
        super().__init__(f"Payment amount {received} does not match order total {expected}")


class ShiftValidationError(PosValidationError):
    code = "invalid_shift"


# ===================== Conflicts =====================

class ConflictError(PosError):
    """The current state forbids the operation; re-fetch and retry."""

    code = "conflict"


class TableUnavailable(ConflictError):
    code = "table_unavailable"

    def __init__(self, table_id: int, status: Optional[str] = None):
        self.table_id = table_id
        self.status = status
        detail = f" (status: {status})" if status else ""
        super().__init__(f"Table {table_id} is not available{detail}")


class ShiftAlreadyActive(ConflictError):
    code = "shift_already_active"

    def __init__(self, staff_id: int):
        self.staff_id = staff_id
        super().__init__(f"Staff {staff_id} already has an active shift")


class OrderAlreadyFinalized(ConflictError):
    code = "order_already_finalized"

    def __init__(self, order_id: int, status: str):
        self.order_id = order_id
        self.status = status
        super().__init__(f"Order {order_id} is already {status}")


class InvalidTransition(ConflictError):
    code = "invalid_transition"

    def __init__(self, order_id: int, current: str, target: str):
        self.order_id = order_id
        self.current = current
        self.target = target
        super().__init__(f"Order {order_id} cannot move from {current} to {target}")


# ===================== Not found =====================

class NotFoundError(PosError):
    code = "not_found"


class OrderNotFound(NotFoundError):
    code = "order_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class TableNotFound(NotFoundError):
    code = "table_not_found"

    def __init__(self, table_id: int):
        self.table_id = table_id
        super().__init__(f"Table {table_id} not found")


class ReceiptNotFound(NotFoundError):
    code = "receipt_not_found"

    def __init__(self, order_id: int):
        self.order_id = order_id
        super().__init__(f"Receipt for order {order_id} not found")


class StaffNotFound(NotFoundError):
    code = "staff_not_found"

    def __init__(self, staff_id: int):
        self.staff_id = staff_id
        super().__init__(f"Staff {staff_id} not found or inactive")


class NoActiveShift(NotFoundError):
    code = "no_active_shift"

    def __init__(self, staff_id: int):
        self.staff_id = staff_id
        super().__init__(f"No active shift found for staff {staff_id}")


# ===================== Auth =====================

class AuthenticationError(PosError):
    code = "authentication_failed"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid credentials")


# ===================== Infrastructure =====================

class StorageError(PosError):
    """Datastore failure; nothing was persisted and the call may be retried."""

    code = "storage_unavailable"
