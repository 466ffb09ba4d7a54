"""
Centralized HTTP exceptions for consistent error handling.

Every domain error of the POS core is an AppException, so routers never
translate errors themselves: FastAPI turns them into 4xx responses.

Usage:
    from pos_shared.utils.exceptions import TableUnavailableError, OrderNotFoundError

    raise TableUnavailableError(table_id, table.status)
    raise OrderNotFoundError(order_id)
"""

from typing import Any

from fastapi import HTTPException, status

from pos_shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        # Log the error with context
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, error=type(self).__name__, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Table", 12)
        raise NotFoundError("Discount code", code, outlet_id=outlet_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} {entity_id} not found"
        else:
            detail = f"{entity} not found"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class TableNotFoundError(NotFoundError):
    def __init__(self, table_id: int | None = None, **log_context: Any):
        super().__init__("Table", table_id, **log_context)


class SessionNotFoundError(NotFoundError):
    """No active session on the table."""

    def __init__(self, table_id: int | None = None, **log_context: Any):
        super().__init__("Active session for table", table_id, **log_context)


class OrderNotFoundError(NotFoundError):
    def __init__(self, order_id: int | None = None, **log_context: Any):
        super().__init__("Order", order_id, **log_context)


class OrderItemNotFoundError(NotFoundError):
    def __init__(self, item_id: int | None = None, **log_context: Any):
        super().__init__("Order item", item_id, **log_context)


class TicketNotFoundError(NotFoundError):
    def __init__(self, kot_id: int | None = None, **log_context: Any):
        super().__init__("KOT", kot_id, **log_context)


class InvoiceNotFoundError(NotFoundError):
    def __init__(self, invoice_id: int | None = None, **log_context: Any):
        super().__init__("Invoice", invoice_id, **log_context)


class MenuItemNotFoundError(NotFoundError):
    def __init__(self, item_id: int | None = None, **log_context: Any):
        super().__init__("Menu item", item_id, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("change table status")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not allowed to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class SessionLockViolationError(ForbiddenError):
    """The actor is not the session holder and has no override role."""

    def __init__(self, session_id: int, holder: int, actor_id: int, **log_context: Any):
        super().__init__(
            f"modify table session {session_id}: it is held by staff {holder}",
            session_id=session_id,
            holder=holder,
            actor_id=actor_id,
            **log_context,
        )


class InsufficientRoleError(ForbiddenError):
    """User doesn't have the required role."""

    def __init__(self, required_roles: list[str] | frozenset[str], **log_context: Any):
        roles_str = ", ".join(sorted(required_roles))
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=sorted(required_roles),
            **log_context,
        )


class OutletAccessError(ForbiddenError):
    """Entity belongs to a different outlet than the actor."""

    def __init__(self, outlet_id: int | None = None, **log_context: Any):
        super().__init__("access this outlet", outlet_id=outlet_id, **log_context)


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("Quantity must be positive", field="quantity", value=-1)
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidStateError(ValidationError):
    """Entity is in an invalid state for the operation."""

    def __init__(
        self,
        entity: str,
        current_state: str,
        expected_states: list[str] | None = None,
        **log_context: Any,
    ):
        if expected_states:
            states_str = ", ".join(expected_states)
            detail = f"{entity} is '{current_state}', expected: {states_str}"
        else:
            detail = f"{entity} cannot be '{current_state}' for this operation"

        super().__init__(detail, entity=entity, current_state=current_state, **log_context)


class OrderNotServedError(InvalidStateError):
    """Order cannot be billed in its current state."""

    def __init__(self, order_id: int, current_state: str, **log_context: Any):
        super().__init__(
            f"Order {order_id}",
            current_state,
            ["served"],
            order_id=order_id,
            **log_context,
        )


class InvalidTransitionError(ValidationError):
    """Invalid status transition."""

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


class TableNotMergeableError(ValidationError):
    def __init__(self, table_id: int, reason: str, **log_context: Any):
        super().__init__(f"Table {table_id} cannot be merged: {reason}", table_id=table_id, **log_context)


class MissingGstinForTaxRemovalError(ValidationError):
    def __init__(self, **log_context: Any):
        super().__init__("Customer GSTIN is required to remove GST", **log_context)


class InvalidDiscountCodeError(ValidationError):
    """Code unknown, inactive, outside its validity window or used up."""

    def __init__(self, code: str, reason: str = "unknown or expired", **log_context: Any):
        super().__init__(f"Discount code '{code}' is invalid: {reason}", code=code, **log_context)


class MinOrderNotMetError(ValidationError):
    def __init__(self, code: str, min_order_cents: int, subtotal_cents: int, **log_context: Any):
        super().__init__(
            f"Discount code '{code}' requires a minimum order of {min_order_cents} cents",
            code=code,
            min_order_cents=min_order_cents,
            subtotal_cents=subtotal_cents,
            **log_context,
        )


class PaymentAmountError(ValidationError):
    """Payment amount validation error."""

    def __init__(self, amount: int, reason: str, **log_context: Any):
        detail = f"Invalid payment amount ({amount}): {reason}"
        super().__init__(detail, amount=amount, **log_context)


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Table already has an active session")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class TableUnavailableError(ConflictError):
    """Table cannot host a new session (busy, blocked or merged)."""

    def __init__(self, table_id: int, current_status: str, **log_context: Any):
        super().__init__(
            f"Table {table_id} is not available (status '{current_status}')",
            table_id=table_id,
            current_status=current_status,
            **log_context,
        )


class CannotModifyPaidInvoiceError(ConflictError):
    def __init__(self, invoice_id: int, **log_context: Any):
        super().__init__(f"Invoice {invoice_id} is already paid", invoice_id=invoice_id, **log_context)


class InvoiceAlreadyCancelledError(ConflictError):
    def __init__(self, invoice_id: int, **log_context: Any):
        super().__init__(f"Invoice {invoice_id} is cancelled", invoice_id=invoice_id, **log_context)


class DuplicateDiscountCodeError(ConflictError):
    def __init__(self, order_id: int, code: str, **log_context: Any):
        super().__init__(
            f"Order {order_id} already has discount code '{code}'",
            order_id=order_id,
            code=code,
            **log_context,
        )

