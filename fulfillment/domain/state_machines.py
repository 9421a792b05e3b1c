"""State machines for orders and payments.

Deterministic transition tables. Orders only ever leave PENDING once;
payments are driven by gateway callbacks and become settled exactly
once, which is what makes callback replays harmless.
"""

from enum import Enum

from fulfillment.domain.exceptions import InvalidStateTransitionError


# ============================================================================
# Order State Machine
# ============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle states.

    State diagram:
        PENDING ───────────────► CANCELLED
          │
          │ payment succeeded
          ▼
        CONFIRMED
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Check if transition to target state is valid.

        Args:
            target: Target state to transition to.

        Returns:
            True if transition is valid.
        """
        return target in _ORDER_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["OrderStatus"]:
        return sorted(_ORDER_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        """Check if this is a terminal (final) state.

        Returns:
            True if no further transitions are possible.
        """
        return len(_ORDER_TRANSITIONS.get(self, set())) == 0


_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: set(),  # Terminal state
    OrderStatus.CANCELLED: set(),  # Terminal state
}


# ============================================================================
# Payment State Machine
# ============================================================================


class PaymentStatus(str, Enum):
    """Payment lifecycle states.

    State diagram:
        PENDING ──────────┬─────────────► FAILED
          │               │
          │ processing    │
          ▼               │
        PROCESSING ───────┤
          │               │
          │ succeeded     │
          ▼               │
        SUCCEEDED ◄───────┘ (also directly from PENDING)
          │
          │ refund
          ▼
        REFUNDED
    """

    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"

    def can_transition_to(self, target: "PaymentStatus") -> bool:
        return target in _PAYMENT_TRANSITIONS.get(self, set())

    def allowed_transitions(self) -> list["PaymentStatus"]:
        return sorted(_PAYMENT_TRANSITIONS.get(self, set()), key=lambda s: s.value)

    def is_terminal(self) -> bool:
        return len(_PAYMENT_TRANSITIONS.get(self, set())) == 0

    def is_settled(self) -> bool:
        """Check if the authorization outcome is already known.

        Settled payments ignore further authorization callbacks.

        Returns:
            True for SUCCEEDED, FAILED and REFUNDED.
        """
        return self in {PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.REFUNDED}


_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.PROCESSING,
        PaymentStatus.SUCCEEDED,
        PaymentStatus.FAILED,
    },
    PaymentStatus.PROCESSING: {PaymentStatus.SUCCEEDED, PaymentStatus.FAILED},
    PaymentStatus.SUCCEEDED: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),  # Terminal state
    PaymentStatus.REFUNDED: set(),  # Terminal state
}


# ============================================================================
# Transition Validators
# ============================================================================


def validate_order_transition(
    order_id: str,
    current: OrderStatus,
    target: OrderStatus,
) -> None:
    """Validate an order state transition.

    Args:
        order_id: Order identifier for error messages.
        current: Current order status.
        target: Target order status.

    Raises:
        InvalidStateTransitionError: If transition is not allowed.
    """
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(
            entity_type="Order",
            entity_id=order_id,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[s.value for s in current.allowed_transitions()],
        )


def validate_payment_transition(
    payment_id: str,
    current: PaymentStatus,
    target: PaymentStatus,
) -> None:
    """Validate a payment state transition.

    Raises:
        InvalidStateTransitionError: If transition is not allowed.
    """
    if not current.can_transition_to(target):
        raise InvalidStateTransitionError(
            entity_type="Payment",
            entity_id=payment_id,
            current_state=current.value,
            target_state=target.value,
            allowed_transitions=[s.value for s in current.allowed_transitions()],
        )
