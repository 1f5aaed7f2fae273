"""
Order cache state and the commands that change it.

State is immutable: `apply` returns a new OrderState for every command, so a
snapshot handed to a reader never changes under it. Only the lifecycle
manager dispatches commands.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple, Type

from .errors import ErrorKind
from .models import Order


@dataclass(frozen=True)
class OrderState:
    orders: Tuple[Order, ...] = ()
    focused_order: Optional[Order] = None
    is_loading: bool = False
    last_error: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    def get(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None


# --- Commands ---

@dataclass(frozen=True)
class Create:
    order: Order


@dataclass(frozen=True)
class ReplaceAll:
    orders: Tuple[Order, ...]


@dataclass(frozen=True)
class UpdateStatus:
    order_id: str
    status: str
    updated_at: datetime


@dataclass(frozen=True)
class UpdateTracking:
    order_id: str
    tracking_number: str
    status: str
    updated_at: datetime


@dataclass(frozen=True)
class ToggleStatus:
    """Sets `status`, or `fallback` when the order already has `status`."""
    order_id: str
    status: str
    fallback: str
    updated_at: datetime


@dataclass(frozen=True)
class Delete:
    order_id: str


@dataclass(frozen=True)
class SetFocused:
    order_id: Optional[str]


@dataclass(frozen=True)
class SetLoading:
    is_loading: bool


@dataclass(frozen=True)
class SetError:
    kind: ErrorKind
    message: str


@dataclass(frozen=True)
class ClearError:
    pass


# --- Transitions ---

def _update_order(state: OrderState, order_id: str, change: Callable[[Order], Order]) -> OrderState:
    orders = tuple(change(order) if order.id == order_id else order for order in state.orders)
    focused = state.focused_order
    if focused is not None and focused.id == order_id:
        focused = change(focused)
    return replace(state, orders=orders, focused_order=focused)


def _create(state, command):
    return replace(
        state,
        orders=(command.order,) + state.orders,
        focused_order=command.order,
        last_error=None,
        error_message=None,
    )


def _replace_all(state, command):
    orders = tuple(command.orders)
    focused = state.focused_order
    if focused is not None:
        focused = next((order for order in orders if order.id == focused.id), focused)
    return replace(state, orders=orders, focused_order=focused)


def _update_status(state, command):
    return _update_order(
        state, command.order_id,
        lambda order: replace(order, status=command.status, updated_at=command.updated_at),
    )


def _update_tracking(state, command):
    return _update_order(
        state, command.order_id,
        lambda order: replace(
            order,
            tracking_number=command.tracking_number,
            status=command.status,
            updated_at=command.updated_at,
        ),
    )


def _toggle_status(state, command):
    def toggle(order):
        status = command.fallback if order.status == command.status else command.status
        return replace(order, status=status, updated_at=command.updated_at)

    return _update_order(state, command.order_id, toggle)


def _delete(state, command):
    focused = state.focused_order
    if focused is not None and focused.id == command.order_id:
        focused = None
    orders = tuple(order for order in state.orders if order.id != command.order_id)
    return replace(state, orders=orders, focused_order=focused)


def _set_focused(state, command):
    if command.order_id is None:
        return replace(state, focused_order=None)
    return replace(state, focused_order=state.get(command.order_id))


def _set_loading(state, command):
    return replace(state, is_loading=command.is_loading)


def _set_error(state, command):
    return replace(state, last_error=command.kind, error_message=command.message)


def _clear_error(state, command):
    return replace(state, last_error=None, error_message=None)


_TRANSITIONS: Dict[Type, Callable] = {
    Create: _create,
    ReplaceAll: _replace_all,
    UpdateStatus: _update_status,
    UpdateTracking: _update_tracking,
    ToggleStatus: _toggle_status,
    Delete: _delete,
    SetFocused: _set_focused,
    SetLoading: _set_loading,
    SetError: _set_error,
    ClearError: _clear_error,
}


def apply(state: OrderState, command) -> OrderState:
    """
    Returns the state after `command`.

    Raises:
        TypeError: `command` is not one of the commands above.
    """
    try:
        transition = _TRANSITIONS[type(command)]
    except KeyError:
        raise TypeError(f"Unknown order command: {command!r}") from None
    return transition(state, command)
