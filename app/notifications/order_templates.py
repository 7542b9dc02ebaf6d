"""Templates for order lifecycle push notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from app.notifications.contracts import stringify_value


@dataclass(frozen=True)
class StatusTemplate:
  """Push content sent to a customer when an order enters a status."""

  status: str
  notification_type: str
  title: str
  body: str


STATUS_TEMPLATES: dict[str, StatusTemplate] = {
  "accepted": StatusTemplate(status="accepted", notification_type="order_accepted", title="Order Accepted", body="A driver has accepted your order"),
  "in_transit": StatusTemplate(status="in_transit", notification_type="order_in_transit", title="Order In Transit", body="Your order is on the way"),
  "completed": StatusTemplate(status="completed", notification_type="order_completed", title="Order Completed", body="Your order has been delivered"),
}

NEW_ORDER_TITLE = "New Order Available"
NEW_ORDER_TYPE = "new_order"
UNKNOWN_ADDRESS = "Unknown address"


def template_for_status(status: Any) -> StatusTemplate | None:
  """Return the template for a status, or None when the status is not announced."""
  if not isinstance(status, str):
    return None
  return STATUS_TEMPLATES.get(status)


def render_new_order(*, gas_quantity: Any, address: Any) -> tuple[str, str, str, str]:
  """Render the driver broadcast, returning (title, body, quantity, address) as strings."""
  quantity = stringify_value(gas_quantity or 0)
  resolved_address = str(address) if address else UNKNOWN_ADDRESS
  return NEW_ORDER_TITLE, f"{quantity} gallons at {resolved_address}", quantity, resolved_address
