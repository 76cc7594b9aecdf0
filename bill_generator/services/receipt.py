"""
Bill rendering.

Formats a stored order as fixed-width plain text suitable for a thermal
receipt printer. Only the text is produced here; talking to the printer is
the client's job.
"""

from typing import Optional

from bill_generator.core.config import get_settings
from bill_generator.database import as_utc
from bill_generator.models import Order

FOOTER = "Thank you, Visit again!"


def _money(symbol: str, amount: float) -> str:
    return f"{symbol}{amount:.2f}"


def _columns(left: str, right: str, width: int) -> str:
    """Left text and right-aligned amount on one line, truncating the left side."""
    room = width - len(right) - 1
    if len(left) > room:
        left = left[: max(room - 1, 0)] + "…"
    return f"{left:<{room}} {right}"


def render_receipt(
    order: Order,
    restaurant_name: str,
    currency_symbol: Optional[str] = None,
    width: Optional[int] = None,
) -> str:
    """
    Render a printable bill.

    Args:
        order: Persisted order; only its snapshot fields are read
        restaurant_name: Printed in the header
        currency_symbol: Defaults to CURRENCY_SYMBOL
        width: Characters per line, defaults to RECEIPT_WIDTH

    Returns:
        Receipt text ending with blank feed lines
    """
    settings = get_settings()
    symbol = settings.currency_symbol if currency_symbol is None else currency_symbol
    width = width or settings.receipt_width

    rule = "-" * width
    created = as_utc(order.created_at).strftime("%d %b %Y, %I:%M %p UTC")

    lines = [
        "=" * width,
        restaurant_name.center(width).rstrip(),
        "=" * width,
        f"Bill No: {order.id}",
        f"Customer: {order.customer_name}",
        f"Date: {created}",
        f"Payment: {order.payment_method.value.upper()}",
        rule,
    ]

    for item in order.items:
        label = f"{item['name']} ({item['size']}) x{item['quantity']}"
        lines.append(_columns(label, _money(symbol, item["line_total"]), width))

    lines.append(rule)
    lines.append(_columns("Subtotal:", _money(symbol, order.subtotal), width))
    lines.append(_columns("Tax:", _money(symbol, order.tax), width))
    if order.discount:
        lines.append(_columns("Discount:", "-" + _money(symbol, order.discount), width))
    lines.append(_columns("Total:", _money(symbol, order.total_amount), width))
    lines.append("=" * width)
    lines.append(FOOTER.center(width).rstrip())

    return "\n".join(lines) + "\n\n\n"
