"""
Celery Tasks
Background export of new orders to the Excel sales ledger.
"""

import logging
import time
from typing import Any

from bill_generator.celery_worker import celery_app
from bill_generator.database import as_utc
from bill_generator.models import Order
from bill_generator.services.excel_manager import ExcelManager

logger = logging.getLogger(__name__)


class LedgerExportError(RuntimeError):
    """Raised so Celery retries a failed ledger append."""


def order_export_payload(order: Order) -> dict[str, Any]:
    """JSON-serializable snapshot of an order for the export task."""
    return {
        "order_id": order.id,
        "restaurant_id": order.restaurant_id,
        "customer_name": order.customer_name,
        "items": order.items,
        "subtotal": order.subtotal,
        "tax": order.tax,
        "discount": order.discount,
        "total_amount": order.total_amount,
        "payment_method": order.payment_method.value,
        "created_at": as_utc(order.created_at).isoformat(),
    }


@celery_app.task(
    bind=True,
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(LedgerExportError,),
    retry_backoff=True
)
def export_order_to_excel(self, order_data: dict) -> dict:
    """
    Export order to the Excel ledger.

    Args:
        order_data: Output of order_export_payload()

    Returns:
        dict: Result of the export operation
    """
    task_id = self.request.id
    order_id = order_data.get("order_id", "unknown")

    logger.info(f"Task {task_id}: exporting order #{order_id}")
    start_time = time.time()

    result = ExcelManager.export_order(order_data)

    elapsed = round(time.time() - start_time, 3)
    result["task_id"] = task_id
    result["processing_time_seconds"] = elapsed

    if not result["success"]:
        logger.warning(f"Task {task_id}: order #{order_id} failed after {elapsed}s - {result['message']}")
        raise LedgerExportError(result["message"])

    logger.info(f"Task {task_id}: order #{order_id} exported in {elapsed}s")
    return result


def queue_order_export(order: Order) -> bool:
    """
    Hand an order to the export worker.

    The order is already committed; a broker outage is logged and reported
    as False rather than failing the request.
    """
    try:
        export_order_to_excel.delay(order_export_payload(order))
        return True
    except Exception:
        logger.exception(f"Could not queue ledger export for order #{order.id}")
        return False

