"""
Excel Sales Ledger with Concurrency Control

Appends one row per order to the ledger workbook. Celery workers may run
in several processes, so every read-append-write happens under a file lock.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import pandas as pd
from filelock import FileLock, Timeout

from bill_generator.core.config import get_settings

logger = logging.getLogger(__name__)


class ExcelManager:
    """Process-safe Excel ledger."""

    ORDER_COLUMNS = [
        "order_id",
        "restaurant_id",
        "date_time",
        "customer_name",
        "items",
        "item_count",
        "subtotal",
        "tax",
        "discount",
        "total_amount",
        "payment_method",
        "exported_at",
    ]

    @classmethod
    def ledger_path(cls, data_dir: Optional[Path] = None) -> Path:
        settings = get_settings()
        return Path(data_dir or settings.data_directory) / settings.excel_filename

    @classmethod
    def _ensure_data_dir(cls, path: Path) -> None:
        """Create data directory if needed."""
        if not path.parent.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {path.parent}")

    @classmethod
    def _load_or_create_df(cls, file_path: Path, columns: list) -> pd.DataFrame:
        """Load existing file or create new DataFrame."""
        if file_path.exists():
            try:
                return pd.read_excel(file_path, engine="openpyxl")
            except Exception as e:
                logger.warning(f"Error reading {file_path}: {e}")
                return pd.DataFrame(columns=columns)
        return pd.DataFrame(columns=columns)

    @staticmethod
    def summarize_items(items: list[dict[str, Any]]) -> str:
        """'Cola (Small) x2; Fries (Large) x1'"""
        return "; ".join(
            f"{item['name']} ({item['size']}) x{item['quantity']}" for item in items
        )

    @classmethod
    def export_order(
        cls,
        order_data: dict[str, Any],
        data_dir: Optional[Path] = None,
    ) -> dict[str, Any]:
        """
        Append an order to the ledger with file locking.

        Args:
            order_data: Serialized order (see tasks.order_export_payload)
            data_dir: Override of DATA_DIRECTORY

        Returns:
            {success, message, order_id, exported_at}; never raises
        """
        path = cls.ledger_path(data_dir)
        cls._ensure_data_dir(path)
        timeout = get_settings().excel_lock_timeout

        order_id = order_data.get("order_id", 0)
        result = {
            "success": False,
            "message": "",
            "order_id": order_id,
            "exported_at": None,
        }

        try:
            lock = FileLock(str(path) + ".lock", timeout=timeout)

            with lock:
                logger.debug(f"Lock acquired for Order #{order_id}")

                df = cls._load_or_create_df(path, cls.ORDER_COLUMNS)

                export_time = datetime.now().isoformat()
                items = order_data.get("items") or []
                new_row = {
                    "order_id": order_id,
                    "restaurant_id": order_data.get("restaurant_id"),
                    "date_time": order_data.get("created_at", export_time),
                    "customer_name": order_data.get("customer_name"),
                    "items": cls.summarize_items(items),
                    "item_count": sum(item["quantity"] for item in items),
                    "subtotal": order_data.get("subtotal"),
                    "tax": order_data.get("tax", 0.0),
                    "discount": order_data.get("discount", 0.0),
                    "total_amount": order_data.get("total_amount"),
                    "payment_method": order_data.get("payment_method"),
                    "exported_at": export_time,
                }

                df = pd.concat([df, pd.DataFrame([new_row])], ignore_index=True)
                df.to_excel(str(path), index=False, engine="openpyxl")

                logger.info(f"Order #{order_id} exported to Excel")

                result["success"] = True
                result["message"] = f"Order #{order_id} exported"
                result["exported_at"] = export_time

            logger.debug(f"Lock released for Order #{order_id}")

        except Timeout:
            result["message"] = f"Lock timeout ({timeout}s)"
            logger.error(f"Lock timeout for Order #{order_id}")

        except Exception as e:
            result["message"] = str(e)
            logger.exception(f"Error exporting Order #{order_id}")

        return result

    @classmethod
    def read_ledger(cls, data_dir: Optional[Path] = None) -> pd.DataFrame:
        """Current ledger contents (empty frame if nothing exported yet)."""
        return cls._load_or_create_df(cls.ledger_path(data_dir), cls.ORDER_COLUMNS)
