"""
Ledger Verification Script

Checks the integrity of the Excel sales ledger after a simulation.
Run from project root: python scripts/verify.py
"""

import sys
from datetime import datetime

from bill_generator.services.excel_manager import ExcelManager


def verify_ledger() -> bool:
    """Report duplicates, missing columns and rows whose totals do not add up."""
    path = ExcelManager.ledger_path()

    print("=" * 60)
    print("LEDGER VERIFICATION REPORT")
    print("=" * 60)
    print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"File: {path}")
    print("=" * 60)

    if not path.exists():
        print("\nLedger file not found!")
        print("   Run the simulation first: python scripts/simulate.py")
        return False

    df = ExcelManager.read_ledger()
    ok = True

    print("\nSTATISTICS:")
    print(f"   Total Orders: {len(df)}")
    print(f"   Restaurants: {df['restaurant_id'].nunique() if len(df) else 0}")

    missing = [col for col in ExcelManager.ORDER_COLUMNS if col not in df.columns]
    if missing:
        print(f"\nMissing Columns: {missing}")
        return False
    print("\nAll ledger columns present")

    duplicates = int(df["order_id"].duplicated().sum())
    if duplicates:
        print(f"{duplicates} duplicate order IDs found!")
        ok = False
    else:
        print("No duplicate order IDs")

    # total == subtotal + tax - discount for every row
    drift = (df["subtotal"] + df["tax"] - df["discount"] - df["total_amount"]).abs() > 0.005
    if drift.any():
        print(f"{int(drift.sum())} rows with inconsistent totals: {list(df.loc[drift, 'order_id'])}")
        ok = False
    else:
        print("All totals consistent")

    if len(df):
        print("\nREVENUE:")
        print(f"   Total: {df['total_amount'].sum():.2f}")
        print(f"   Average: {df['total_amount'].mean():.2f}")
        print("\n   By payment method:")
        for method, amount in df.groupby("payment_method")["total_amount"].sum().items():
            print(f"     {method:<6} {amount:.2f}")

        print("\nRECENT ORDERS:")
        print("-" * 60)
        print(df[["order_id", "customer_name", "items", "total_amount"]].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("VERIFICATION COMPLETE" if ok else "VERIFICATION FAILED")
    print("=" * 60)
    return ok


if __name__ == "__main__":
    sys.exit(0 if verify_ledger() else 1)
