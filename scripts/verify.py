"""
Receipt Verification Script

Cross-checks the receipts directory against the order API:
    - every COMPLETED order has a receipt
    - no receipt exists for an order that is not COMPLETED
    - receipt contents match the stored order

Run from project root: python scripts/verify.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import argparse
from datetime import datetime
from pathlib import Path

import httpx

API_BASE_URL = "http://localhost:8001"
RECEIPTS_DIR = Path("data") / "receipts"


def expected_receipt(order: dict) -> str:
    """Receipt text for an order in its camelCase API shape."""
    return (
        "Order Receipt:\n"
        "==============\n"
        f"ID: {order['id']}\n"
        f"Title: {order.get('title') or ''}\n"
        f"Description: {order.get('description') or ''}\n"
        f"Quantity: {order['quantity']}\n"
        f"Status: {order['status']}\n"
    )


def verify_receipts(base_url: str, receipts_dir: Path) -> bool:
    """Verify receipts after a simulation run."""

    print("=" * 60)
    print("🔍 RECEIPT VERIFICATION REPORT")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📂 Receipts: {receipts_dir}")
    print("=" * 60)

    try:
        response = httpx.get(f"{base_url}/api/orders", timeout=30.0)
        response.raise_for_status()
    except httpx.HTTPError as e:
        print(f"\n❌ Could not fetch orders: {e}")
        return False

    orders = {o["id"]: o for o in response.json()["orders"]}
    completed = {i for i, o in orders.items() if o["status"] == "COMPLETED"}

    receipts = {}
    if receipts_dir.exists():
        receipts = {p.stem: p for p in receipts_dir.glob("*.txt")}

    print(f"\n📊 STATISTICS:")
    print(f"   Orders: {len(orders)}")
    print(f"   Completed: {len(completed)}")
    print(f"   Receipts: {len(receipts)}")

    missing = sorted(completed - set(receipts))
    orphaned = sorted(set(receipts) - completed)
    mismatched = sorted(
        order_id for order_id in completed & set(receipts)
        if receipts[order_id].read_text(encoding="utf-8") != expected_receipt(orders[order_id])
    )

    ok = True
    if missing:
        ok = False
        print(f"\n⚠️ {len(missing)} completed orders without a receipt: {missing[:5]}")
    if orphaned:
        ok = False
        print(f"\n⚠️ {len(orphaned)} receipts without a completed order: {orphaned[:5]}")
    if mismatched:
        ok = False
        print(f"\n⚠️ {len(mismatched)} receipts differ from the stored order: {mismatched[:5]}")

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE" if ok else "❌ VERIFICATION FAILED")
    print("=" * 60)

    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Receipt verification")
    parser.add_argument("--url", default=API_BASE_URL)
    parser.add_argument("--receipts", default=str(RECEIPTS_DIR))
    args = parser.parse_args()

    raise SystemExit(0 if verify_receipts(args.url, Path(args.receipts)) else 1)
