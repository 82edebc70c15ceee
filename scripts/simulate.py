"""
Chaos Simulation Script

Fires concurrent create and complete requests at the order API to test
the reconciler and broadcast path under contention. A share of the
completions are sent twice on purpose; the duplicates must come back as
409 conflicts.

Run from project root: python scripts/simulate.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import random
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

MENU_ITEMS = [
    "Burger",
    "Pizza Margherita",
    "Caesar Salad",
    "Garlic Bread",
    "Pasta Carbonara",
    "Tiramisu",
]
NOTES = [None, "No onions", "Extra cheese", "Well done", "Sauce on the side"]


def generate_order_payload() -> dict[str, Any]:
    """Generate payload for POST /api/orders."""
    return {
        "title": random.choice(MENU_ITEMS),
        "description": random.choice(NOTES),
        "quantity": random.randint(1, 4),
    }


async def send_create(client: httpx.AsyncClient, order_num: int) -> dict[str, Any]:
    """Create one order."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders",
            json=generate_order_payload(),
            timeout=30.0
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 200:
            return {
                "order_num": order_num,
                "success": True,
                "order_id": response.json().get("id"),
                "time": elapsed,
                "mode": "create",
            }
        return {
            "order_num": order_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
            "mode": "create",
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "mode": "create",
        }


async def send_complete(
    client: httpx.AsyncClient,
    order_id: str,
) -> dict[str, Any]:
    """Complete one order."""
    start_time = time.time()

    try:
        response = await client.post(
            f"{API_BASE_URL}/api/orders/{order_id}/complete",
            timeout=30.0
        )
        return {
            "order_id": order_id,
            "status_code": response.status_code,
            "success": response.status_code == 200,
            "error": None if response.status_code == 200 else response.text[:100],
            "time": round(time.time() - start_time, 3),
            "mode": "complete",
        }
    except httpx.HTTPError as e:
        return {
            "order_id": order_id,
            "status_code": None,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
            "mode": "complete",
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_orders: int = TOTAL_ORDERS,
    duplicate_rate: float = 0.2,
) -> dict[str, Any]:
    """
    Run the chaos simulation.

    Args:
        num_orders: Number of orders to create
        duplicate_rate: Share of orders completed twice concurrently
    """
    print("=" * 70)
    print("🔥 CHAOS SIMULATION - HIGH CONCURRENCY TEST")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🔁 Duplicate completions: {duplicate_rate:.0%}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    start_time = time.time()

    async with httpx.AsyncClient() as client:
        print("\n🚀 Creating orders...\n")
        created = await asyncio.gather(
            *(send_create(client, i + 1) for i in range(num_orders))
        )
        order_ids = [r["order_id"] for r in created if r["success"]]

        print("🚀 Completing orders...\n")
        completions = []
        duplicated = set()
        for order_id in order_ids:
            completions.append(send_complete(client, order_id))
            if random.random() < duplicate_rate:
                duplicated.add(order_id)
                completions.append(send_complete(client, order_id))
        completed = await asyncio.gather(*completions)

    total_time = round(time.time() - start_time, 2)

    created_ok = [r for r in created if r["success"]]
    completed_ok = [r for r in completed if r["success"]]
    conflicts = [r for r in completed if r["status_code"] == 409]
    other_failures = [
        r for r in completed if not r["success"] and r["status_code"] != 409
    ]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Created: {len(created_ok)}/{num_orders}")
    print(f"✅ Completed: {len(completed_ok)}/{len(order_ids)}")
    print(f"⚔️  Conflicts: {len(conflicts)} (expected {len(duplicated)})")
    print(f"❌ Other failures: {len(other_failures)}")
    print(f"⏱️  Total Time: {total_time}s")

    timed = created_ok + completed_ok
    if timed:
        avg_time = round(sum(r["time"] for r in timed) / len(timed), 3)
        print(f"\n📈 Average Response: {avg_time}s")
        print(f"   Fastest: {min(r['time'] for r in timed)}s")
        print(f"   Slowest: {max(r['time'] for r in timed)}s")

    for r in other_failures[:5]:
        print(f"   ⚠️ {r['order_id']}: {r['error']}")

    print("\n" + "=" * 70)
    print("🔍 VERIFICATION STEPS")
    print("=" * 70)
    print("1. Run: python scripts/verify.py")
    print("2. Every completed order must have exactly one receipt")
    print("=" * 70)

    return {
        "created": len(created_ok),
        "completed": len(completed_ok),
        "conflicts": len(conflicts),
        "expected_conflicts": len(duplicated),
        "total_time": total_time,
    }


async def preflight() -> Optional[dict[str, Any]]:
    """Check the service is up before firing load."""
    async with httpx.AsyncClient() as client:
        try:
            response = await client.get(f"{API_BASE_URL}/health", timeout=5.0)
        except httpx.HTTPError as e:
            print(f"❌ Service unreachable: {e}")
            return None

    if response.status_code != 200:
        print(f"❌ Health check failed: {response.text}")
        return None

    data = response.json()
    print(f"✅ Status: {data.get('status')}")
    print(f"   Order Store: {data.get('order_store')}")
    print(f"   Receipt Archive: {data.get('receipt_archive')}")
    print(f"   Backplane: {data.get('backplane')}")
    return data


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument(
        "--duplicates",
        type=float,
        default=0.2,
        help="Share of orders completed twice",
    )
    args = parser.parse_args()

    if asyncio.run(preflight()) is None:
        raise SystemExit(1)

    asyncio.run(run_simulation(args.orders, args.duplicates))
