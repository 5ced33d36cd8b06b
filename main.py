#!/usr/bin/env python3
"""
Ecount Order Intake - CLI Interface

Usage:
    python3 main.py                              # Run interactive demo
    python3 main.py --message "..."              # Parse and match a single message
    python3 main.py --message "..." --submit     # ...and upload it to Ecount
    python3 main.py --search 새우                 # Search the ERP item master
    python3 main.py --test                       # Run all sample messages
    python3 main.py --mock ...                   # Use the in-process Ecount simulator
"""

import argparse
import asyncio
import json
import sys
from dotenv import load_dotenv
from loguru import logger

from ecount_intake.config import Settings
from ecount_intake.errors import IntakeError
from ecount_intake.processor import OrderPipeline
from ecount_intake.services.export import export_order_workbook

# Load environment variables from .env file
load_dotenv()


SAMPLE_MESSAGES = {
    "simple_order": {
        "name": "Message 1: Simple Order",
        "message": "깐쇼새우 2박스, 탕수육 3개 주문할게요",
    },
    "with_customer": {
        "name": "Message 2: Customer Named",
        "message": "ABC상사에 깐쇼새우 100개, 양장피 50개 보내주세요",
    },
    "informal": {
        "name": "Message 3: Informal, Mixed Units",
        "message": "김치찌개 20인분이랑 된장찌개 15인분, 짜장면 10그릇요. 내일 오전까지",
    },
    "unknown_items": {
        "name": "Message 4: Items Not In Catalog",
        "message": "연어 스테이크 5개, 트러플 파스타 3개",
    },
}


def print_divider(char="=", length=60):
    print(char * length)


def print_order(order):
    """Pretty print a parsed, matched order."""
    print("\n📋 PARSED ORDER")
    print_divider("-")
    print(f"Customer: {order.customer_name}")
    print(f"Type: {order.order_type.value}")

    print("\n📦 ITEMS")
    print_divider("-")
    for line in order.items:
        if line.matched_item:
            item = line.matched_item
            print(f"  🟢 {line.item_name_raw} x{line.quantity} -> {item.code} {item.name} "
                  f"@ {item.unit_price:,.0f} ({line.confidence:.2f})")
        else:
            print(f"  🔴 {line.item_name_raw} x{line.quantity} -> no match")

    print(f"\nTotal: {order.total_amount:,.0f}원")
    if order.unmatched_items:
        print(f"⚠️  Unmatched: {', '.join(order.unmatched_items)}")


def print_submit_result(result):
    print("\n📤 ECOUNT UPLOAD")
    print_divider("-")
    print(f"Slip: {result.document_id}")
    print(f"Trace: {result.trace_id}")
    if result.relogin:
        print("Session was renewed during upload")
    if not result.rate_limit.allowed:
        print(f"⚠️  {result.rate_limit.window} quota exhausted, retry in {result.rate_limit.backoff_ms // 1000}s")


def print_error(error: IntakeError):
    print(f"\n❌ {error.kind.value}: {error.message}")
    if error.trace_id:
        print(f"   trace: {error.trace_id}")


async def process_message(pipeline, message, submit=False, export_path=None, as_json=False):
    """Parse a message, optionally submit or export it."""
    try:
        order = await pipeline.parse_order_text(message)
        result = await pipeline.submit_order(order) if submit else None
    except IntakeError as e:
        if as_json:
            print(json.dumps(e.to_dict(), ensure_ascii=False, indent=2))
        else:
            print_error(e)
        return False

    if export_path:
        with open(export_path, "wb") as f:
            f.write(export_order_workbook(order))

    if as_json:
        print(json.dumps({
            "order": order.model_dump(mode="json"),
            "total_amount": order.total_amount,
            "submit_result": result.model_dump(mode="json") if result else None,
        }, ensure_ascii=False, indent=2))
    else:
        print_order(order)
        if result:
            print_submit_result(result)
        if export_path:
            print(f"\n💾 Upload sheet written to {export_path}")
    return True


async def search(pipeline, keyword, as_json=False):
    try:
        items = await pipeline.search_catalog(keyword)
    except IntakeError as e:
        print_error(e)
        return False
    if as_json:
        print(json.dumps([i.model_dump() for i in items], ensure_ascii=False, indent=2))
    else:
        for item in items:
            print(f"  {item.code:10} {item.name:20} {item.unit_price:>10,.0f} {item.unit}")
        print(f"\n{len(items)} item(s)")
    return True


async def run_all_samples(pipeline, submit=False):
    """Run all sample messages."""
    for sample in SAMPLE_MESSAGES.values():
        print(f"\n{'=' * 60}")
        print(f"  {sample['name']}")
        print("=" * 60)
        print(f"\n📱 INPUT MESSAGE:\n{sample['message']}")
        await process_message(pipeline, sample["message"], submit=submit)


async def run_interactive(pipeline, submit=False):
    """Read orders from stdin until 'q'."""
    print("\n" + "=" * 60)
    print("  Ecount Order Intake - Demo")
    print("=" * 60)
    while True:
        message = input("\n주문 입력 (q to quit): ").strip()
        if message.lower() == "q":
            print("\nGoodbye!")
            break
        if message:
            await process_message(pipeline, message, submit=submit)


async def run(args) -> int:
    settings = Settings.from_env()
    if args.mock:
        settings.ecount.use_mock = True
        # The simulator accepts any non-empty account.
        settings.ecount.company_code = settings.ecount.company_code or "DEMO001"
        settings.ecount.user_id = settings.ecount.user_id or "demo_api_user"
        settings.ecount.api_key = settings.ecount.api_key or "mock-api-key"

    pipeline = OrderPipeline.from_settings(settings)
    try:
        if args.search:
            ok = await search(pipeline, args.search, as_json=args.json)
        elif args.message:
            ok = await process_message(pipeline, args.message, submit=args.submit,
                                       export_path=args.export, as_json=args.json)
        elif args.test:
            await run_all_samples(pipeline, submit=args.submit)
            ok = True
        else:
            await run_interactive(pipeline, submit=args.submit)
            ok = True
    finally:
        await pipeline.aclose()
    return 0 if ok else 1


def main():
    parser = argparse.ArgumentParser(
        description="Natural-language order intake for the Ecount ERP"
    )
    parser.add_argument(
        "--message", "-m", type=str, help="Process a single message"
    )
    parser.add_argument(
        "--submit", "-s", action="store_true", help="Upload parsed orders to Ecount"
    )
    parser.add_argument(
        "--search", type=str, help="Search the ERP item master by keyword"
    )
    parser.add_argument(
        "--export", "-e", type=str, metavar="PATH", help="Write the order as an Ecount upload sheet (.xlsx)"
    )
    parser.add_argument(
        "--mock", action="store_true", help="Simulate the Ecount API in-process"
    )
    parser.add_argument(
        "--test", "-t", action="store_true", help="Run all sample messages"
    )
    parser.add_argument(
        "--json", "-j", action="store_true", help="Output JSON only"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Show debug logs"
    )

    args = parser.parse_args()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if args.verbose else "WARNING")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
