#!/usr/bin/env python3
"""
Ask CLI

Seed a local SQLite item store and ask questions against it.

Usage:
    python scripts/ask_cli.py seed items.json [--user-id local]
    python scripts/ask_cli.py ask "what emails do I have" [--session-id ID] [--json]

The seed file is a JSON list of items:
    [{"type": "email.received", "timestamp": "2026-01-15T15:04:00Z",
      "title": "Invoice due", "content": "Please pay by Friday",
      "metadata": {"from": "billing@example.com"}}]
"""

import sys
import json
import uuid
import asyncio
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def cmd_seed(args, config) -> int:
    from r3cent.common.item_store import SQLiteItemStore
    from r3cent.common.schemas import Item

    with open(args.path) as f:
        raw_items = json.load(f)

    if not isinstance(raw_items, list):
        print("[Ask] ERROR: seed file must contain a JSON list of items")
        return 1

    items = []
    for raw in raw_items:
        raw = dict(raw)
        raw.setdefault("id", str(uuid.uuid4()))
        raw.setdefault("user_id", args.user_id)
        items.append(Item.model_validate(raw))

    store = SQLiteItemStore(config.store.db_path, timeout=config.store.timeout)
    count = store.add_many(items)
    print(f"[Ask] Seeded {count} items into {config.store.db_path}")
    return 0


def cmd_ask(args, config) -> int:
    from r3cent.common.item_store import SQLiteItemStore, StoreError
    from r3cent.common.session_ledger import SessionLedger, SessionNotFoundError
    from r3cent.retriever.pipeline import AskPipeline

    store = SQLiteItemStore(config.store.db_path, timeout=config.store.timeout)
    ledger = SessionLedger(config.store.sessions_path)
    pipeline = AskPipeline.from_config(config, item_store=store, ledger=ledger)

    try:
        response = asyncio.run(pipeline.ask(
            user_id=args.user_id,
            query=args.query,
            session_id=args.session_id,
            display_name=args.name,
            tz=args.tz,
        ))
    except SessionNotFoundError:
        print(f"[Ask] ERROR: session not found: {args.session_id}")
        return 1
    except StoreError as e:
        print(f"[Ask] ERROR: {e}")
        return 1

    if args.json:
        print(json.dumps(response.model_dump(mode="json", by_alias=True), indent=2))
        return 0

    print(response.answer)
    if response.sources:
        print("\nSources:")
        for i, source in enumerate(response.sources, 1):
            print(f"  [{i}] {source.type.value} {source.item_id} ({source.reason})")
    if response.followups:
        print("\nTry asking:")
        for q in response.followups:
            print(f"  - {q}")
    print(f"\nSession: {response.session_id}")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Ask questions about your recent activity")
    parser.add_argument("--user-id", default="local", help="Owner of items and sessions")
    sub = parser.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="Load items from a JSON file into the item store")
    seed.add_argument("path", help="JSON file with a list of items")

    ask = sub.add_parser("ask", help="Ask a question")
    ask.add_argument("query", help="Question (1-2000 characters)")
    ask.add_argument("--session-id", default=None, help="Continue an existing session")
    ask.add_argument("--name", default=None, help="Display name used in the prompt")
    ask.add_argument("--tz", default=None, help="IANA time zone for dates, e.g. Europe/Berlin")
    ask.add_argument("--json", action="store_true", help="Print the raw response JSON")

    args = parser.parse_args()

    from dotenv import load_dotenv
    from r3cent.common.config import ensure_directories, load_config

    load_dotenv()
    ensure_directories()
    config = load_config()

    if args.command == "seed":
        sys.exit(cmd_seed(args, config))

    if not 1 <= len(args.query) <= 2000:
        print("[Ask] ERROR: query must be 1-2000 characters")
        sys.exit(2)
    sys.exit(cmd_ask(args, config))


if __name__ == "__main__":
    main()
