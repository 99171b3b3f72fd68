#!/usr/bin/env python3
"""
Tag Backfill Script

Generates search tags for stored items that have none (items saved before
tagging existed, or saved while the LLM was unavailable and the message
had no long words). Conceptual search matches on tags first, so untagged
items are only reachable through full-text search until this runs.

Usage:
    python scripts/backfill_tags.py [--dry-run] [--owner whatsapp:+15551234567]
"""

import sys
import argparse
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

REVIEW_TAGS = ["misc", "review-needed"]

TAG_PROMPT = """You write search tags for saved tasks and ideas.

Give 5-10 lowercase tags, hyphenated when multi-word, covering the main topic,
named entities, related concepts and the action verb.

Example: "Read Atomic Habits" -> {"tags": ["books", "reading", "habits", "productivity", "atomic-habits"]}

Respond with a JSON object {"tags": [...]} only."""


def generate_tags(llm, item) -> list:
    """LLM tags for one item, falling back to the heuristic word tags."""
    from taskbot.common.heuristics import extract_tags
    from taskbot.common.llm_utils import parse_llm_json

    if llm is not None and llm.is_available:
        try:
            raw = llm.generate(
                f"Type: {item.kind.value}\nContent: {item.content}",
                system=TAG_PROMPT,
                max_tokens=150,
                temperature=0.3,
                json_mode=True,
            )
            tags = parse_llm_json(raw).get("tags") or []
            if isinstance(tags, list) and tags:
                return [str(t) for t in tags]
        except Exception as e:
            print(f"[Backfill] WARNING: Tag generation failed for {item.id}: {e}")

    return extract_tags(item.content)


def looks_like_bot_reply(item, bot_prefix: str) -> bool:
    from taskbot.common.schemas import MAX_CONTENT_LENGTH

    prefix = bot_prefix.strip()
    return (bool(prefix) and prefix in item.content) or len(item.content) >= MAX_CONTENT_LENGTH


def main():
    parser = argparse.ArgumentParser(description="Generate tags for untagged items")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be done without executing")
    parser.add_argument("--owner", type=str, default=None, help="Only backfill this owner's items")
    args = parser.parse_args()

    from dotenv import load_dotenv
    from taskbot.common.config import load_config, configure_logging
    from taskbot.common.llm_client import LLMClient
    from taskbot.common.record_store import SQLiteRecordStore, StoreError

    load_dotenv()
    config = load_config()
    configure_logging(config.log_level)

    print(f"[Backfill] Opening record store at {config.store.path}...")
    try:
        store = SQLiteRecordStore(config.store.path)
        items = store.list_untagged(owner=args.owner)
    except StoreError as e:
        print(f"[Backfill] ERROR: {e}")
        sys.exit(1)

    total = len(items)
    print(f"[Backfill] Found {total} untagged item(s)")
    if total == 0:
        return

    llm = LLMClient.from_config(config.llm)
    if not llm.is_available:
        print("[Backfill] LLM not available, using keyword tags")

    updated = 0
    flagged = 0
    errors = 0

    for item in items:
        if looks_like_bot_reply(item, config.scribe.bot_prefix):
            tags = REVIEW_TAGS
            flagged += 1
        else:
            tags = generate_tags(llm, item)

        if args.dry_run:
            print(f"[Backfill] Would tag {item.id} ({item.content[:40]!r}): {', '.join(tags)}")
            continue

        try:
            store.update_tags(item.owner_id, item.id, tags)
            updated += 1
            print(f"[Backfill] Tagged {item.id}: {', '.join(tags)}")
        except StoreError as e:
            print(f"[Backfill] WARNING: Failed to update {item.id}: {e}")
            errors += 1

    if args.dry_run:
        print("[Backfill] DRY RUN - no changes were made")
    print(f"[Backfill] Complete: {updated} tagged, {flagged} flagged for review, {errors} errors, {total} total")


if __name__ == "__main__":
    main()
