"""CLI entry point for the grocery bot."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from dotenv import load_dotenv

from .ai import create_parser
from .cache import ProductCache
from .config import load_config
from .db import ItemStore, SessionStore
from .errors import GroceryBotError
from .pipeline import ParsingPipeline
from .shopping import ShoppingNavigator


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="grocery-bot",
        description="Grocery list bot: parse shopping lists and shop by category",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to the configuration file (TOML)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    # run
    sub.add_parser("run", help="Start the Telegram bot")

    # parse
    parse_parser = sub.add_parser("parse", help="Parse a grocery list without storing it")
    parse_parser.add_argument("text", nargs="+", help="Lines of the grocery list")
    parse_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # list
    list_parser = sub.add_parser("list", help="Show the current grocery list")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # cache-stats
    sub.add_parser("cache-stats", help="Show product cache statistics")

    # cleanup-sessions
    sub.add_parser("cleanup-sessions", help="Delete expired button sessions")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    load_dotenv()
    config = load_config(args.config)

    try:
        match args.command:
            case "run":
                _cmd_run(config)
            case "parse":
                asyncio.run(_cmd_parse(config, args))
            case "list":
                _cmd_list(config, args)
            case "cache-stats":
                _cmd_cache_stats(config)
            case "cleanup-sessions":
                _cmd_cleanup_sessions(config)
    except (GroceryBotError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _cmd_run(config) -> None:
    from .bot import GroceryBot

    bot = GroceryBot(config)
    asyncio.run(bot.run())


async def _cmd_parse(config, args) -> None:
    pipeline = ParsingPipeline(ProductCache(config.cache.path), create_parser(config))
    print("🔍 Parsing...", file=sys.stderr)
    items = await pipeline.parse_for_batch("\n".join(args.text))

    if args.json:
        print(json.dumps([i.to_dict() for i in items], ensure_ascii=False, indent=2))
        return
    if not items:
        print("No items found.")
        return
    print(f"🛒 {len(items)} item(s):")
    for i in items:
        print(f"  {i.name:<20} x{i.quantity:<3} [{i.category}]  <- {i.original_line}")


def _cmd_list(config, args) -> None:
    store = ItemStore(config.database.path)
    try:
        shopping = ShoppingNavigator(store).list_by_category_grouped()
    finally:
        store.close()

    if args.json:
        data = {
            "categories": {
                category: [
                    {"id": i.id, "name": i.name, "quantity": i.quantity, "status": i.status}
                    for i in items
                ]
                for category, items in shopping.grouped.items()
            },
            "found": [
                {"id": i.id, "name": i.name, "quantity": i.quantity}
                for i in shopping.found_items
            ],
        }
        print(json.dumps(data, ensure_ascii=False, indent=2))
        return

    if shopping.is_empty:
        print("The grocery list is empty.")
        return
    for category, items in shopping.grouped.items():
        print(f"\n{category}")
        for i in items:
            print(f"  [{i.status:<9}] {i.name} x{i.quantity}")
    if shopping.found_items:
        print("\nFound")
        for i in shopping.found_items:
            print(f"  {i.name} x{i.quantity}")


def _cmd_cache_stats(config) -> None:
    stats = ProductCache(config.cache.path).stats()
    print(f"Products: {stats['products']}")
    print(f"Variants: {stats['variants']}")
    print(f"Total:    {stats['total']}")


def _cmd_cleanup_sessions(config) -> None:
    sessions = SessionStore(config.database.path, expire_hours=config.sessions.expire_hours)
    try:
        count = sessions.cleanup_expired()
    finally:
        sessions.close()
    print(f"Removed {count} expired session(s).")
