#!/usr/bin/env python3
"""Inspect and repair stored per-user AI configurations.

Configurations written before a model or prompt was retired from the catalog
would otherwise fall back to the in-process default on every request. The
``repair`` command points them back at the defaults and re-syncs each
configuration's language with its prompt.

Usage:
    python scripts/repair_configs.py list
    python scripts/repair_configs.py repair --dry-run
    python scripts/repair_configs.py remove alice
"""
import argparse
import logging
import sys
from pathlib import Path

# Add project root to path so we can import web_analyzer
sys.path.insert(0, str(Path(__file__).parent.parent))

from web_analyzer.database import init_db, get_all_ai_configs
from web_analyzer.processing.ai_models import AI_MODELS
from web_analyzer.processing.config_resolver import ConfigResolver
from web_analyzer.processing.prompts import PROMPT_TEMPLATES


def cmd_list(args):
    """Show all stored configurations."""
    configs = get_all_ai_configs()

    if not configs:
        print("No stored AI configurations.")
        return

    print(f"{'User':<25} {'Model':<18} {'Prompt':<14} {'Lang':<5} {'Max len':<8} {'Cache':<6} {'Updated'}")
    print("-" * 100)
    for cfg in configs:
        model = cfg.model_id if cfg.model_id in AI_MODELS else f"{cfg.model_id}!"
        prompt = cfg.prompt_id if cfg.prompt_id in PROMPT_TEMPLATES else f"{cfg.prompt_id}!"
        cache = "on" if cfg.enable_caching else "off"
        updated = cfg.updated_at.strftime("%Y-%m-%d") if cfg.updated_at else "N/A"
        print(
            f"{cfg.user_id:<25} {model:<18} {prompt:<14} {cfg.language:<5} "
            f"{cfg.max_content_length:<8} {cache:<6} {updated}"
        )

    print(f"\n{len(configs)} configuration(s); '!' marks ids missing from the catalog")


def cmd_repair(args):
    """Fix configurations that reference retired models or prompts."""
    resolver = ConfigResolver()
    configs = get_all_ai_configs()

    repaired = 0
    for cfg in configs:
        changes = resolver.repair(cfg, dry_run=args.dry_run)
        if not changes:
            continue
        repaired += 1
        summary = ", ".join(
            f"{col}: {getattr(cfg, col)} -> {value}" for col, value in sorted(changes.items())
        )
        print(f"  {cfg.user_id}: {summary}")

    verb = "Would repair" if args.dry_run else "Repaired"
    print(f"\n{verb} {repaired} of {len(configs)} configuration(s).")


def cmd_remove(args):
    """Delete a user's stored configuration."""
    if ConfigResolver().delete(args.user_id):
        print(f"Deleted AI configuration for {args.user_id}")
    else:
        print(f"No AI configuration found for {args.user_id}")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    init_db()

    parser = argparse.ArgumentParser(description="Inspect and repair stored AI configurations")
    subparsers = parser.add_subparsers(dest="command")

    # list
    subparsers.add_parser("list", help="Show all stored configurations")

    # repair
    repair_parser = subparsers.add_parser("repair", help="Point retired models/prompts at the defaults")
    repair_parser.add_argument("--dry-run", action="store_true", help="Show what would change without writing")

    # remove
    remove_parser = subparsers.add_parser("remove", help="Delete a user's configuration")
    remove_parser.add_argument("user_id", help="User whose configuration to delete")

    args = parser.parse_args()

    if args.command == "list":
        cmd_list(args)
    elif args.command == "repair":
        cmd_repair(args)
    elif args.command == "remove":
        cmd_remove(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
