#!/usr/bin/env python3
"""Run the full analysis pipeline for one URL and print the result.

Uses the same cache, configuration and storage as the web app.

Usage:
    python scripts/analyze_url.py https://example.com/article
    python scripts/analyze_url.py https://example.com/article --user alice
    python scripts/analyze_url.py https://example.com/article --json
"""
import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path so we can import web_analyzer
sys.path.insert(0, str(Path(__file__).parent.parent))

from web_analyzer.database import init_db
from web_analyzer.errors import WebAnalyzerError
from web_analyzer.processing.config_resolver import ConfigResolver
from web_analyzer.processing.orchestrator import AnalysisOrchestrator
from web_analyzer.service import record_to_dict


def print_analysis(record: dict, cached: bool) -> None:
    """Pretty-print an analysis record."""
    analysis = record["analysis"]
    audio = record["audio"]

    print("=" * 70)
    print(f"URL:        {record['url']}")
    print(f"User:       {record['user_id']}")
    print(f"Analyzed:   {record['timestamp']}{'  (cached)' if cached else ''}")
    print("=" * 70)

    print(f"\nSummary: {analysis['summary']}")
    print(f"Sentiment:  {analysis['sentiment']}")
    print(f"Word count: {analysis['word_count']}")

    print("\nKey points:")
    for i, point in enumerate(analysis["key_points"], 1):
        print(f"  {i}. {point}")

    print(f"\nAudio: {audio['audio_url']} (~{audio['duration']}s)")
    print()


def main():
    parser = argparse.ArgumentParser(description="Analyze a web page and narrate the summary")
    parser.add_argument("url", help="Page to analyze (http or https)")
    parser.add_argument("--user", default="cli", help="User id whose configuration to use (default: cli)")
    parser.add_argument("--json", action="store_true", help="Print the raw record as JSON")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline progress")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db()
    orchestrator = AnalysisOrchestrator(ConfigResolver())

    try:
        outcome = orchestrator.analyze(args.url, args.user)
    except WebAnalyzerError as e:
        print(f"Analysis failed ({e.code}): {e}")
        sys.exit(1)

    record = record_to_dict(outcome.record)
    if args.json:
        print(json.dumps({"cached": outcome.cached, **record}, indent=2, ensure_ascii=False))
    else:
        print_analysis(record, outcome.cached)


if __name__ == "__main__":
    main()
