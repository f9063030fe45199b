"""Analyze a text or markdown file and write the analysis as JSON.

Usage:
    python scripts/analyze_document.py <path> [--output <path>] [--stream]

Examples:
    # Print progress and write the analysis next to the input
    python scripts/analyze_document.py docs/report.md --output /tmp/report-analysis.json

    # Consume progress as an async stream instead of a callback
    python scripts/analyze_document.py docs/report.md --stream

Requires ANTHROPIC_API_KEY in the environment or .env.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Ensure analysis_engine is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def _print_progress(step: str, percent: int, message: str, partial: dict | None) -> None:
    print(f"[{percent:3d}%] {step}: {message}")
    if partial and partial.get("tldr"):
        print(f"       TLDR: {partial['tldr']['text']}")


async def run_analysis(path: Path, output: Path | None, stream: bool) -> None:
    from analysis_engine.core.document_parser import parse_text_document
    from analysis_engine.services.document_analyzer import DocumentAnalyzer

    text = path.read_text(encoding="utf-8")
    document = parse_text_document(text, path.name)
    print(f"Loaded {path.name}: {document.metadata.word_count} words, id={document.id}")

    analyzer = DocumentAnalyzer()
    if stream:
        analysis = None
        async for record in analyzer.stream_analysis(document):
            _print_progress(record.step, record.progress, record.message, record.partial_analysis)
            if record.analysis is not None:
                analysis = record.analysis
    else:
        analysis = await analyzer.analyze(document, _print_progress)

    if analysis is None:
        print("ERROR: analysis did not complete")
        sys.exit(1)

    payload = analysis.model_dump_json(indent=2)
    if output:
        output.write_text(payload, encoding="utf-8")
        print(f"\nAnalysis written to {output}")
    else:
        print(payload)

    print(
        f"\nTokens used: {analysis.metadata.tokens_used} "
        f"across {analysis.metadata.call_count} calls ({', '.join(analysis.metadata.models)})"
    )
    issues = analysis.relationship_issues
    if issues.mismatches:
        print(f"Relationship endpoint issues: {len(issues.mismatches)}")
        for mismatch in issues.mismatches[:5]:
            print(f"  - {mismatch.relationship_id}.{mismatch.endpoint}: {mismatch.kind} ({mismatch.value!r})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Analyze a document with the analysis pipeline")
    parser.add_argument("path", type=Path, help="Text or markdown file to analyze")
    parser.add_argument("--output", type=Path, default=None, help="Write the analysis JSON here")
    parser.add_argument("--stream", action="store_true", help="Use the streaming progress API")
    args = parser.parse_args()

    if not args.path.is_file():
        print(f"ERROR: {args.path} is not a file")
        sys.exit(1)

    asyncio.run(run_analysis(args.path, args.output, args.stream))


if __name__ == "__main__":
    main()
