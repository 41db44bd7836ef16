"""Analyze a text file once and print the detected action items as JSON."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from actionlens.ai.base import AiAnalysis, AiBackend, AiBackendError, BackendStatus
from actionlens.analysis_config import ActionItemType
from actionlens.config import get_settings
from actionlens.extraction.models import AnalysisContext, AnalysisOptions
from actionlens.runtime import build_runtime


class OfflineBackend(AiBackend):
    """Reports itself as not installed so every analysis uses the pattern engine."""

    async def call(self, model, text, context=None) -> AiAnalysis:
        raise AiBackendError("AI disabled with --no-ai")

    async def check_availability(self) -> BackendStatus:
        return BackendStatus(installed=False, running=False, error="AI disabled with --no-ai")

    async def warm_up(self, model: str) -> None:
        return None


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Detect action items in a text file.")
    parser.add_argument("path", type=Path, help="Text or markdown file to analyze")
    parser.add_argument("--no-ai", action="store_true", help="Skip the local model; patterns only")
    parser.add_argument("--model", default=None, help="Ollama model to use")
    parser.add_argument("--min-confidence", type=float, default=None)
    parser.add_argument("--max-items", type=int, default=None)
    parser.add_argument(
        "--all-types",
        action="store_true",
        help="Show every item type, not just the default detection types",
    )
    parser.add_argument("--note-type", default=None, help="Context hint, e.g. 'meeting'")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args()


async def _run(args: argparse.Namespace) -> dict:
    text = args.path.read_text(encoding="utf-8")
    runtime = build_runtime(get_settings(), backend=OfflineBackend() if args.no_ai else None)
    service = runtime.service
    if args.all_types:
        service.update_settings(enabled_detection_types=list(ActionItemType))

    try:
        result = await service.analyze_text(
            text,
            context=AnalysisContext(note_type=args.note_type) if args.note_type else None,
            options=AnalysisOptions(
                ollama_model=args.model,
                min_confidence_threshold=args.min_confidence,
                max_items=args.max_items,
            ),
        )
    finally:
        await runtime.aclose()
    return asdict(result)


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    if not args.path.is_file():
        print(f"No such file: {args.path}", file=sys.stderr)
        sys.exit(1)

    output = asyncio.run(_run(args))
    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
