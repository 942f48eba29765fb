"""Command-line entry point for running analyses outside the API.

Run as a module::

    python -m meeting_analysis.cli analyze \\
        --transcript data/transcript.json \\
        --template data/template.json \\
        --strategy auto

    python -m meeting_analysis.cli recommend --transcript data/transcript.json

Transcript and template files use the same JSON shapes as the HTTP API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from meeting_analysis.analysis.errors import AnalysisError, InvalidInputError
from meeting_analysis.analysis.models import Template, Transcript
from meeting_analysis.analysis.orchestrator import (
    execute_analysis,
    recommend_strategy,
    transcript_text,
)
from meeting_analysis.analysis.progress import ProgressEvent
from meeting_analysis.config import get_settings
from meeting_analysis.pipeline_config import StrategyOption

EXIT_ANALYSIS_ERROR = 1
EXIT_USAGE_ERROR = 2


# ── CLI entry point ────────────────────────────────────────────────────────


def _build_arg_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="python -m meeting_analysis.cli",
        description=(
            "Meeting Analysis\n\n"
            "Runs the basic, hybrid or advanced analysis strategy over a transcript\n"
            "and writes the result as JSON."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Analyse a transcript against a template.")
    analyze.add_argument("--transcript", required=True, metavar="PATH", help="Transcript JSON file.")
    analyze.add_argument("--template", required=True, metavar="PATH", help="Template JSON file.")
    analyze.add_argument(
        "--strategy",
        choices=[s.value for s in StrategyOption],
        default=StrategyOption.AUTO.value,
        help="Analysis strategy (default: auto, chosen from transcript size).",
    )
    analyze.add_argument(
        "--no-evaluation",
        action="store_true",
        default=False,
        help="Skip the evaluation/revision pass (fewer calls).",
    )
    analyze.add_argument(
        "--output",
        metavar="PATH",
        default=None,
        help="Write the result here instead of stdout.",
    )

    recommend = sub.add_parser("recommend", help="Show which strategy auto would choose.")
    recommend.add_argument("--transcript", required=True, metavar="PATH", help="Transcript JSON file.")

    return parser


def _load_json(path: str) -> Any:
    return json.loads(Path(path).read_text(encoding="utf-8"))


def _print_progress(event: ProgressEvent) -> None:
    print(
        f"[{event.percent:3d}%] ({event.step}/{event.total_steps}) {event.message}",
        file=sys.stderr,
    )


def _run_analyze(args: argparse.Namespace) -> int:
    transcript = Transcript.model_validate(_load_json(args.transcript))
    template = Template.model_validate(_load_json(args.template))

    run = asyncio.run(
        execute_analysis(
            template,
            transcript,
            strategy=args.strategy,
            run_evaluation=not args.no_evaluation,
            settings=get_settings(),
            progress=_print_progress,
        )
    )
    payload = run.model_dump_json(by_alias=True, exclude_none=True, indent=2)
    if args.output:
        Path(args.output).write_text(payload + "\n", encoding="utf-8")
        print(f"Result written to {args.output}", file=sys.stderr)
    else:
        print(payload)
    return 0


def _run_recommend(args: argparse.Namespace) -> int:
    transcript = Transcript.model_validate(_load_json(args.transcript))
    recommendation = recommend_strategy(transcript_text(transcript), get_settings())
    print(f"Strategy:       {recommendation.strategy.value}")
    print(f"Reason:         {recommendation.reason}")
    print(f"Token estimate: {recommendation.token_estimate:,}")
    print(
        f"Deployment:     {recommendation.deployment.deployment} "
        f"({recommendation.deployment.utilization_percentage:.1f}% of "
        f"{recommendation.deployment.token_limit:,})"
    )
    print(f"Expected:       {recommendation.info.speed}, {recommendation.info.api_calls} calls")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        if args.command == "recommend":
            return _run_recommend(args)
        return _run_analyze(args)
    except (OSError, json.JSONDecodeError, ValidationError, InvalidInputError) as exc:
        print(f"ERROR: Invalid input: {exc}", file=sys.stderr)
        return EXIT_USAGE_ERROR
    except AnalysisError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_ANALYSIS_ERROR


if __name__ == "__main__":
    sys.exit(main())
