"""CLI entrypoints for workstate commands."""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path

from .config import ConfigError, WorkstateConfig, load_config
from .logging import configure_logging
from .models import ProgressState, WorkUnit, utcnow
from .pipeline import ProgressPipeline
from .router import HybridRouter
from .scoring.confidence import ConfidenceAdjuster
from .scoring.heuristic import HeuristicScorer, HeuristicThresholds
from .signals.aggregator import SignalAggregator
from .stores.json_store import JsonScoreStore


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_root_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--root",
        default=".",
        help="Directory containing .workstate.yml (defaults to current directory).",
    )


def _add_log_file_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workstate",
        description="Infer work-progress state from activity signals.",
    )
    _add_verbose_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    classify_parser = subparsers.add_parser(
        "classify",
        help="Print the heuristic verdict for a single piece of text.",
    )
    _add_verbose_option(classify_parser, suppress_default=True)
    _add_root_option(classify_parser)
    classify_parser.add_argument("title", help="Title of the unit of work.")
    classify_parser.add_argument("--content", default=None, help="Body text of the unit.")
    classify_parser.add_argument(
        "--source",
        default="task",
        help="Source tag used for credibility weighting (commit, email, chat, ...).",
    )
    classify_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text.")

    run_parser = subparsers.add_parser(
        "run",
        help="Run one pipeline cycle against the JSON score store.",
    )
    _add_verbose_option(run_parser, suppress_default=True)
    _add_root_option(run_parser)
    _add_log_file_option(run_parser)
    run_parser.add_argument(
        "--import",
        dest="import_path",
        default=None,
        help="JSON file with a list of units to add to the store before the cycle.",
    )

    override_parser = subparsers.add_parser(
        "override",
        help="Manually pin the state of a unit.",
    )
    _add_verbose_option(override_parser, suppress_default=True)
    _add_root_option(override_parser)
    override_parser.add_argument("unit_id")
    override_parser.add_argument(
        "state",
        help="One of: " + ", ".join(state.value for state in ProgressState),
    )
    override_parser.add_argument("--reason", default="", help="Why the state was set by hand.")

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show token usage and the state distribution of stored scores.",
    )
    _add_verbose_option(stats_parser, suppress_default=True)
    _add_root_option(stats_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Start the HTTP service and the background scheduler.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_root_option(serve_parser)
    _add_log_file_option(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for workstate commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=getattr(args, "log_file", None))

    try:
        config = load_config(Path(args.root))
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")

    if args.command == "classify":
        _classify(config, args)
    elif args.command == "run":
        _run(parser, config, args)
    elif args.command == "override":
        pipeline = ProgressPipeline.from_config(config, _open_store(config))
        try:
            score = pipeline.set_manual_override(args.unit_id, args.state, args.reason)
        except ValueError as exc:
            parser.exit(1, f"{exc}\n")
        print(f"{score.unit_id} pinned to {score.state.display_name}")
    elif args.command == "stats":
        _stats(config)
    elif args.command == "serve":  # pragma: no cover - starts a server
        from .scheduler import PipelineScheduler
        from .service.app import run_service

        pipeline = ProgressPipeline.from_config(config, _open_store(config))
        run_service(args.host, args.port, scheduler=PipelineScheduler(pipeline))
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _classify(config: WorkstateConfig, args: argparse.Namespace) -> None:
    heuristics = config.heuristics
    router = HybridRouter(
        aggregator=SignalAggregator(title_multiplier=heuristics.title_multiplier),
        scorer=HeuristicScorer(HeuristicThresholds.from_config(heuristics)),
        adjuster=ConfidenceAdjuster(heuristics.max_confidence),
        escalation_threshold=heuristics.escalation_threshold,
    )
    now = utcnow()
    unit = WorkUnit(id="cli", title=args.title, content=args.content, source=args.source, updated_at=now)
    signals = router.aggregator.aggregate(unit, now=now)
    score = router.heuristic_score(unit, signals, now)
    if args.json:
        payload = {
            "state": score.state.value,
            "confidence": round(score.confidence, 4),
            "reasoning": score.reasoning,
            "needs_model": router.needs_model(score, signals),
            "signals": [signal.to_dict() for signal in signals],
        }
        print(json.dumps(payload, indent=2))
        return
    print(f"state: {score.state.value}")
    print(f"confidence: {score.confidence:.2f}")
    print(f"reasoning: {score.reasoning}")
    for signal in signals:
        print(f"  - {signal.type.value} ({signal.weight:.2f}, {signal.source}): {signal.context}")


def _run(parser: argparse.ArgumentParser, config: WorkstateConfig, args: argparse.Namespace) -> None:
    store = _open_store(config)
    if args.import_path:
        try:
            raw = json.loads(Path(args.import_path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            parser.exit(1, f"Unable to read units from {args.import_path}: {exc}\n")
        if not isinstance(raw, list):
            parser.exit(1, "Unit import file must contain a JSON list\n")
        for item in raw:
            if isinstance(item, dict) and "id" in item:
                store.upsert_unit(WorkUnit.from_dict(item))
        store.persist()

    pipeline = ProgressPipeline.from_config(config, store)
    report = pipeline.run_cycle()
    if report.skipped:
        print(f"Cycle skipped: {report.skip_reason}")
        return
    print(
        f"Processed {report.units_processed} units "
        f"({report.units_escalated} escalated, {report.model_calls} model calls, "
        f"{report.tokens_used} tokens); {report.stale_detected} marked stale"
    )
    for error in report.errors:
        print(f"error: {error}")


def _stats(config: WorkstateConfig) -> None:
    store = _open_store(config)
    limit = config.pipeline.daily_token_limit
    used = store.get_token_usage(utcnow().date())
    percentage = used / limit * 100 if limit > 0 else 0.0
    print(f"Tokens used today: {used} / {limit} ({percentage:.1f}%)")
    counts = Counter(score.state for score in store.scores())
    for state in sorted(ProgressState, key=lambda item: item.sort_order):
        print(f"{state.display_name}: {counts.get(state, 0)}")


def _open_store(config: WorkstateConfig) -> JsonScoreStore:
    return JsonScoreStore(config.store_path)


if __name__ == "__main__":
    main(sys.argv[1:])
