from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from .analyzer import EngineApiBoundary
from .config import ConfigError, PolicyConfig, load_config
from .fixtures import FactoryIndex, discover_factory_trees
from .oracle import ModelOracle, StaticModelOracle
from .trace import TraceEvent, TraceEventEmitter
from .tree import TreeFormatError, load_tree

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_OFFENSES = 1
EXIT_ERROR = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="engine-boundary")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser(
        "check",
        help="Report cross-engine references that bypass an engine's API.",
    )
    _add_config_arguments(check)
    check.add_argument(
        "--models",
        action="append",
        metavar="NAME",
        help=(
            "Treat NAME as a persistence-backed model instead of asking the configured "
            "oracle (repeatable)."
        ),
    )
    check.add_argument(
        "--trace",
        action="store_true",
        help="Print one JSON line per evaluated reference on stderr.",
    )
    check.add_argument(
        "trees",
        nargs="+",
        type=Path,
        help="Tree documents produced by the parser.",
    )
    check.set_defaults(func=_cmd_check)

    checksum = subparsers.add_parser(
        "checksum",
        help="Print the checksum of all engine API artifacts.",
    )
    _add_config_arguments(checksum)
    checksum.set_defaults(func=_cmd_checksum)

    factories = subparsers.add_parser(
        "factories",
        help="Print the factory -> model class name index.",
    )
    factories.add_argument(
        "--root",
        type=Path,
        default=Path("."),
        help="Application root searched for factory tree documents when none are given.",
    )
    factories.add_argument(
        "--engines-path",
        default="engines/",
        help="Engines directory, relative to --root, searched alongside spec/factories.",
    )
    factories.add_argument(
        "trees",
        nargs="*",
        type=Path,
        help="Factory tree documents; discovered under --root when omitted.",
    )
    factories.set_defaults(func=_cmd_factories)

    return parser


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="YAML file with the EngineApiBoundary settings.",
    )
    parser.add_argument(
        "--root",
        type=Path,
        help="Directory a relative EnginesPath is resolved against.",
    )


def _analyzer(
    config: PolicyConfig,
    args: argparse.Namespace,
    *,
    trace: TraceEventEmitter | None = None,
) -> EngineApiBoundary:
    oracle: ModelOracle | None = None
    if getattr(args, "models", None):
        oracle = StaticModelOracle(args.models)
    return EngineApiBoundary(config, root=args.root, oracle=oracle, trace=trace)


def _print_trace(event: TraceEvent) -> None:
    print(json.dumps(event.as_dict(), sort_keys=True), file=sys.stderr)


def _cmd_check(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    trace = TraceEventEmitter(sink=_print_trace) if args.trace else None
    analyzer = _analyzer(config, args, trace=trace)
    total = 0
    for path in args.trees:
        tree = load_tree(path)
        for offense in analyzer.inspect(tree):
            total += 1
            print(json.dumps(offense.as_dict(), sort_keys=True))
        if trace is not None:
            trace.clear()
    LOGGER.info("Checked %d file(s), %d offense(s)", len(args.trees), total)
    return EXIT_OFFENSES if total else EXIT_OK


def _cmd_checksum(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    print(_analyzer(config, args).external_dependency_checksum())
    return EXIT_OK


def _cmd_factories(args: argparse.Namespace) -> int:
    paths = args.trees or discover_factory_trees(args.root, args.engines_path)
    LOGGER.info("Indexing factories from %d tree document(s)", len(paths))
    index = FactoryIndex.from_paths(paths)
    print(json.dumps(index.factories(), sort_keys=True))
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except (ConfigError, TreeFormatError) as exc:
        print(f"engine-boundary: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
