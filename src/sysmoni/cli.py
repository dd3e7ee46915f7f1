"""Command-line entry point for sysmoni."""

import argparse
import json
import logging
import re
import sys
from collections.abc import Sequence

from sysmoni.config import SORT_KEYS, SamplerConfig, parse_interval
from sysmoni.export import kill_event_to_record, sample_to_record
from sysmoni.killlog import fetch_kill_events
from sysmoni.sampler import Sampler

logger = logging.getLogger(__name__)


def _interval_arg(value: str) -> float:
    try:
        return parse_interval(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _regex_arg(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise argparse.ArgumentTypeError(f"invalid regex {value!r}: {exc}") from exc
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sysmoni", description="Host resource monitor")
    parser.add_argument("--interval", type=_interval_arg, help="refresh interval, e.g. 1, 2s, 500ms, 1m30s")
    parser.add_argument("--sort", choices=SORT_KEYS, help="process sort column")
    parser.add_argument("--filter", type=_regex_arg, help="regex filter for process commands")
    parser.add_argument("--json", action="store_true", help="print one JSON sample and exit")
    parser.add_argument("--json-stream", action="store_true", help="stream NDJSON samples until interrupted")
    parser.add_argument("--no-gpu", action="store_true", help="disable GPU sampling")
    parser.add_argument("--no-battery", action="store_true", help="disable battery sampling")
    parser.add_argument("--kills", action="store_true", help="print recent OOM kill events as JSON and exit")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    return parser


def config_from_args(args: argparse.Namespace, environ=None) -> SamplerConfig:
    """Layer command-line flags over defaults and environment overrides."""
    overrides = {}
    if args.interval is not None:
        overrides["interval"] = args.interval
    if args.sort is not None:
        overrides["sort"] = args.sort
    if args.filter is not None:
        overrides["process_filter"] = args.filter
    if args.no_gpu:
        overrides["enable_gpu"] = False
    if args.no_battery:
        overrides["enable_battery"] = False
    return SamplerConfig.from_env(environ, **overrides)


def stream_json(config: SamplerConfig, out=None, one_shot: bool = False) -> None:
    """Write samples as one JSON record per line; stop after one if one_shot."""
    if out is None:
        out = sys.stdout
    sampler = Sampler(config=config)
    sampler.start()
    try:
        for sample in sampler.stream():
            out.write(json.dumps(sample_to_record(sample)) + "\n")
            out.flush()
            if one_shot:
                break
    finally:
        sampler.stop()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the sysmoni command."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    config = config_from_args(args)

    if args.kills:
        records = [kill_event_to_record(event) for event in fetch_kill_events()]
        print(json.dumps(records, indent=2))
        return 0

    try:
        if args.json_stream:
            stream_json(config)
        elif args.json or not sys.stdout.isatty():
            stream_json(config, one_shot=True)
        else:
            from sysmoni.app import SysmoniApp

            SysmoniApp(config).run()
    except KeyboardInterrupt:
        logger.debug("Interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
