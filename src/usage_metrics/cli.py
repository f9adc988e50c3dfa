"""CLI interface for usage_metrics."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import asdict
from pathlib import Path

import yaml

from . import __version__
from .collector.manager import ScheduledCollector, host_collector, process_collector
from .config import UsageMetricsConfig, load_config
from .errors import UsageMetricsError

logger = logging.getLogger(__name__)


def _build_collectors(cfg: UsageMetricsConfig) -> list[ScheduledCollector]:
    collectors = []
    if cfg.collector.host:
        collectors.append(host_collector(cfg))
    if cfg.collector.process:
        collectors.append(process_collector(cfg))
    return collectors


def _print_summary(collectors: list[ScheduledCollector], window: float) -> None:
    for collector in collectors:
        store = collector.get_store()
        print(f"[{collector.name}]")
        for name in store.get_metrics():
            average = store.get_average(name, window)
            if average is not None:
                print(f"  {name:<32} {average:>16.2f}")


def _cmd_collect(args: argparse.Namespace) -> None:
    """Run periodic collection until interrupted."""
    cfg = load_config(args.config)
    if args.interval is not None:
        cfg.collector.interval_seconds = args.interval
    logging.getLogger().setLevel(cfg.log_level)

    if not cfg.collector.enabled:
        print("Collection disabled in configuration.")
        return

    collectors = _build_collectors(cfg)
    exporters = []
    if cfg.mode == "online":
        from .exporter.otel import OtelExporter
        otel_exp = OtelExporter(cfg.otel)
        exporters.append(otel_exp)
        for collector in collectors:
            collector.add_listener(otel_exp.export)

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    previous_handlers = {
        sig: signal.signal(sig, _handle_signal) for sig in (signal.SIGINT, signal.SIGTERM)
    }

    started = time.monotonic()
    try:
        for collector in collectors:
            collector.start()
        print(f"usage-metrics collector running (mode={cfg.mode}, interval={cfg.collector.interval_seconds}s)")
        print("Press Ctrl+C to stop.\n")
        while not stop:
            if args.duration is not None and time.monotonic() - started >= args.duration:
                break
            time.sleep(0.5)
    finally:
        for collector in collectors:
            collector.stop()
        _print_summary(collectors, time.monotonic() - started)
        for collector in collectors:
            collector.close()
        for exp in exporters:
            exp.shutdown()
        for sig, handler in previous_handlers.items():
            signal.signal(sig, handler)
    print("\nCollection stopped.")


def _cmd_scrape(args: argparse.Namespace) -> None:
    """Scrape twice, one interval apart, and print the second sample."""
    cfg = load_config(args.config)
    collectors = _build_collectors(cfg)
    for collector in collectors:
        collector.scrape()
    time.sleep(args.wait)
    output = {}
    for collector in collectors:
        sample = collector.scrape()
        output[collector.name] = sample.to_dict() if sample is not None else None
    print(json.dumps(output, indent=2))


def _cmd_generate_config(args: argparse.Namespace) -> None:
    """Write the effective configuration as a starting usage_metrics.yaml."""
    cfg = load_config(args.config)
    output = Path(args.output or "usage_metrics.yaml")
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as fh:
        yaml.safe_dump(asdict(cfg), fh, sort_keys=False)
    print(f"Configuration written to {output}")


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"usage-metrics {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the usage-metrics CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        prog="usage-metrics",
        description="Sample host and process resource usage into time series",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to usage_metrics.yaml")
    sub = parser.add_subparsers(dest="command")

    # collect
    collect_p = sub.add_parser("collect", help="Start periodic resource collection")
    collect_p.add_argument("--interval", type=float, default=None, help="Scrape interval in seconds")
    collect_p.add_argument("--duration", type=float, default=None, help="Stop after this many seconds")
    collect_p.set_defaults(func=_cmd_collect)

    # scrape
    scrape_p = sub.add_parser("scrape", help="Print one sample as JSON")
    scrape_p.add_argument("--wait", type=float, default=1.0, help="Seconds between the two scrapes")
    scrape_p.set_defaults(func=_cmd_scrape)

    # generate-config
    gen_p = sub.add_parser("generate-config", help="Write a usage_metrics.yaml with the current settings")
    gen_p.add_argument("--output", "-o", default=None, help="Output file path")
    gen_p.set_defaults(func=_cmd_generate_config)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except UsageMetricsError as exc:
        logger.error("%s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()
