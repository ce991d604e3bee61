"""
Dumbometrics command line entry point.

    dumbometrics                 serve /metrics until interrupted
    dumbometrics --render        print the current exposition and exit
    dumbometrics --flush         drop every metric and exit
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from config.settings import ApplicationSettings, get_settings
from dumbometrics import MetricsError, MetricsRegistry
from dumbometrics.examples import ExampleRoutes
from dumbometrics.httpd import MetricsHTTPServer, ServerHooks
from logging_setup import setup_advanced_logger

logger = logging.getLogger("dumbometrics")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dumbometrics",
        description="Expose persistent counters and gauges in Prometheus text format.",
    )
    parser.add_argument("--host", help="Address to bind (overrides DUMBOMETRICS_METRICS_IP)")
    parser.add_argument(
        "--port", type=int, help="Port to bind (overrides DUMBOMETRICS_METRICS_PORT)"
    )
    parser.add_argument(
        "--namespace", help="Metric name prefix (overrides METRICS_NAMESPACE)"
    )
    action = parser.add_mutually_exclusive_group()
    action.add_argument(
        "--render", action="store_true", help="Print the current metrics and exit."
    )
    action.add_argument(
        "--flush", action="store_true", help="Delete all metrics and exit."
    )
    return parser


def apply_overrides(settings: ApplicationSettings, args: argparse.Namespace) -> None:
    """Assign command line values onto settings, validated like the environment"""
    if args.host:
        settings.server.ip = args.host
    if args.port is not None:
        settings.server.port = args.port
    if args.namespace is not None:
        settings.registry.namespace = args.namespace


def build_server(
    settings: ApplicationSettings,
    registry: MetricsRegistry,
    hooks: ServerHooks | None = None,
) -> MetricsHTTPServer:
    examples = None
    if settings.examples.enabled:
        examples = ExampleRoutes(registry, delay_seconds=settings.examples.delay_seconds)
    return MetricsHTTPServer(
        registry,
        host=settings.server.ip,
        port=settings.server.port,
        hooks=hooks,
        examples=examples,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    try:
        apply_overrides(settings, args)
    except ValidationError as e:
        parser.error(f"invalid option value: {e}")
    setup_advanced_logger()

    try:
        registry = MetricsRegistry.from_settings(settings)

        if args.render:
            sys.stdout.write(registry.render())
            return 0

        if args.flush:
            registry.flush()
            return 0

        build_server(settings, registry).serve_forever()
        return 0

    except MetricsError as e:
        logger.error(f"Metrics operation failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
