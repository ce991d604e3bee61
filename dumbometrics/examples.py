"""
Demonstration routes that exercise the registry through HTTP.

    /example/metrics  register and touch a sample counter and gauge
    /example/flush    drop every metric
    /example/delay    answer after a configurable pause
"""

import logging
import time
from collections.abc import Callable

from .registry import MetricsRegistry

logger = logging.getLogger(__name__)

EXAMPLE_LABELS = ("label1", "label2")
EXAMPLE_VALUES = ("a", "b")


class ExampleRoutes:
    """Handlers for the /example paths, each answering "done"."""

    def __init__(
        self,
        registry: MetricsRegistry,
        delay_seconds: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self.routes: dict[str, Callable[[], str]] = {
            "/example/metrics": self.metrics,
            "/example/flush": self.flush,
            "/example/delay": self.delay,
        }

    def metrics(self) -> str:
        counter = self.registry.get_or_register_counter(
            "some_example_counter", "description or empty", EXAMPLE_LABELS
        )
        self.registry.increment(counter, EXAMPLE_VALUES, 1)

        gauge = self.registry.get_or_register_gauge(
            "some_example_gauge", "description or empty", EXAMPLE_LABELS
        )
        self.registry.set(gauge, EXAMPLE_VALUES, 10)
        return "done"

    def flush(self) -> str:
        self.registry.flush()
        return "done"

    def delay(self) -> str:
        logger.info("Delaying response", extra={"seconds": self.delay_seconds})
        self._sleep(self.delay_seconds)
        return "done"
