"""Indexer metrics and a small HTTP server exposing them in the Prometheus text format."""

from __future__ import annotations

import math
import sys
import threading
from decimal import Decimal
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

from flux_indexer.config import MonitoringConfig


def _format_value(value: float) -> str:
    """Format a sample value the way the Prometheus text format does."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    parts = Decimal(repr(abs(float(value)))).normalize().as_tuple()
    digits = "".join(str(d) for d in parts.digits)
    point = len(digits) + parts.exponent
    exponent = point - 1
    if exponent < -4 or exponent >= 21 or (exponent >= 6):
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exponent < 0 else "+"
        return f"{sign}{mantissa}e{exp_sign}{abs(exponent):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return f"{sign}{digits}{'0' * (point - len(digits))}"
    return f"{sign}{digits[:point]}.{digits[point:]}"


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


class _Gauge:
    """A single gauge series."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = float(value)

    def inc(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value += amount

    def dec(self, amount: float = 1.0) -> None:
        with self._lock:
            self._value -= amount


class _Counter:
    """A single counter series; it only goes up."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0.0

    @property
    def value(self) -> float:
        with self._lock:
            return self._value

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease in value")
        with self._lock:
            self._value += amount


class _MetricVec:
    """Shared storage and rendering for a family of labelled series."""

    def __init__(
        self,
        name: str,
        help_text: str,
        label_names: list[str] | tuple[str, ...],
        type_name: str,
        child_type: type,
    ) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._type_name = type_name
        self._child_type = child_type
        self._lock = threading.Lock()
        self._children: dict[tuple[str, ...], object] = {}

    def _child(self, args: tuple[str, ...]):
        if len(args) != len(self.label_names):
            raise ValueError(
                f"{self.name}: expected {len(self.label_names)} label values, got {len(args)}"
            )
        key = tuple(str(arg) for arg in args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                child = self._child_type()
                self._children[key] = child
            return child

    def _render(self) -> str:
        with self._lock:
            series = sorted(self._children.items())
        if not series:
            return ""
        lines = [
            f"# HELP {self.name} {_escape_help(self.help_text)}",
            f"# TYPE {self.name} {self._type_name}",
        ]
        for values, child in series:
            labels = ",".join(
                f'{name}="{_escape_label(value)}"' for name, value in zip(self.label_names, values)
            )
            selector = f"{self.name}{{{labels}}}" if labels else self.name
            lines.append(f"{selector} {_format_value(child.value)}")
        return "\n".join(lines) + "\n"


class GaugeVec(_MetricVec):
    """A family of gauges partitioned by label values."""

    def __init__(self, name: str, help_text: str, label_names: list[str] | tuple[str, ...]) -> None:
        super().__init__(name, help_text, label_names, "gauge", _Gauge)

    def labels(self, *args: str) -> _Gauge:
        """Return the gauge for the given label values, creating it on first use."""
        return self._child(args)

    def render(self) -> str:
        """Render all series in the Prometheus text exposition format."""
        return self._render()


class CounterVec(_MetricVec):
    """A family of counters partitioned by label values."""

    def __init__(self, name: str, help_text: str, label_names: list[str] | tuple[str, ...]) -> None:
        super().__init__(name, help_text, label_names, "counter", _Counter)

    def labels(self, *args: str) -> _Counter:
        """Return the counter for the given label values, creating it on first use."""
        return self._child(args)

    def render(self) -> str:
        """Render all series in the Prometheus text exposition format."""
        return self._render()


class Registry:
    """A collection of metric families rendered together."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, _MetricVec] = {}

    def register(self, metric: _MetricVec) -> _MetricVec:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"duplicate metrics collector registration attempted: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    def render(self) -> str:
        with self._lock:
            metrics = [self._metrics[name] for name in sorted(self._metrics)]
        return "".join(metric._render() for metric in metrics)


WORKERS_COUNT = GaugeVec(
    "indexer_active_workers",
    "Number of active workers for each indexer.",
    ["indexer_name"],
)

LATEST_INDEXED_HEIGHT_BY_INDEXER = GaugeVec(
    "indexer_latest_indexed_height",
    "Height of the last indexed block.",
    ["indexer_name"],
)

INDEXER_FAILED_BLOCKS = CounterVec(
    "indexer_failed_blocks",
    "Height of the block for which the indexer has failed.",
    ["indexer_name"],
)

DEFAULT_REGISTRY = Registry()
DEFAULT_REGISTRY.register(WORKERS_COUNT)
DEFAULT_REGISTRY.register(LATEST_INDEXED_HEIGHT_BY_INDEXER)
DEFAULT_REGISTRY.register(INDEXER_FAILED_BLOCKS)

_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


class MetricsServer:
    """Serves the metrics of a registry on ``/metrics``."""

    def __init__(self, port: int, registry: Registry | None = None) -> None:
        self.port = port
        self._registry = registry if registry is not None else DEFAULT_REGISTRY
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start serving in a background thread; does nothing if already started."""
        if self._server is not None:
            return
        registry = self._registry

        class Handler(BaseHTTPRequestHandler):
            timeout = 3

            def do_GET(self) -> None:  # noqa: N802 - name fixed by the base class
                if self.path.split("?", 1)[0] != "/metrics":
                    self.send_error(404)
                    return
                body = registry.render().encode("utf-8")
                self.send_response(200)
                self.send_header("Content-Type", _CONTENT_TYPE)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                self.wfile.write(body)

            def log_message(self, format, *args) -> None:  # noqa: A002
                pass

        self._server = ThreadingHTTPServer(("", self.port), Handler)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever, name="metrics-server", daemon=True
        )
        self._thread.start()
        print("prometheus server started on port", self.port, file=sys.stderr)

    def stop(self) -> None:
        """Stop the server if it is running."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join()
        self._server = None
        self._thread = None


def new_server(monitoring: MonitoringConfig | None) -> MetricsServer | None:
    """Return a metrics server for the configuration, or None when monitoring is disabled."""
    if monitoring is None or not monitoring.enabled:
        return None
    return MetricsServer(monitoring.port)