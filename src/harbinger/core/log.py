"""Logging for harbinger.

Modules log through the ``logger`` proxy without checking whether
logging is configured. Until setup_logger() installs a Logger, which
Config validation does, every call on the proxy is dropped and
``logger.span`` returns a null context.

Console output is rendered by logfire. The file sink writes one line
per record to a per-repository log, which is what a detached monitor
leaves behind; spans can also be exported to an OTLP collector.
"""

from __future__ import annotations

import contextlib
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Any

import logfire
from logfire import ConsoleOptions
from opentelemetry.proto.logs.v1 import logs_pb2
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SpanExporter,
    SpanExportResult,
)
from pydantic import AfterValidator, Field, PrivateAttr, model_validator

from harbinger.core.base import BaseConfig

# Most to least verbose. spew is for subprocess command lines.
LEVELS = {
    "spew": logs_pb2.SEVERITY_NUMBER_TRACE,
    "trace": logs_pb2.SEVERITY_NUMBER_TRACE3,
    "debug": logs_pb2.SEVERITY_NUMBER_DEBUG,
    "info": logs_pb2.SEVERITY_NUMBER_INFO,
    "warn": logs_pb2.SEVERITY_NUMBER_WARN,
    "error": logs_pb2.SEVERITY_NUMBER_ERROR,
    "fatal": logs_pb2.SEVERITY_NUMBER_FATAL,
}

# Span attributes that are bookkeeping rather than caller keywords
_INTERNAL_PREFIXES = ("code.", "logfire.", "otel.", "telemetry.",
                      "service.", "process.")

_current_logger: Logger | None = None


def _check_level(value: str) -> str:
    value = value.lower()
    if value not in LEVELS:
        raise ValueError(
            f"unknown log level {value!r}; use one of {', '.join(LEVELS)}"
        )
    return value


Level = Annotated[str, AfterValidator(_check_level)]


def level_name(number: int) -> str:
    """Name of the most severe level at or below a severity number."""
    for name, threshold in reversed(LEVELS.items()):
        if number >= threshold:
            return name
    return "spew"


def format_record(span: ReadableSpan) -> str:
    """Render a span as one log file line.

    ``2026-03-01T12:00:00 [info] Merge preview complete │ conflicts=0``

    Newlines in the message are escaped so that every record stays on
    one line.
    """
    attrs = span.attributes or {}
    timestamp = datetime.fromtimestamp(span.start_time / 1e9, tz=UTC)
    level = level_name(attrs.get("logfire.level_num", LEVELS["info"]))
    message = str(attrs.get("logfire.msg", span.name))
    message = message.replace("\r", "\\r").replace("\n", "\\n")

    line = f"{timestamp:%Y-%m-%dT%H:%M:%S} [{level}] {message}"
    extra = {
        key: value for key, value in attrs.items()
        if not key.startswith(_INTERNAL_PREFIXES)
    }
    if extra:
        line += " │ " + " ".join(
            f"{key}={value!r}" for key, value in sorted(extra.items())
        )
    return line + "\n"


class LevelFilteringExporter(SpanExporter):
    """Forwards only spans at or above a minimum level."""

    def __init__(self, exporter: SpanExporter, min_level: str | None):
        self._exporter = exporter
        self._min_severity = LEVELS[min_level or "info"]

    def export(self, spans) -> SpanExportResult:
        kept = [
            span for span in spans
            if (span.attributes or {}).get(
                "logfire.level_num", LEVELS["info"]
            ) >= self._min_severity
        ]
        if not kept:
            return SpanExportResult.SUCCESS
        return self._exporter.export(kept)

    def shutdown(self) -> None:
        self._exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        return self._exporter.force_flush(timeout_millis)


class ConsoleSink(BaseConfig):
    """Console output, rendered by logfire."""

    enabled: bool = True
    level: Level | None = Field(
        default=None,
        description="Minimum level; inherits Logger.level when unset",
    )
    verbose: bool = Field(default=False, description="Show span details")
    colors: str = Field(
        default="auto", description="Color mode: auto, always, never"
    )

    def options(self) -> ConsoleOptions | bool:
        if not self.enabled:
            return False
        # logfire has no spew level; trace is its most verbose
        level = "trace" if self.level == "spew" else self.level
        return ConsoleOptions(
            min_log_level=level or "info",
            verbose=self.verbose,
            colors=self.colors,
            include_timestamps=True,
        )


class FileSink(BaseConfig):
    """Per-repository log file, one line per record."""

    enabled: bool = False
    level: Level | None = Field(
        default=None,
        description="Minimum level; inherits Logger.level when unset",
    )
    path: str = Field(
        default="{log_root}/{run_name}/harbinger.log",
        description="Log file path; {log_root} and {run_name} are filled in",
    )

    _file: Any = PrivateAttr(default=None)
    _processor: Any = PrivateAttr(default=None)

    def resolve_path(self, log_root: Path, run_name: str) -> Path:
        return Path(self.path.format(log_root=log_root, run_name=run_name))

    def open(self, log_root: Path, run_name: str) -> BatchSpanProcessor:
        log_path = self.resolve_path(log_root, run_name)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        # Line buffered so a killed daemon still leaves complete lines
        self._file = open(log_path, "a", buffering=1, encoding="utf-8")  # noqa: SIM115
        exporter = ConsoleSpanExporter(out=self._file, formatter=format_record)
        self._processor = BatchSpanProcessor(
            LevelFilteringExporter(exporter, self.level)
        )
        return self._processor

    def close(self):
        """Flush pending records into the file, then close it."""
        if self._processor:
            with contextlib.suppress(Exception):
                self._processor.shutdown()
            self._processor = None
        if self._file and not self._file.closed:
            with contextlib.suppress(OSError):
                self._file.close()
        super().close()


class OTLPSink(BaseConfig):
    """Span export to an OTLP collector."""

    enabled: bool = False
    level: Level | None = None
    endpoint: str = Field(
        default="http://localhost:4317", description="OTLP gRPC endpoint"
    )
    insecure: bool = True
    headers: dict[str, str] = Field(default_factory=dict)

    _processor: Any = PrivateAttr(default=None)

    def open(self) -> BatchSpanProcessor:
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(
            endpoint=self.endpoint,
            insecure=self.insecure,
            headers=self.headers or None,
        )
        self._processor = BatchSpanProcessor(
            LevelFilteringExporter(exporter, self.level)
        )
        return self._processor

    def close(self):
        if self._processor:
            with contextlib.suppress(Exception):
                self._processor.shutdown()
            self._processor = None
        super().close()


class Logger(BaseConfig):
    """The installed logger and its sinks.

    Closing the Logger closes every sink through the BaseCloseable
    cascade, which flushes the log file.
    """

    level: Level = Field(
        default="info",
        description="Default level for sinks that do not set their own",
    )
    console: ConsoleSink = Field(default_factory=ConsoleSink)
    file: FileSink = Field(default_factory=FileSink)
    otlp: OTLPSink = Field(default_factory=OTLPSink)

    @model_validator(mode="after")
    def _inherit_level(self) -> Logger:
        for sink in (self.console, self.file, self.otlp):
            if sink.level is None:
                sink.level = self.level
        return self

    def setup(self, log_root: Path, run_name: str):
        """Open the file and OTLP sinks and configure logfire.

        Args:
            log_root: Root directory for log files
            run_name: Name of this run, used in the file path and the
                service name
        """
        processors = []
        if self.file.enabled:
            processors.append(self.file.open(log_root, run_name))
        if self.otlp.enabled:
            processors.append(self.otlp.open())

        logfire.configure(
            service_name=f"harbinger-{run_name}",
            send_to_logfire=False,
            console=self.console.options(),
            additional_span_processors=processors or None,
        )

    def _emit(self, level: str, msg: str, kwargs: dict):
        logfire.log(
            level=LEVELS[level], msg_template=msg,
            attributes=kwargs or None,
        )

    def spew(self, msg: str, **kwargs):
        """Below trace: command lines and other subprocess detail."""
        self._emit("spew", msg, kwargs)

    def trace(self, msg: str, **kwargs):
        self._emit("trace", msg, kwargs)

    def debug(self, msg: str, **kwargs):
        logfire.debug(msg, **kwargs)

    def info(self, msg: str, **kwargs):
        logfire.info(msg, **kwargs)

    def warn(self, msg: str, **kwargs):
        logfire.warn(msg, **kwargs)

    def error(self, msg: str, **kwargs):
        logfire.error(msg, **kwargs)

    def log(self, level: str, msg: str, **kwargs):
        """Log at a level given by name, e.g. from configuration."""
        self._emit(_check_level(level), msg, kwargs)

    def span(self, msg: str, **kwargs):
        """Context manager that groups the records of one operation."""
        return logfire.span(msg, **kwargs)


class _LoggerProxy:
    """Forwards to the installed Logger, or drops calls."""

    def __getattr__(self, name):
        if _current_logger is None:
            if name == "span":
                return lambda *args, **kwargs: contextlib.nullcontext()
            return lambda *args, **kwargs: None
        return getattr(_current_logger, name)

    def __enter__(self):
        if _current_logger is not None:
            _current_logger.__enter__()
        return self

    def __exit__(self, *args):
        if _current_logger is not None:
            return _current_logger.__exit__(*args)
        return False


logger = _LoggerProxy()


def setup_logger(
    log_root: Path,
    run_name: str,
    console: ConsoleSink | None = None,
    file: FileSink | None = None,
    otlp: OTLPSink | None = None,
) -> Logger:
    """Install the global logger.

    Config calls this after loading; tests call it directly.

    Returns:
        The installed Logger
    """
    global _current_logger

    _current_logger = Logger(
        console=console or ConsoleSink(),
        file=file or FileSink(),
        otlp=otlp or OTLPSink(),
    )
    _current_logger.setup(log_root, run_name)
    return _current_logger


def current_logger() -> Logger | None:
    return _current_logger
