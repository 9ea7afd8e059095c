import logging
import os
import tempfile

from opentelemetry._logs import set_logger_provider
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource

from warf.common.telemetry import service_instance_id

if os.environ.get("OTEL_EXPORTER_OTLP_PROTOCOL") == "grpc":
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
else:
    from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter

PACKAGE_LOGGER_NAME = "warf"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(message)s"

_is_initialized = False


class MaxLengthFormatter(logging.Formatter):
    """Truncate every formatted record to `max_length` characters."""

    def __init__(self, fmt: str = FILE_FORMAT, max_length: int | None = None):
        super().__init__(fmt)
        self.max_length = max_length

    def format(self, record):
        msg = super().format(record)
        if self.max_length:
            msg = msg[: self.max_length]
        return msg


def _otlp_handler(application_name: str) -> logging.Handler | None:
    if not os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        return None

    resource = Resource.create(
        attributes={
            "service.name": application_name,
            "service.instance.id": service_instance_id,
        }
    )
    provider = LoggerProvider(resource=resource)
    provider.add_log_record_processor(BatchLogRecordProcessor(OTLPLogExporter()))
    set_logger_provider(provider)
    return LoggingHandler(level=logging.DEBUG, logger_provider=provider)


def _log_files(logger_name: str) -> list[str]:
    paths = [os.path.join(tempfile.gettempdir(), f"{logger_name}.log")]
    persistent_log_dir = os.getenv("PERSISTENT_LOG_DIR")
    if persistent_log_dir:
        os.makedirs(persistent_log_dir, exist_ok=True)
        paths.append(os.path.join(persistent_log_dir, f"{logger_name}.log"))
    return paths


def setup_package_logger(
    application_name: str, logger_name: str, log_level: str = "info", max_line_length: int | None = None
) -> logging.Logger:
    """Configure the root handlers once and set the level of the `warf` logger.

    The console gets the bare message so campaign progress reads like the
    engines' own output. Log files under the temp dir (and `PERSISTENT_LOG_DIR`
    when set) get timestamped records, and records are exported over OTLP when
    `OTEL_EXPORTER_OTLP_ENDPOINT` is set.
    """
    global _is_initialized

    if not _is_initialized:
        root = logging.getLogger()
        for handler in list(root.handlers):
            root.removeHandler(handler)

        console = logging.StreamHandler()
        console.setFormatter(MaxLengthFormatter(CONSOLE_FORMAT, max_line_length))
        handlers: list[logging.Handler] = [console]

        for path in _log_files(logger_name):
            file_handler = logging.FileHandler(path)
            file_handler.setFormatter(MaxLengthFormatter(FILE_FORMAT, max_line_length))
            handlers.append(file_handler)

        otlp_handler = _otlp_handler(application_name)
        if otlp_handler:
            handlers.append(otlp_handler)

        logging.basicConfig(handlers=handlers)
        logging.getLogger(PACKAGE_LOGGER_NAME).setLevel(log_level.upper())
        _is_initialized = True

    return logging.getLogger(PACKAGE_LOGGER_NAME)
