import logging
import os
import uuid
from enum import Enum

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Span, Status, StatusCode, Tracer

if os.environ.get("OTEL_EXPORTER_OTLP_PROTOCOL") == "grpc":
    from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
else:
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter

logger = logging.getLogger(__name__)

service_instance_id = str(uuid.uuid4())


class CampaignActionCategory(Enum):
    BUILDING = "building"
    FUZZING = "fuzzing"
    DEBUGGING = "debugging"
    MAINTENANCE = "maintenance"
    TELEMETRY_INIT = "telemetry_init"


def init_telemetry(application_name: str) -> None:
    """Initialize the telemetry for the application."""
    if not os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"):
        logger.debug("OTEL_EXPORTER_OTLP_ENDPOINT not set, telemetry disabled")
        return

    if not os.getenv("OTEL_EXPORTER_OTLP_PROTOCOL"):
        logger.warning("OTEL_EXPORTER_OTLP_PROTOCOL not set")

    logger.info("Sending telemetry to %s", os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))
    resource = Resource.create(
        attributes={
            "service.name": application_name,
            "service.instance.id": service_instance_id,
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter()))
    trace.set_tracer_provider(provider)

    tracer = trace.get_tracer(__name__)
    log_action_ok(tracer, CampaignActionCategory.TELEMETRY_INIT, application_name)


def set_campaign_attributes(
    span: Span,
    category: CampaignActionCategory,
    action_name: str,
    extra_attributes: dict | None = None,
) -> None:
    extra_attributes = extra_attributes or {}
    span.set_attribute("campaign.action.category", category.value)
    span.set_attribute("campaign.action.name", action_name)
    span.set_attribute("service.instance.id", service_instance_id)

    for key, value in extra_attributes.items():
        if value is not None:
            span.set_attribute(key, value)


def log_action_ok(
    tracer: Tracer,
    category: CampaignActionCategory,
    action_name: str,
    extra_attributes: dict | None = None,
) -> None:
    with tracer.start_as_current_span(action_name) as span:
        set_campaign_attributes(span, category, action_name, extra_attributes)
        span.set_status(Status(StatusCode.OK))
