"""Bootstrap module for wiring the monitoring middleware from config.

Configures logging, tracing and metrics once at process start and returns a
middleware bound to them:

    from rpcwatch.bootstrap import bootstrap

    monitoring = bootstrap(on_internal_error=sentry_sdk.capture_exception)
    get_user = Procedure("user.get", "query").use(monitoring).resolve(load_user)
"""

from rpcwatch.config import Settings, get_settings
from rpcwatch.instruments import ProcedureInstruments, setup_metrics, setup_prometheus_metrics
from rpcwatch.logging import get_logger, setup_logging
from rpcwatch.middleware import InternalErrorHook, MonitoringMiddleware
from rpcwatch.tracing import get_tracer, setup_tracing

logger = get_logger(__name__)


def bootstrap(
    settings: Settings | None = None,
    on_internal_error: InternalErrorHook | None = None,
) -> MonitoringMiddleware:
    """Set up observability backends and create the monitoring middleware.

    Args:
        settings: Settings to use (default: loaded from config and env)
        on_internal_error: Hook notified when a procedure raises

    Returns:
        Configured MonitoringMiddleware
    """
    settings = settings or get_settings()
    observability = settings.observability

    setup_logging(
        level=observability.logging.level,
        format=observability.logging.format,
        redact_pii=observability.logging.redact_pii,
    )

    tracer = get_tracer()
    if observability.tracing.enabled:
        tracer = setup_tracing(
            service_name=settings.app_name,
            otlp_endpoint=observability.tracing.otlp_endpoint,
            console_export=observability.tracing.console_export,
        )

    instruments = _setup_instruments(settings)

    logger.info(
        "monitoring_bootstrapped",
        service=settings.app_name,
        tracing=observability.tracing.enabled,
        metrics_backend=observability.metrics.backend if observability.metrics.enabled else None,
    )

    return MonitoringMiddleware(
        on_internal_error=on_internal_error,
        logger=get_logger(observability.logging.logger_name) if observability.logging.enabled else None,
        tracer=tracer,
        instruments=instruments,
    )


def _setup_instruments(settings: Settings) -> ProcedureInstruments | None:
    config = settings.observability.metrics
    if not config.enabled:
        return None
    if config.backend == "prometheus":
        return setup_prometheus_metrics(port=config.port)
    return setup_metrics(
        service_name=settings.app_name,
        otlp_endpoint=config.otlp_endpoint,
        console_export=config.console_export,
        export_interval_millis=config.export_interval_millis,
    )
