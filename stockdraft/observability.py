"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from stockdraft import __version__
from stockdraft.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings, app=None) -> None:
    """
    Initialize Logfire and bridge stdlib logging into it.

    Call once at startup. Instruments:
    - HTTPX clients (Finnhub quote calls)
    - the FastAPI app, when one is passed
    - Python logging (bridges to Logfire)

    Args:
        settings: Application settings containing Logfire token
        app: Optional FastAPI application to instrument
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="stockdraft",
            service_version=__version__,
            environment=settings.environment,
        )

        logfire.instrument_httpx()

        if app is not None:
            try:
                logfire.instrument_fastapi(app)
            except Exception as fastapi_error:
                logger.debug(f"FastAPI instrumentation skipped: {fastapi_error}")

        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("✓ Logfire cloud tracking initialized")

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        # Continue running - observability is optional
