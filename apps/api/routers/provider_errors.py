"""Translate provider client failures into HTTP responses."""

import logging

from fastapi import HTTPException

from services.providers import ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


def provider_http_error(exc: ProviderError, action: str) -> HTTPException:
    """Map a provider failure to 503/502 without echoing upstream messages."""
    if isinstance(exc, ProviderNotConfiguredError):
        logger.error("%s unavailable: %s", action, exc)
        return HTTPException(status_code=503, detail=f"{action} unavailable: {exc.provider} is not configured.")
    logger.error("%s failed (provider=%s status=%s): %s", action, exc.provider, exc.status_code, exc.message)
    return HTTPException(status_code=502, detail=f"{action} failed at {exc.provider}.")
