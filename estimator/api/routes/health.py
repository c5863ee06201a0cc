"""
Health check routes for monitoring and service discovery.
"""

from fastapi import APIRouter

from estimator.api.deps import Extractor
from estimator.core.config import settings
from estimator.schemas.quote import ModelProbeResponse

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> dict:
    """
    Basic health check endpoint.
    Returns service status, version and whether AI extraction is configured.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "extraction_configured": bool(settings.GEMINI_API_KEY),
    }


@router.get("/diagnostics/models", response_model=list[ModelProbeResponse])
def check_models(extractor: Extractor) -> list[ModelProbeResponse]:
    """
    Probe each candidate Gemini model with a short prompt.

    Returns:
        One entry per model with ``ok`` and the error message when it failed
    """
    return [
        ModelProbeResponse(model=probe.model, ok=probe.ok, error=probe.error)
        for probe in extractor.check_models()
    ]
