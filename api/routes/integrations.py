"""
Integration Routes

Credential checks, destination discovery and the stored integration config.

Endpoints:
- GET /integrations/config - Stored config, secrets masked
- PUT /integrations/config - Normalize and save the config
- POST /integrations/:platform/validate - Check credentials ({valid})
- GET /integrations/:platform/destinations - Discover reachable destinations
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from integrations.core.errors import ExportError, ProxyActivationRequired
from integrations.core.transport import ProxyTransport, get_transport
from integrations.core.types import IntegrationConfig
from integrations.credentials import normalize_config
from integrations.exporters import ExporterContext, ExportStrategy, get_exporter_registry
from services.config_store import ConfigProvider, get_config_provider, mask_secrets, merge_masked

logger = logging.getLogger(__name__)

router = APIRouter()

# ExportError.kind -> HTTP status
ERROR_STATUS = {
    "validation": 400,
    "authentication": 401,
    "proxy_activation": 409,
    "quota": 429,
    "network": 502,
    "platform": 502,
}


def _http_error(error: ExportError) -> HTTPException:
    detail: dict[str, Any] = {"errorKind": error.kind, "message": str(error)}
    if isinstance(error, ProxyActivationRequired):
        detail["activationUrl"] = error.activation_url
    return HTTPException(status_code=ERROR_STATUS.get(error.kind, 500), detail=detail)


def _get_strategy(platform: str) -> ExportStrategy:
    registry = get_exporter_registry()
    strategy = registry.get(platform)
    if not strategy:
        raise HTTPException(
            status_code=404,
            detail=f"Unsupported platform: {platform}. Available: {registry.list_platforms()}",
        )
    return strategy


# =============================================================================
# Config
# =============================================================================

@router.get("/integrations/config")
async def get_config(provider: ConfigProvider = Depends(get_config_provider)) -> dict[str, Any]:
    return mask_secrets(provider.load())


@router.put("/integrations/config")
async def save_config(
    config: IntegrationConfig,
    provider: ConfigProvider = Depends(get_config_provider),
) -> dict[str, Any]:
    """Save the config. Masked secrets sent back unchanged keep their stored value."""
    saved = provider.save(merge_masked(provider.load(), config))
    return mask_secrets(saved)


# =============================================================================
# Validation & Discovery
# =============================================================================

@router.post("/integrations/{platform}/validate")
async def validate_integration(
    platform: str,
    config: Optional[IntegrationConfig] = Body(None),
    provider: ConfigProvider = Depends(get_config_provider),
    transport: ProxyTransport = Depends(get_transport),
) -> dict[str, Any]:
    """
    Check credentials with a lightweight authenticated read.

    Validates the posted config when one is given (settings form before
    save), otherwise the stored one.
    """
    strategy = _get_strategy(platform)
    candidate = merge_masked(provider.load(), config) if config else provider.load()

    try:
        valid = await strategy.validate_credentials(normalize_config(candidate), transport)
    except ProxyActivationRequired as e:
        raise _http_error(e)

    logger.info(f"[INTEGRATIONS] {platform} credentials valid={valid}")
    return {"valid": valid}


@router.get("/integrations/{platform}/destinations")
async def list_destinations(
    platform: str,
    provider: ConfigProvider = Depends(get_config_provider),
    transport: ProxyTransport = Depends(get_transport),
) -> dict[str, Any]:
    """Every destination the stored credential can reach, plus skipped branches."""
    strategy = _get_strategy(platform)
    config = normalize_config(provider.load())

    try:
        strategy.check_config(config)
        report = await strategy.discover(ExporterContext(config=config, transport=transport))
    except ExportError as e:
        logger.warning(f"[INTEGRATIONS] {platform} discovery failed: {e}")
        raise _http_error(e)

    return report.to_dict()
