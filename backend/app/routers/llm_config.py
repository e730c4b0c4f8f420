"""
LLM Configuration Router

Manage the AI gateway endpoints the backend can use. Activating a
configuration reloads the gateway client without a restart.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from app.models.llm_types import LLMConfigurationMasked
from app.services.ai_gateway_service import ai_gateway_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/llm-config", tags=["LLM Configuration"])

# The gateway's own store, so reloads read what this router writes
llm_config_service = ai_gateway_service.config_service


class LLMConfigCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    base_url: str = Field(..., min_length=1, description="OpenAI-compatible endpoint URL")
    api_key: str = Field(..., min_length=1, max_length=500)
    model_name: str = Field(..., min_length=1, max_length=200, description="Model identifier")
    is_active: bool = False


def _reload_gateway() -> None:
    try:
        ai_gateway_service.reload_configuration()
    except Exception as e:
        # The row is already saved; the next reload or restart applies it
        logger.warning(f"[LLMConfig] Gateway reload failed: {e}")


@router.get("/list")
async def list_configurations() -> dict[str, list[LLMConfigurationMasked]]:
    """List configurations with masked API keys."""
    try:
        return {"configurations": llm_config_service.get_all_configurations()}
    except Exception as e:
        logger.error(f"[LLMConfig] Error listing configurations: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/active")
async def get_active_configuration() -> LLMConfigurationMasked:
    """
    Get the active configuration.

    Raises:
        404: No configuration is active
    """
    config = llm_config_service.get_active_configuration()
    if not config:
        raise HTTPException(status_code=404, detail="No active LLM configuration found")

    return LLMConfigurationMasked(
        **config.model_dump(exclude={"api_key"}),
        api_key_preview=llm_config_service.mask_api_key(config.api_key),
    )


@router.post("")
async def create_configuration(config: LLMConfigCreate) -> LLMConfigurationMasked:
    """
    Create a configuration.

    Raises:
        409: Name already exists
    """
    try:
        created = llm_config_service.create_configuration(**config.model_dump())
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if config.is_active:
        _reload_gateway()
    return created


@router.put("/{config_id}/activate")
async def activate_configuration(config_id: int):
    """
    Activate a configuration and point the gateway at it.

    Raises:
        404: Configuration not found
    """
    logger.info(f"[LLMConfig] Activating configuration ID: {config_id}")
    try:
        result = llm_config_service.activate_configuration(config_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    _reload_gateway()
    return result


@router.delete("/{config_id}")
async def delete_configuration(config_id: int):
    """
    Delete a configuration. The active one cannot be deleted.

    Raises:
        404: Configuration not found
        400: Configuration is active
    """
    try:
        llm_config_service.delete_configuration(config_id)
    except ValueError as e:
        status = 404 if "not found" in str(e) else 400
        raise HTTPException(status_code=status, detail=str(e))
    return {"message": "Configuration deleted successfully", "id": config_id}
