"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from edit_applier.models.edit import ApplyMode
from edit_applier.services.apply_client import ApplyClient
from edit_applier.services.config_manager import ConfigManager
from edit_applier.services.request_builder import build

router = APIRouter()


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration sections"""

    apply: dict | None = None
    retry: dict | None = None
    reapply: dict | None = None
    workspace: dict | None = None


class ConfigResponse(BaseModel):
    """Configuration response"""

    apply: dict
    retry: dict
    reapply: dict
    workspace: dict


class ValidateResponse(BaseModel):
    """Validation response"""

    valid: bool
    message: str
    category: str | None = None


def mask_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration with the API key masked"""
    config = ConfigManager.get_instance().get_config()

    apply_cfg = dict(config.get("apply", {}))
    apply_cfg["apiKey"] = mask_key(apply_cfg.get("apiKey", ""))

    return ConfigResponse(
        apply=apply_cfg,
        retry=config.get("retry", {}),
        reapply=config.get("reapply", {}),
        workspace=config.get("workspace", {}),
    )


@router.put("")
async def update_config(request: ConfigUpdateRequest) -> dict[str, Any]:
    """Update only the provided sections"""
    updates = request.model_dump(exclude_none=True)
    ConfigManager.get_instance().save_config(updates)
    return {"status": "success", "message": "Configuration updated"}


@router.post("/validate", response_model=ValidateResponse)
async def validate_config() -> ValidateResponse:
    """Validate the API key and endpoint by applying a trivial edit"""
    config = ConfigManager.get_instance().get_config()
    client = ApplyClient(config)

    result = await client.apply(build("ok\n", "ok\n"), ApplyMode.BLOCKING)
    if result.ok:
        return ValidateResponse(valid=True, message=f"Successfully connected to {client.base_url}")
    return ValidateResponse(
        valid=False,
        message=f"Connection failed: {result.diagnostic.message}",
        category=result.diagnostic.category,
    )
