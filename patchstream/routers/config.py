"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from patchstream.models.settings import EngineSettings
from patchstream.services.config_manager import ConfigManager
from patchstream.services.llm_service import LLMService

router = APIRouter()

PROVIDERS = ("gemini", "openai", "vllm")


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration"""

    provider: str | None = None
    gemini: dict | None = None
    openai: dict | None = None
    vllm: dict | None = None
    server: dict | None = None
    engine: dict | None = None


class ConfigResponse(BaseModel):
    """Configuration response"""

    provider: str
    gemini: dict
    openai: dict
    vllm: dict
    server: dict
    engine: dict


class ValidateResponse(BaseModel):
    """Validation response"""

    valid: bool
    message: str
    provider: str


def mask_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration"""
    config = ConfigManager.get_instance().get_config()

    # Mask API keys for security
    sections = {}
    for provider in PROVIDERS:
        section = config.get(provider, {}).copy()
        section["apiKey"] = mask_key(section.get("apiKey", ""))
        sections[provider] = section

    return ConfigResponse(
        provider=config.get("provider", "gemini"),
        server=config.get("server", {}),
        engine=config.get("engine", {}),
        **sections,
    )


@router.put("")
async def update_config(request: ConfigUpdateRequest) -> dict[str, Any]:
    """Update configuration"""
    config_manager = ConfigManager.get_instance()
    current_config = config_manager.get_config()

    if request.provider:
        if request.provider not in PROVIDERS:
            raise HTTPException(status_code=400, detail=f"Unsupported provider: {request.provider}")
        current_config["provider"] = request.provider

    # Update only provided fields
    for section in (*PROVIDERS, "server", "engine"):
        update = getattr(request, section)
        if update:
            current_config[section] = {**current_config.get(section, {}), **update}

    if request.engine:
        try:
            EngineSettings.from_config(current_config)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid engine settings: {e}")

    config_manager.save_config(current_config)

    return {"status": "success", "message": "Configuration updated"}


@router.post("/validate", response_model=ValidateResponse)
async def validate_config() -> ValidateResponse:
    """Validate current configuration by testing LLM connection"""
    config = ConfigManager.get_instance().get_config()
    provider = config.get("provider", "gemini")

    try:
        llm_service = LLMService(config)
        response = await llm_service.generate_response("Say 'OK' if you can hear me.")

        if response:
            return ValidateResponse(
                valid=True,
                message=f"Successfully connected to {provider}",
                provider=provider,
            )
        return ValidateResponse(
            valid=False,
            message="Received empty response from LLM",
            provider=provider,
        )

    except Exception as e:
        return ValidateResponse(
            valid=False,
            message=f"Connection failed: {str(e)}",
            provider=provider,
        )
