"""Admin API for centralized LLM model configuration."""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session as DBSession

from database import get_db
from shared.services.llm_config_service import DEFAULT_LLM_CONFIGS, LLMConfigService

router = APIRouter(prefix="/api/admin", tags=["llm-config"])

# Models an admin may assign to a component
AVAILABLE_MODELS = {
    "openai": ["gpt-5.2", "gpt-5.1", "gpt-4o", "gpt-4o-mini"],
    "anthropic": ["claude-sonnet-4-5", "claude-opus-4-6", "claude-haiku-4-5-20251001"],
    "google": ["gemini-3-pro-preview"],
}

# Pipeline components that read their model from llm_config
COMPONENTS = {cfg["component_key"] for cfg in DEFAULT_LLM_CONFIGS}


class UpdateLLMConfigRequest(BaseModel):
    provider: str
    model_id: str
    updated_by: str | None = None


@router.get("/llm-config")
def list_llm_configs(db: DBSession = Depends(get_db)):
    """Return all LLM configs."""
    return LLMConfigService(db).get_all_configs()


@router.get("/llm-config/options")
def get_llm_config_options():
    """Return available models per provider."""
    return AVAILABLE_MODELS


@router.put("/llm-config/{component_key}")
def update_llm_config(
    component_key: str,
    request: UpdateLLMConfigRequest,
    db: DBSession = Depends(get_db),
):
    """Point a component (e.g. lesson_generator) at a different provider + model."""
    if component_key not in COMPONENTS:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown component '{component_key}'. Valid: {sorted(COMPONENTS)}",
        )

    if request.provider not in AVAILABLE_MODELS:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown provider '{request.provider}'. Valid: {list(AVAILABLE_MODELS.keys())}",
        )

    if request.model_id not in AVAILABLE_MODELS[request.provider]:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown model '{request.model_id}' for provider '{request.provider}'. "
                   f"Valid: {AVAILABLE_MODELS[request.provider]}",
        )

    result = LLMConfigService(db).update_config(
        component_key=component_key,
        provider=request.provider,
        model_id=request.model_id,
        updated_by=request.updated_by,
    )
    db.commit()
    return result
