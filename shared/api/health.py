"""Health check API endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session as DBSession

from database import get_db, get_db_manager
from shared.services.llm_config_service import LLMConfigService

router = APIRouter(tags=["health"])


@router.get("/")
def read_root():
    """Service status."""
    return {
        "status": "ok",
        "service": "Speddy AI Lessons Backend",
        "version": "1.0.0"
    }


@router.get("/config/models")
def get_model_config(db: DBSession = Depends(get_db)):
    """Return the provider + model each pipeline component is configured to use."""
    return {
        cfg["component_key"]: {
            "provider": cfg["provider"],
            "model_id": cfg["model_id"],
            "description": cfg.get("description") or "",
        }
        for cfg in LLMConfigService(db).get_all_configs()
    }


@router.get("/health/db")
def database_health():
    """Database health check."""
    try:
        if get_db_manager().health_check():
            return {"status": "ok", "database": "connected"}
        return {"status": "error", "database": "connection_failed"}
    except Exception as e:
        return {"status": "error", "database": f"error: {str(e)}"}
