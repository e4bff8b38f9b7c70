"""LLM config service: single source of truth for component→provider→model mapping."""
import logging
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from config import get_settings
from shared.repositories.llm_config_repository import LLMConfigRepository
from shared.services.llm_service import LLMService
from shared.utils.exceptions import LLMConfigNotFoundError

logger = logging.getLogger(__name__)

# Seeded by `python db.py --seed-defaults`
DEFAULT_LLM_CONFIGS = [
    {
        "component_key": "lesson_generator",
        "provider": "anthropic",
        "model_id": "claude-sonnet-4-5",
        "description": "Differentiated lesson and worksheet generation",
    },
]


class LLMConfigService:
    """Reads/writes LLM config from the llm_config DB table. No fallbacks."""

    def __init__(self, db: DBSession):
        self.repo = LLMConfigRepository(db)

    def get_config(self, component_key: str) -> dict:
        """Return {provider, model_id} for a component. Raises if missing."""
        row = self.repo.get_by_key(component_key)
        if not row:
            raise LLMConfigNotFoundError(component_key)
        return {"provider": row.provider, "model_id": row.model_id}

    def build_llm_service(self, component_key: str) -> LLMService:
        """
        Construct an LLMService wired to the component's configured provider.

        API keys come from Settings; provider and model come from the llm_config table.
        """
        cfg = self.get_config(component_key)
        settings = get_settings()
        logger.info(
            f"LLM for '{component_key}': provider={cfg['provider']} model={cfg['model_id']}"
        )
        return LLMService(
            api_key=settings.openai_api_key,
            provider=cfg["provider"],
            model_id=cfg["model_id"],
            gemini_api_key=settings.gemini_api_key or None,
            anthropic_api_key=settings.anthropic_api_key or None,
        )

    def get_all_configs(self) -> list[dict]:
        """Return all configs as dicts."""
        return [self._to_dict(r) for r in self.repo.get_all()]

    def update_config(
        self,
        component_key: str,
        provider: str,
        model_id: str,
        updated_by: Optional[str] = None,
    ) -> dict:
        """Update provider+model for a component. Returns the updated config."""
        row = self.repo.upsert(component_key, provider, model_id, updated_by)
        return self._to_dict(row)

    def seed_defaults(self) -> int:
        """Insert default configs for components that have none. Returns rows added."""
        added = 0
        for default in DEFAULT_LLM_CONFIGS:
            if self.repo.get_by_key(default["component_key"]):
                continue
            self.repo.upsert(
                default["component_key"],
                default["provider"],
                default["model_id"],
                updated_by="seed",
                description=default["description"],
            )
            added += 1
        return added

    @staticmethod
    def _to_dict(row) -> dict:
        return {
            "component_key": row.component_key,
            "provider": row.provider,
            "model_id": row.model_id,
            "description": row.description,
            "updated_at": row.updated_at.isoformat() if row.updated_at else None,
            "updated_by": row.updated_by,
        }
