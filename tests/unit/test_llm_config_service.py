"""
Tests for shared/services/llm_config_service.py and shared/repositories/llm_config_repository.py

All database interactions go through the db_session fixture from conftest.py.
"""
import pytest
from unittest.mock import patch

from shared.models.entities import LLMConfig
from shared.repositories.llm_config_repository import LLMConfigRepository
from shared.services.llm_config_service import DEFAULT_LLM_CONFIGS, LLMConfigService
from shared.utils.exceptions import LLMConfigNotFoundError


class TestRepository:

    def test_upsert_inserts_then_updates(self, db_session):
        repo = LLMConfigRepository(db_session)
        repo.upsert("lesson_generator", "anthropic", "claude-sonnet-4-5", description="Lessons")
        repo.upsert("lesson_generator", "openai", "gpt-4o", updated_by="admin")

        row = repo.get_by_key("lesson_generator")
        assert row.provider == "openai"
        assert row.model_id == "gpt-4o"
        assert row.updated_by == "admin"
        assert row.description == "Lessons"
        assert db_session.query(LLMConfig).count() == 1

    def test_get_all_sorted(self, db_session):
        repo = LLMConfigRepository(db_session)
        repo.upsert("z_component", "openai", "gpt-4o")
        repo.upsert("a_component", "openai", "gpt-4o")
        assert [r.component_key for r in repo.get_all()] == ["a_component", "z_component"]


class TestService:

    def test_missing_config_raises(self, db_session):
        with pytest.raises(LLMConfigNotFoundError):
            LLMConfigService(db_session).get_config("lesson_generator")

    def test_seed_defaults(self, db_session):
        service = LLMConfigService(db_session)

        assert service.seed_defaults() == len(DEFAULT_LLM_CONFIGS)
        assert service.seed_defaults() == 0
        assert service.get_config("lesson_generator") == {
            "provider": "anthropic", "model_id": "claude-sonnet-4-5",
        }

    def test_seed_keeps_existing_choice(self, db_session):
        service = LLMConfigService(db_session)
        service.update_config("lesson_generator", "google", "gemini-2.5-pro")

        service.seed_defaults()

        assert service.get_config("lesson_generator")["provider"] == "google"

    def test_update_returns_dict(self, db_session):
        result = LLMConfigService(db_session).update_config(
            "lesson_generator", "openai", "gpt-4o", updated_by="admin"
        )
        assert result["component_key"] == "lesson_generator"
        assert result["provider"] == "openai"
        assert result["updated_by"] == "admin"

    def test_get_all_configs(self, db_session):
        service = LLMConfigService(db_session)
        service.seed_defaults()

        configs = service.get_all_configs()
        assert configs[0]["description"] == "Differentiated lesson and worksheet generation"

    @patch("shared.services.llm_config_service.LLMService")
    def test_build_llm_service(self, mock_llm_cls, db_session):
        service = LLMConfigService(db_session)
        service.seed_defaults()

        built = service.build_llm_service("lesson_generator")

        assert built is mock_llm_cls.return_value
        kwargs = mock_llm_cls.call_args.kwargs
        assert kwargs["provider"] == "anthropic"
        assert kwargs["model_id"] == "claude-sonnet-4-5"
        assert kwargs["anthropic_api_key"]
