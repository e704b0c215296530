"""
Tests for the config store and YAML import.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from almanac.research.models import Category, ResearchConfig
from almanac.store.configs import DEFAULT_CONFIGS


def make_config(config_id: str = "c1", **overrides) -> ResearchConfig:
    data = {
        "id": config_id,
        "name": "Config",
        "prompt": "Find things.",
        "category": "news",
        "topics": ["a", "b", "a"],
        "preferred_sources": ["https://www.TechCrunch.com/", "techcrunch.com", "theverge.com"],
    }
    data.update(overrides)
    return ResearchConfig(**data)


class TestResearchConfigModel:
    def test_normalizes_sources_and_topics(self):
        config = make_config()
        assert config.topics == ["a", "b"]
        assert config.preferred_sources == ["techcrunch.com", "theverge.com"]
        assert config.schedule == "0 6 * * *"
        assert config.enabled is True

    def test_rejects_bad_id(self):
        with pytest.raises(ValidationError):
            make_config("bad id!")

    def test_rejects_unknown_category(self):
        with pytest.raises(ValidationError):
            make_config(category="sports")

    def test_camel_case_input(self):
        config = ResearchConfig.model_validate(
            {
                "id": "x",
                "name": "X",
                "prompt": "p",
                "category": "papers",
                "preferredSources": ["arxiv.org"],
                "blockedSources": ["spam.example"],
            }
        )
        assert config.preferred_sources == ["arxiv.org"]
        assert config.blocked_sources == ["spam.example"]


class TestConfigStore:
    def test_create_and_get(self, config_store):
        config_store.create(make_config())

        loaded = config_store.get("c1")
        assert loaded.name == "Config"
        assert loaded.category == Category.NEWS
        assert loaded.topics == ["a", "b"]
        assert loaded.preferred_sources == ["techcrunch.com", "theverge.com"]
        assert config_store.exists("c1")

    def test_create_duplicate_raises(self, config_store):
        config_store.create(make_config())
        with pytest.raises(ValueError):
            config_store.create(make_config())

    def test_list_ordering_and_enabled_filter(self, config_store):
        config_store.create(make_config("n2", name="Zeta", category="news"))
        config_store.create(make_config("n1", name="Alpha", category="news"))
        config_store.create(make_config("m1", name="Markets", category="markets", enabled=False))

        assert [c.id for c in config_store.list_configs()] == ["m1", "n1", "n2"]
        assert [c.id for c in config_store.list_configs(enabled_only=True)] == ["n1", "n2"]

    def test_update_is_partial(self, config_store):
        created = config_store.create(make_config())

        updated = config_store.update("c1", {"enabled": False, "schedule": "*/5 * * * *"})

        assert updated.enabled is False
        assert updated.schedule == "*/5 * * * *"
        assert updated.name == "Config"
        assert updated.created_at == created.created_at
        assert updated.updated_at >= created.updated_at
        assert config_store.get("c1").enabled is False

    def test_update_missing_returns_none(self, config_store):
        assert config_store.update("missing", {"name": "x"}) is None

    def test_update_validates(self, config_store):
        config_store.create(make_config())
        with pytest.raises(ValidationError):
            config_store.update("c1", {"category": "sports"})

    def test_delete(self, config_store):
        config_store.create(make_config())
        assert config_store.delete("c1") is True
        assert config_store.delete("c1") is False
        assert config_store.get("c1") is None

    def test_seed_defaults_is_idempotent(self, config_store):
        assert config_store.seed_defaults() == len(DEFAULT_CONFIGS)
        assert config_store.seed_defaults() == 0

        schedules = {c.id: c.schedule for c in config_store.list_configs()}
        assert schedules == {
            "papers-ai-computing": "0 6 * * *",
            "news-tech": "5 6 * * *",
            "markets-tech": "10 6 * * *",
            "politics-tech": "15 6 * * *",
        }

    def test_seed_does_not_overwrite_edits(self, config_store):
        config_store.seed_defaults()
        config_store.update("news-tech", {"enabled": False})
        config_store.seed_defaults()
        assert config_store.get("news-tech").enabled is False

    def test_save_upserts(self, config_store):
        config_store.save(make_config(name="First"))
        config_store.save(make_config(name="Second"))
        assert config_store.get("c1").name == "Second"
        assert len(config_store.list_configs()) == 1


class TestYamlImport:
    def test_list_under_configs_key(self, tmp_path: Path):
        path = tmp_path / "configs.yaml"
        path.write_text(
            """
configs:
  - id: ai-papers
    name: AI Papers
    prompt: Find papers.
    category: papers
    topics: [LLMs]
    schedule: "30 7 * * mon-fri"
  - id: policy
    name: Policy
    prompt: Track policy.
    category: politics
"""
        )

        configs = ResearchConfig.from_yaml_file(path)

        assert [c.id for c in configs] == ["ai-papers", "policy"]
        assert configs[0].schedule == "30 7 * * mon-fri"
        assert configs[1].category == Category.POLITICS

    def test_single_mapping(self, tmp_path: Path):
        path = tmp_path / "one.yaml"
        path.write_text("id: one\nname: One\nprompt: p\ncategory: news\n")
        assert [c.id for c in ResearchConfig.from_yaml_file(path)] == ["one"]
