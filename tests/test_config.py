"""Tests for store configuration: TOML persistence and field mapping."""

import pytest

from occurrences.config import (
    CONFIG_FILENAME,
    RetryConfig,
    StoreConfig,
    get_default_vault_path,
    load_config,
    load_or_create_config,
    save_config,
)
from occurrences.errors import ConfigError, OccurrenceError


class TestPersistence:

    def test_create_with_defaults(self, tmp_path):
        config = load_or_create_config(tmp_path)
        assert (tmp_path / CONFIG_FILENAME).exists()
        assert config.folder == "Occurrences"
        assert config.extension == ".md"
        assert config.date_format == "YYYY-MM-DD HHmm"

    def test_round_trip(self, tmp_path):
        config = StoreConfig(
            path=tmp_path,
            folder="Journal",
            date_format="YYYYMMDD-HHmm",
            retry=RetryConfig(attempts=5, delay=0.1, backoff=2.0),
        )
        config.property_mapping["occurredAt"] = "when"
        save_config(config)

        loaded = load_config(tmp_path)
        assert loaded.folder == "Journal"
        assert loaded.date_format == "YYYYMMDD-HHmm"
        assert loaded.field_name("occurredAt") == "when"
        assert loaded.retry == RetryConfig(attempts=5, delay=0.1, backoff=2.0)

    def test_existing_config_is_loaded(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[store]\nfolder = "/Log/"\n')
        config = load_or_create_config(tmp_path)
        assert config.folder == "Log"
        assert config.field_name("participants") == "participants"

    def test_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path)

    def test_newer_version_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[store]\nversion = 99\n")
        with pytest.raises(ConfigError, match="newer"):
            load_config(tmp_path)

    def test_unknown_field_rejected(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('[fields]\nmood = "feeling"\n')
        with pytest.raises(ConfigError, match="mood"):
            load_config(tmp_path)

    def test_bad_attempts(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("[retry]\nattempts = 0\n")
        with pytest.raises(ValueError):
            load_config(tmp_path)

    def test_config_error_hierarchy(self):
        assert issubclass(ConfigError, OccurrenceError)
        assert issubclass(ConfigError, ValueError)


class TestFieldMapping:

    def test_defaults(self, tmp_path):
        config = StoreConfig(path=tmp_path)
        assert config.field_name("occurredAt") == "occurred_at"
        assert config.field_name("toProcess") == "to_process"
        assert config.field_name("tags") == "tags"
        assert config.field_name("title") == "title"

    def test_remapped(self, tmp_path):
        config = StoreConfig(path=tmp_path)
        config.property_mapping["location"] = "place"
        assert config.field_name("location") == "place"
        assert config.property_for_field("place") == "location"

    def test_reverse_lookup(self, tmp_path):
        config = StoreConfig(path=tmp_path)
        assert config.property_for_field("occurred_at") == "occurredAt"
        assert config.property_for_field("tags") == "tags"
        assert config.property_for_field("mood") is None

    def test_mapping_with_tags(self, tmp_path):
        mapping = StoreConfig(path=tmp_path).property_mapping_with_tags()
        assert mapping["tags"] == "tags"
        assert mapping["occurredAt"] == "occurred_at"


class TestRelevance:

    @pytest.mark.parametrize("path,expected", [
        ("Occurrences/2025-01-10 0900 Standup.md", True),
        ("Occurrences/Sub/2025-01-10 0900 Standup.md", True),
        ("Occurrences/picture.png", False),
        ("Notes/2025-01-10 0900 Standup.md", False),
        ("OccurrencesArchive/a.md", False),
        ("Occurrences.md", False),
    ])
    def test_is_relevant(self, tmp_path, path, expected):
        assert StoreConfig(path=tmp_path).is_relevant(path) is expected


def test_default_vault_path_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("OCCURRENCES_VAULT", str(tmp_path))
    assert get_default_vault_path() == tmp_path


def test_default_vault_path_is_cwd(tmp_path, monkeypatch):
    monkeypatch.delenv("OCCURRENCES_VAULT", raising=False)
    monkeypatch.chdir(tmp_path)
    assert get_default_vault_path() == tmp_path
