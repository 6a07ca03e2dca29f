"""Tests for settings loading."""

import os

import pytest
from pydantic import ValidationError

from changewatch.config import load_settings, Settings


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings(env={})
        assert settings.fetch_workers == 5
        assert settings.detect_workers == 20
        assert settings.queue_size == 100
        assert settings.pagination == "count"
        assert settings.end_statuses == [204, 404]
        assert settings.treat_errors_as_end is False

    def test_environment(self):
        settings = load_settings(env={
            "CHANGEWATCH_DETECT_WORKERS": "200",
            "CHANGEWATCH_PAGINATION": "Probe",
            "CHANGEWATCH_END_STATUSES": "404, 410",
            "CHANGEWATCH_TREAT_ERRORS_AS_END": "yes",
            "CHANGEWATCH_KEY_FORMAT": "objectid",
        })
        assert settings.detect_workers == 200
        assert settings.pagination == "probe"
        assert settings.end_statuses == [404, 410]
        assert settings.treat_errors_as_end is True
        assert settings.key_format == "objectid"

    def test_overrides_win_and_none_is_ignored(self):
        settings = load_settings(
            env={"CHANGEWATCH_FETCH_WORKERS": "3", "CHANGEWATCH_DB_NAME": "shoes"},
            fetch_workers=8,
            db_name=None,
        )
        assert settings.fetch_workers == 8
        assert settings.db_name == "shoes"

    def test_invalid_mode(self):
        with pytest.raises(ValidationError):
            load_settings(env={"CHANGEWATCH_PAGINATION": "everything"})

    def test_invalid_worker_count(self):
        with pytest.raises(ValidationError):
            load_settings(env={}, detect_workers=0)


class TestDbPath:
    def test_file_in_directory(self):
        settings = Settings(db_dir="/var/lib/changewatch", db_name="fashion")
        assert settings.db_path == os.path.join("/var/lib/changewatch", "fashion.db")

    def test_memory(self):
        assert Settings(db_dir=":memory:").db_path == ":memory:"
