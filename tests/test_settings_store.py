"""Tests for dialog settings."""

from __future__ import annotations

import json

from sqldialog.domains.connections.store.settings import (
    DialogSettings,
    SettingsStore,
    load_dialog_settings,
)


class TestDialogSettings:
    def test_defaults(self) -> None:
        settings = DialogSettings.from_dict({})

        assert settings.default_connect_timeout == 15
        assert settings.default_application_name == "sqldialog"
        assert not settings.use_subscription_filter

    def test_empty_filter_still_enables_filtering(self) -> None:
        assert DialogSettings.from_dict({"azure_subscription_filter": []}).use_subscription_filter

    def test_invalid_values_are_ignored(self) -> None:
        settings = DialogSettings.from_dict(
            {
                "default_connect_timeout": True,
                "default_application_name": "   ",
                "azure_subscription_filter": "sub-1",
                "log_level": 3,
            }
        )

        assert settings == DialogSettings()


class TestSettingsStore:
    def test_set_get_delete(self, tmp_path) -> None:
        store = SettingsStore(file_path=tmp_path / "settings.json")

        store.set("default_connect_timeout", 30)
        assert store.get("default_connect_timeout") == 30
        assert store.load_dialog_settings().default_connect_timeout == 30

        assert store.delete("default_connect_timeout") is True
        assert store.delete("default_connect_timeout") is False
        assert store.load_all() == {}

    def test_unreadable_file_is_empty(self, tmp_path) -> None:
        path = tmp_path / "settings.json"
        path.write_text("{not json")

        assert SettingsStore(file_path=path).load_all() == {}

    def test_settings_path_override(self, tmp_path, monkeypatch) -> None:
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"default_application_name": "reports"}))
        monkeypatch.setenv("SQLDIALOG_SETTINGS_PATH", str(path))

        assert load_dialog_settings().default_application_name == "reports"

    def test_config_dir_default(self, config_dir) -> None:
        (config_dir / "settings.json").write_text(json.dumps({"azure_subscription_filter": ["s1"]}))

        settings = load_dialog_settings()

        assert settings.azure_subscription_filter == ["s1"]
        assert SettingsStore.get_instance().file_path == config_dir / "settings.json"
