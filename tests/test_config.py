import pytest
import yaml

import config
from interface.blockout_app import configure_backend, update_sync_setting


@pytest.fixture
def cfg_path(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    monkeypatch.setattr(config, "USER_CONFIG_PATH", path)
    monkeypatch.delenv("BLOCKOUT_CLOUD_URL", raising=False)
    monkeypatch.delenv("BLOCKOUT_CLOUD_TOKEN", raising=False)
    return path


def test_backend_round_trip_and_validation(cfg_path):
    assert config.get_backend() == ""
    config.set_backend("Dropbox")
    assert config.get_backend() == "dropbox"
    with pytest.raises(ValueError):
        config.set_backend("ftp")
    config.set_backend("")
    assert not cfg_path.exists()


def test_cloud_config_env_overrides(cfg_path, monkeypatch):
    config.set_cloud_config("https://file.example/", "file-token")
    assert config.get_cloud_config() == {"url": "https://file.example/", "token": "file-token"}
    monkeypatch.setenv("BLOCKOUT_CLOUD_URL", "https://env.example")
    assert config.get_cloud_config()["url"] == "https://env.example"
    assert config.get_cloud_config()["token"] == "file-token"


def test_section_updates_drop_empty_values(cfg_path):
    config.set_dropbox_settings(client_id="key", access_token="at", expires_at=100)
    config.clear_dropbox_tokens()
    assert config.get_dropbox_settings() == {"client_id": "key"}
    saved = yaml.safe_load(cfg_path.read_text())
    assert saved == {"dropbox": {"client_id": "key"}}


def test_sync_settings_defaults_and_overrides(cfg_path):
    assert config.get_sync_settings() == config.SYNC_DEFAULTS
    config.set_sync_setting("debounce_ms", 250)
    config.set_sync_setting("recompute_streaks", True)
    settings = config.get_sync_settings()
    assert settings["debounce_ms"] == 250
    assert settings["recompute_streaks"] is True
    with pytest.raises(ValueError):
        config.set_sync_setting("colour", 1)


def test_invalid_sync_values_fall_back(cfg_path):
    cfg_path.write_text(yaml.safe_dump({"sync": {"timeout_seconds": -5, "push_interval_seconds": "soon"}}))
    settings = config.get_sync_settings()
    assert settings["timeout_seconds"] == 30
    assert settings["push_interval_seconds"] == 300


def test_unreadable_config_reads_as_empty(cfg_path):
    cfg_path.write_text("backend: [unclosed")
    assert config.get_backend() == ""


def test_data_files_live_next_to_config(cfg_path):
    assert config.snapshot_path() == cfg_path.parent / "snapshot.json"
    assert config.tracker_path().name == "sync_state.json"
    assert config.conflict_path().name == "conflict.json"


def test_data_dir_honours_env(monkeypatch, tmp_path):
    monkeypatch.setenv("BLOCKOUT_HOME", str(tmp_path))
    assert config.data_dir() == tmp_path


def test_sync_setting_values_are_validated(cfg_path):
    with pytest.raises(ValueError):
        config.set_sync_setting("debounce_ms", 0)
    with pytest.raises(ValueError):
        config.set_sync_setting("recompute_streaks", "yes")
    config.set_sync_setting("timeout_seconds", 10)
    config.set_sync_setting("timeout_seconds", None)
    assert config.get_sync_settings()["timeout_seconds"] == 30


def test_cli_setting_values_parse_as_yaml(cfg_path):
    update_sync_setting("push_interval_seconds", "60")
    update_sync_setting("recompute_streaks", "true")
    settings = config.get_sync_settings()
    assert settings["push_interval_seconds"] == 60
    assert settings["recompute_streaks"] is True
    with pytest.raises(ValueError):
        update_sync_setting("debounce_ms", "[1")


def test_new_dropbox_app_key_drops_old_tokens(cfg_path):
    config.set_dropbox_settings(client_id="old-key", access_token="at", refresh_token="rt", expires_at=99)
    configure_backend("dropbox", {"client_id": "old-key"})
    assert config.get_dropbox_settings()["refresh_token"] == "rt"
    configure_backend("dropbox", {"client_id": "new-key"})
    assert config.get_dropbox_settings() == {"client_id": "new-key"}
    assert config.get_backend() == "dropbox"
