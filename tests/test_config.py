import pytest
import yaml

from newsdesk.config import ConfigError, config_from_dict, load_config, load_sources_file


def test_defaults_are_valid():
    config = config_from_dict({})
    assert config.cache.ttl_seconds == 300
    assert config.sync.default_max_age_minutes == 30
    assert config.llm.enabled is False


def test_unknown_key_rejected():
    with pytest.raises(ConfigError, match="unknown config.cache.size"):
        config_from_dict({"cache": {"size": 10}})


def test_wrong_type_rejected():
    with pytest.raises(ConfigError, match="config.fetch.timeout_seconds must be an integer"):
        config_from_dict({"fetch": {"timeout_seconds": "fast"}})


def test_load_config_merges_yaml_and_env(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({"http": {"port": 8080}}), encoding="utf-8")
    monkeypatch.setenv("NEWSDESK_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("NEWSDESK_LLM_BASE_URL", raising=False)

    config = load_config(str(path))
    assert config.http.port == 8080
    assert config.paths.state_db == str(tmp_path / "data" / "newsdesk.sqlite3")


def test_load_config_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump({"sync": {"interval_minutes": 5}}), encoding="utf-8")
    monkeypatch.setenv("NEWSDESK_CONFIG_PATH", str(path))
    assert load_config().sync.interval_minutes == 5


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(str(tmp_path / "absent.yml"))


def test_load_sources_file(tmp_path):
    path = tmp_path / "sources.yml"
    path.write_text(
        yaml.safe_dump({"sources": [{"name": "Wire", "url": "https://wire.example/feed"}]}),
        encoding="utf-8",
    )
    assert load_sources_file(str(path)) == [{"name": "Wire", "url": "https://wire.example/feed"}]

    path.write_text(yaml.safe_dump({"sources": [{"name": "No URL"}]}), encoding="utf-8")
    with pytest.raises(ConfigError, match="requires name and url"):
        load_sources_file(str(path))
