"""Tests for configuration loading and validation."""

import os

import pytest

from firewatch.config import Config, get_default_config, load_config


def _write(tmp_path, text: str, name: str = "config.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return path


def test_defaults():
    config = get_default_config()
    assert config.thresholds.gas_danger == 1500
    assert config.sensors.gas_max_raw == 4095
    assert config.monitor.cycle_interval_seconds == 1.0
    assert config.classifier.interval_seconds == 30.0
    assert config.buzzer.block_cycle is True
    assert config.outputs.fan.backend == "gpio"
    assert not config.telemetry_enabled


def test_effective_max_age():
    config = get_default_config()
    assert config.classifier.effective_max_age_seconds == 90.0
    config.classifier.max_age_seconds = 45.0
    assert config.classifier.effective_max_age_seconds == 45.0


def test_load_nested_values(tmp_path, monkeypatch):
    monkeypatch.delenv("MOCK_HARDWARE", raising=False)
    path = _write(tmp_path, """
device:
  device_id: lab-3
thresholds:
  gas_danger: 900
outputs:
  fan:
    backend: gpio
    idle_on: true
notifications:
  voice:
    repeat: 3
""")
    config = load_config(str(path), base_path=tmp_path)

    assert isinstance(config, Config)
    assert config.device.device_id == "lab-3"
    assert config.thresholds.gas_danger == 900
    assert config.outputs.fan.idle_on is True
    assert config.notifications.voice.repeat == 3
    # Untouched sections keep defaults
    assert config.sensors.dht_pin == 4


def test_env_substitution(tmp_path, monkeypatch):
    monkeypatch.setenv("FW_DB_URL", "https://demo.firebaseio.com")
    monkeypatch.setenv("FW_API_KEY", "secret-key")
    path = _write(tmp_path, """
cloud:
  database_url: ${FW_DB_URL}
  api_key: ${FW_API_KEY}
""")
    config = load_config(str(path), base_path=tmp_path)

    assert config.cloud.database_url == "https://demo.firebaseio.com"
    assert config.cloud.api_key == "secret-key"
    assert config.telemetry_enabled


def test_dotenv_file_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("FW_DOTENV_KEY", raising=False)
    (tmp_path / ".env").write_text("FW_DOTENV_KEY=from-dotenv\n")
    path = _write(tmp_path, "cloud:\n  api_key: ${FW_DOTENV_KEY}\n")

    try:
        config = load_config(str(path), base_path=tmp_path)
    finally:
        os.environ.pop("FW_DOTENV_KEY", None)
    assert config.cloud.api_key == "from-dotenv"


def test_mock_hardware_env_override(tmp_path, monkeypatch):
    monkeypatch.setenv("MOCK_HARDWARE", "true")
    path = _write(tmp_path, "mock_mode: false\n")
    assert load_config(str(path), base_path=tmp_path).mock_mode is True


def test_local_config_takes_priority(tmp_path):
    _write(tmp_path, "device:\n  device_id: default\n")
    _write(tmp_path, "device:\n  device_id: local\n", name="config.local.yaml")
    assert load_config(base_path=tmp_path).device.device_id == "local"


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.yaml"))
    with pytest.raises(FileNotFoundError):
        load_config(base_path=tmp_path)


def test_empty_file_gives_defaults(tmp_path):
    config = load_config(str(_write(tmp_path, "")), base_path=tmp_path)
    assert config.thresholds.gas_danger == 1500


def test_unknown_keys_are_ignored(tmp_path):
    path = _write(tmp_path, "thresholds:\n  gas_danger: 1200\n  smoke_danger: 3\n")
    assert load_config(str(path), base_path=tmp_path).thresholds.gas_danger == 1200


def test_threshold_clamped_to_adc_range(tmp_path):
    path = _write(tmp_path, "thresholds:\n  gas_danger: 9000\n")
    assert load_config(str(path), base_path=tmp_path).thresholds.gas_danger == 4095


def test_non_positive_intervals_replaced(tmp_path):
    path = _write(tmp_path, """
monitor:
  cycle_interval_seconds: 0
classifier:
  interval_seconds: -5
  window_size: 0
buzzer:
  alert_window_seconds: -1
  on_seconds: 0
""")
    config = load_config(str(path), base_path=tmp_path)
    assert config.monitor.cycle_interval_seconds == 1.0
    assert config.classifier.interval_seconds == 30.0
    assert config.classifier.window_size == 1
    assert config.buzzer.alert_window_seconds == 0.0
    assert config.buzzer.on_seconds == 0.5


def test_invalid_fan_backend(tmp_path):
    path = _write(tmp_path, "outputs:\n  fan:\n    backend: servo\n")
    with pytest.raises(ValueError, match="fan.backend"):
        load_config(str(path), base_path=tmp_path)


def test_kasa_backend_requires_host(tmp_path, monkeypatch):
    monkeypatch.delenv("MOCK_HARDWARE", raising=False)
    path = _write(tmp_path, "outputs:\n  fan:\n    backend: kasa\n")
    with pytest.raises(ValueError, match="kasa_host"):
        load_config(str(path), base_path=tmp_path)

    path = _write(tmp_path, "mock_mode: true\noutputs:\n  fan:\n    backend: kasa\n")
    assert load_config(str(path), base_path=tmp_path).outputs.fan.backend == "kasa"


def test_incomplete_sms_settings_disable_sms(tmp_path):
    path = _write(tmp_path, "notifications:\n  sms:\n    enabled: true\n    account_sid: AC1\n")
    assert load_config(str(path), base_path=tmp_path).notifications.sms.enabled is False


def test_resolve_path(tmp_path):
    config = load_config(str(_write(tmp_path, "")), base_path=tmp_path)
    assert config.resolve_path("logs/fw.log") == tmp_path / "logs/fw.log"
    assert str(config.resolve_path("/var/log/fw.log")) == "/var/log/fw.log"
