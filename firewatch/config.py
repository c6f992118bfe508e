# =============================================================================
# DISCLAIMER: This software is NOT a certified fire or gas detection system and
# is NOT a substitute for listed smoke or gas alarms. This is a proof of concept
# for educational purposes only. Do not rely on this system for life safety.
# =============================================================================
"""Configuration loader for Fire Watch.

Loads configuration from YAML file with environment variable substitution.
Secrets (cloud password, Twilio token) are expected to come from the
environment or a .env file via ${VAR} placeholders.
"""

import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Default config file locations (in order of priority)
CONFIG_PATHS = [
    "config.local.yaml",  # Local overrides (not in git)
    "config.yaml",        # Default config
]


@dataclass
class DeviceConfig:
    """Identity of this edge node."""
    device_id: str = "node-01"
    name: str = "Fire Watch"


@dataclass
class SensorsConfig:
    """Sensor wiring and acquisition timing."""
    dht_type: str = "DHT11"
    dht_pin: int = 4
    flame_pin: int = 17
    gas_adc_channel: int = 0
    # 12-bit ADC full scale
    gas_max_raw: int = 4095
    # Wait after a failed read before the next attempt (seconds)
    settle_delay_seconds: float = 2.0


@dataclass
class ThresholdsConfig:
    """Local alert thresholds."""
    gas_danger: int = 1500


@dataclass
class ConnectivityConfig:
    """Network association settings."""
    wifi_ssid: str = ""
    wifi_password: str = ""
    interface: str = "wlan0"
    # Bounded reconnect budget per supervision tick
    poll_attempts: int = 10
    poll_interval_seconds: float = 0.5


@dataclass
class CloudConfig:
    """Firebase Realtime Database telemetry store."""
    enabled: bool = True
    database_url: str = ""
    api_key: str = ""
    email: str = ""
    password: str = ""
    base_path: str = "FireWatch"
    timeout_seconds: float = 10.0


@dataclass
class ClassifierConfig:
    """Remote classification service."""
    enabled: bool = True
    url: str = "http://localhost:8200"
    interval_seconds: float = 30.0
    window_size: int = 10
    timeout_seconds: float = 10.0
    # Reconciled verdicts older than this are ignored (0 = 3 x interval)
    max_age_seconds: float = 0.0

    @property
    def effective_max_age_seconds(self) -> float:
        return self.max_age_seconds or self.interval_seconds * 3


@dataclass
class BuzzerConfig:
    """Danger alarm pattern."""
    alert_window_seconds: float = 5.0
    on_seconds: float = 0.5
    off_seconds: float = 0.5
    # Hold the control cycle while the alarm pattern runs
    block_cycle: bool = True


@dataclass
class FanConfig:
    """Exhaust fan output.

    Attributes:
        backend: "gpio" for a relay module, "kasa" for a TP-Link smart plug
        relay_pin: BCM pin driving the relay (gpio backend)
        relay_active_low: Relay module energizes on logic low
        kasa_host: Smart plug IP address (kasa backend)
        idle_on: Run the fan while SAFE (background ventilation)
    """
    backend: str = "gpio"
    relay_pin: int = 24
    relay_active_low: bool = True
    kasa_host: str = ""
    idle_on: bool = False


@dataclass
class OutputsConfig:
    """Physical outputs."""
    led_red_pin: int = 22
    led_green_pin: int = 27
    buzzer_pin: int = 23
    buzzer_active_high: bool = True
    fan: FanConfig = field(default_factory=FanConfig)


@dataclass
class SmsConfig:
    """Twilio SMS settings."""
    enabled: bool = False
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    to_numbers: List[str] = field(default_factory=list)
    timeout_seconds: float = 10.0


@dataclass
class VoiceConfig:
    """Local voice announcements via espeak."""
    enabled: bool = True
    command: str = "espeak"
    amplitude: int = 200
    repeat: int = 2
    timeout_seconds: float = 20.0


@dataclass
class MessagesConfig:
    """Alert message templates."""
    danger_sms: str = "FIRE WATCH ALERT at {device}: {cause}. Temp {temperature:.1f}C, gas {gas}."
    danger_voice: str = "Warning. {cause} detected. Leave the area immediately."
    display_safe: str = "STATUS: SAFE"
    display_danger: str = "!! DANGER !!"


@dataclass
class NotificationsConfig:
    """Operator notification container."""
    sms: SmsConfig = field(default_factory=SmsConfig)
    voice: VoiceConfig = field(default_factory=VoiceConfig)
    messages: MessagesConfig = field(default_factory=MessagesConfig)


@dataclass
class MonitorConfig:
    """Control cycle timing."""
    cycle_interval_seconds: float = 1.0


@dataclass
class WebConfig:
    """Status web server configuration."""
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 5000


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/firewatch.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container.

    This is the root configuration object containing all settings.
    """
    mock_mode: bool = False
    device: DeviceConfig = field(default_factory=DeviceConfig)
    sensors: SensorsConfig = field(default_factory=SensorsConfig)
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    connectivity: ConnectivityConfig = field(default_factory=ConnectivityConfig)
    cloud: CloudConfig = field(default_factory=CloudConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    buzzer: BuzzerConfig = field(default_factory=BuzzerConfig)
    outputs: OutputsConfig = field(default_factory=OutputsConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Internal: base path for resolving relative paths
    _base_path: Path = field(default_factory=Path.cwd)

    def resolve_path(self, path: str) -> Path:
        """Resolve a path relative to the config file location."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self._base_path / p

    @property
    def telemetry_enabled(self) -> bool:
        """Whether enough cloud settings exist to attempt sign-in."""
        cloud = self.cloud
        return bool(cloud.enabled and cloud.database_url and cloud.api_key)


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables.

    Args:
        value: Value to process (can be str, dict, list, or other)

    Returns:
        Value with environment variables substituted
    """
    if isinstance(value, str):
        # Pattern matches ${VAR_NAME}
        pattern = r'\$\{([^}]+)\}'

        def replace_env(match):
            var_name = match.group(1)
            env_value = os.environ.get(var_name, "")
            if not env_value:
                logger.warning(f"Environment variable {var_name} not set")
            return env_value

        return re.sub(pattern, replace_env, value)

    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]

    return value


def _dict_to_dataclass(cls, data: Optional[Dict[str, Any]]):
    """Convert a dictionary to a dataclass, handling nested structures.

    Unknown keys are ignored with a warning so a typo in config.yaml does not
    stop the monitor from starting.

    Args:
        cls: The dataclass type to create
        data: Dictionary of values

    Returns:
        Instance of cls populated with data
    """
    if data is None:
        return cls()

    defaults = cls()
    field_names = {name for name in cls.__dataclass_fields__ if not name.startswith('_')}

    for key in data:
        if key not in field_names:
            logger.warning(f"Unknown config key '{key}' in {cls.__name__} ignored")

    kwargs = {}
    for field_name in field_names:
        if field_name not in data:
            continue

        value = data[field_name]

        # Handle nested dataclasses (use the default instance to find the type,
        # since annotations may be strings)
        default_value = getattr(defaults, field_name)
        if hasattr(default_value, '__dataclass_fields__'):
            kwargs[field_name] = _dict_to_dataclass(type(default_value), value)
        else:
            kwargs[field_name] = value

    return cls(**kwargs)


def load_config(config_path: Optional[str] = None, base_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.
        base_path: Base path for resolving relative paths. Defaults to cwd.

    Returns:
        Config object with all settings loaded

    Raises:
        FileNotFoundError: If no config file is found
        yaml.YAMLError: If config file is invalid YAML
        ValueError: If required settings are missing
    """
    # Load .env file if present
    env_path = Path(base_path or Path.cwd()) / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.debug(f"Loaded environment from {env_path}")

    # Find config file
    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        base = base_path or Path.cwd()
        config_file = None
        for path in CONFIG_PATHS:
            candidate = base / path
            if candidate.exists():
                config_file = candidate
                break

        if config_file is None:
            raise FileNotFoundError(
                f"No config file found. Searched: {', '.join(CONFIG_PATHS)}"
            )

    logger.info(f"Loading config from {config_file}")

    # Load YAML
    with open(config_file, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    # Substitute environment variables
    config_data = _substitute_env_vars(raw_config)

    # Check for MOCK_HARDWARE env var override
    if os.environ.get("MOCK_HARDWARE", "").lower() in ("true", "1", "yes"):
        logger.info("MOCK_HARDWARE environment variable set - enabling mock mode")
        config_data["mock_mode"] = True

    # Convert to Config dataclass
    config = _dict_to_dataclass(Config, config_data)
    config._base_path = config_file.parent

    # Validate required settings
    _validate_config(config)

    return config


def _validate_config(config: Config) -> None:
    """Validate configuration settings.

    Out-of-range values are corrected with a warning. Only settings the
    monitor cannot run without raise.

    Args:
        config: Config object to validate

    Raises:
        ValueError: If required settings are missing or invalid
    """
    errors = []

    # Telemetry is optional - the safety loop runs without it
    if not config.telemetry_enabled:
        logger.warning("cloud.database_url / cloud.api_key not set - telemetry disabled")

    if config.sensors.gas_max_raw <= 0:
        errors.append("sensors.gas_max_raw must be positive")

    # Validate thresholds
    threshold = config.thresholds.gas_danger
    if threshold < 0 or (config.sensors.gas_max_raw > 0 and threshold > config.sensors.gas_max_raw):
        logger.warning("thresholds.gas_danger outside sensor range, clamping to valid range")
        config.thresholds.gas_danger = max(0, min(config.sensors.gas_max_raw, threshold))

    if config.monitor.cycle_interval_seconds <= 0:
        logger.warning("monitor.cycle_interval_seconds must be positive, using 1.0")
        config.monitor.cycle_interval_seconds = 1.0

    if config.classifier.interval_seconds <= 0:
        logger.warning("classifier.interval_seconds must be positive, using 30")
        config.classifier.interval_seconds = 30.0

    if config.classifier.window_size < 1:
        logger.warning("classifier.window_size must be at least 1, using 1")
        config.classifier.window_size = 1

    if config.connectivity.poll_attempts < 1:
        logger.warning("connectivity.poll_attempts must be at least 1, using 1")
        config.connectivity.poll_attempts = 1

    if config.buzzer.alert_window_seconds < 0:
        logger.warning("buzzer.alert_window_seconds must not be negative, using 0")
        config.buzzer.alert_window_seconds = 0.0

    if config.buzzer.on_seconds <= 0 or config.buzzer.off_seconds <= 0:
        logger.warning("buzzer.on_seconds / off_seconds must be positive, using 0.5")
        config.buzzer.on_seconds = config.buzzer.on_seconds if config.buzzer.on_seconds > 0 else 0.5
        config.buzzer.off_seconds = config.buzzer.off_seconds if config.buzzer.off_seconds > 0 else 0.5

    fan = config.outputs.fan
    if fan.backend not in ("gpio", "kasa"):
        errors.append(f"outputs.fan.backend must be 'gpio' or 'kasa', got '{fan.backend}'")
    elif fan.backend == "kasa" and not fan.kasa_host and not config.mock_mode:
        errors.append("outputs.fan.kasa_host is required for the kasa fan backend (or enable mock_mode)")

    sms = config.notifications.sms
    if sms.enabled and not (sms.account_sid and sms.auth_token and sms.from_number and sms.to_numbers):
        logger.warning("notifications.sms enabled but Twilio settings incomplete - SMS disabled")
        sms.enabled = False

    # Only fail on critical errors
    if errors:
        raise ValueError("Configuration errors:\n  " + "\n  ".join(errors))


def get_default_config() -> Config:
    """Get a Config object with all default values.

    Useful for testing or when no config file exists.

    Returns:
        Config with default values
    """
    return Config()
