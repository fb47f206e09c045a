"""Simple YAML configuration loader for dictapipe."""

import os
import copy
import yaml
from pathlib import Path
from typing import Dict, Any, List, Optional
import logging

from ..exceptions import ConfigError
from ..models.transcription import TranscriptionOptions
from ..pipeline.scheduler import SegmentationSettings

logger = logging.getLogger(__name__)

DEFAULTS: Dict[str, Any] = {
    "audio": {
        "sample_rate": 16000,
        "channels": 1,
        "chunk_size": 1024,
        "window_ms": 50,
        "silence_threshold": 328,
    },
    "segmentation": {
        "silence_timeout_seconds": 2.0,
        "pause_timeout_seconds": 1.0,
        "min_recording_ms": 500,
        "max_silence_ms": 1000,
        "pad_ms": 100,
    },
    "transcription": {
        "backend": "mistral",
        "api_key": "",
        "model": "voxtral-mini-latest",
        "language": "",
        "temperature": None,
        "context_bias": "",
        "timestamp_granularities": [],
        "diarize": False,
        "timeout_seconds": 30.0,
    },
    "google_cloud": {
        "credentials_path": None,
        "language": "en-US",
    },
    "logging": {
        "level": "INFO",
        "file_path": None,
        "console_output": True,
    },
}

ENV_OVERRIDES = {
    "DICTAPIPE_API_KEY": "transcription.api_key",
    "DICTAPIPE_MODEL": "transcription.model",
    "DICTAPIPE_LANGUAGE": "transcription.language",
    "DICTAPIPE_TEMPERATURE": "transcription.temperature",
    "DICTAPIPE_CONTEXT_BIAS": "transcription.context_bias",
}

POSITIVE_INT_KEYS = (
    "audio.sample_rate",
    "audio.channels",
    "audio.chunk_size",
    "audio.window_ms",
)
POSITIVE_KEYS = (
    "segmentation.pause_timeout_seconds",
    "transcription.timeout_seconds",
)
# Zero is meaningful: no auto-stop, no minimum length, no kept silence
NON_NEGATIVE_KEYS = (
    "audio.silence_threshold",
    "segmentation.silence_timeout_seconds",
    "segmentation.min_recording_ms",
    "segmentation.max_silence_ms",
    "segmentation.pad_ms",
)


def _is_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and value == value)


def default_config_path() -> Path:
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / "dictapipe" / "config.yaml"


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class DictaPipeConfig:
    """dictapipe configuration loader."""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, the default location
                        is used and a missing file means built-in defaults.
            environ: Environment used for overrides (defaults to os.environ)
        """
        explicit = config_path is not None
        self.config_file = Path(config_path) if explicit else default_config_path()

        if explicit and not self.config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_file}")

        self.config = _merge(DEFAULTS, self._load_config())
        self._apply_env_overrides(os.environ if environ is None else environ)

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        if not self.config_file.exists():
            logger.info(f"No configuration at {self.config_file}, using defaults")
            return {}

        logger.info(f"Loading configuration from: {self.config_file}")
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError([f"Invalid YAML in configuration file: {e}"]) from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigError(["Configuration file must contain a mapping"])

        self._resolve_paths(config)
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        creds_path = (config.get('google_cloud') or {}).get('credentials_path')
        if creds_path and not os.path.isabs(creds_path):
            config['google_cloud']['credentials_path'] = str(config_dir / creds_path)

        log_path = (config.get('logging') or {}).get('file_path')
        if log_path and not os.path.isabs(log_path):
            config['logging']['file_path'] = str(config_dir / log_path)

    def _apply_env_overrides(self, environ: Dict[str, str]) -> None:
        for variable, key_path in ENV_OVERRIDES.items():
            value = environ.get(variable)
            if not value:
                continue
            if key_path == "transcription.temperature":
                try:
                    value = float(value)
                except ValueError:
                    raise ConfigError([f"{variable}: must be a number"])
            self.set(key_path, value)
            logger.debug(f"Configuration key '{key_path}' overridden by {variable}")

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'transcription.model').

        Args:
            key_path: Dot-separated key path
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'transcription.language')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        for key in keys[:-1]:
            if key not in config_dict:
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value

    def validate(self) -> List[str]:
        """Return a list of problems; empty when the configuration is usable."""
        errors = []
        backend = self.get('transcription.backend')
        if backend not in ("mistral", "google"):
            errors.append(f"transcription.backend: unknown backend '{backend}'")

        api_key = self.get('transcription.api_key')
        if backend == "mistral" and (not api_key or not isinstance(api_key, str)):
            errors.append("api_key: must be a non-empty string")
        if backend == "google" and not self.get('google_cloud.credentials_path'):
            errors.append("google_cloud.credentials_path: required for the google backend")

        model = self.get('transcription.model')
        if not model or not isinstance(model, str):
            errors.append("model: must be a non-empty string")

        temperature = self.get('transcription.temperature')
        if temperature is not None:
            if (isinstance(temperature, bool) or not isinstance(temperature, (int, float))
                    or temperature != temperature or not 0 <= temperature <= 2):
                errors.append("temperature: must be a number between 0 and 2")

        for key in POSITIVE_INT_KEYS:
            value = self.get(key)
            if not _is_number(value) or value <= 0 or not float(value).is_integer():
                errors.append(f"{key}: must be a positive integer")
        for key in POSITIVE_KEYS:
            if not _is_number(self.get(key)) or self.get(key) <= 0:
                errors.append(f"{key}: must be a positive number")
        for key in NON_NEGATIVE_KEYS:
            if not _is_number(self.get(key)) or self.get(key) < 0:
                errors.append(f"{key}: must be a non-negative number")
        return errors

    def require_valid(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigError(errors)

    def save(self) -> None:
        """Write the configuration back to its file, readable by the owner only."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.config_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, sort_keys=False)
        os.chmod(self.config_file, 0o600)
        logger.info(f"Configuration saved to {self.config_file}")

    def segmentation_settings(self) -> SegmentationSettings:
        return SegmentationSettings(
            sample_rate=int(self.get('audio.sample_rate')),
            channels=int(self.get('audio.channels')),
            window_ms=int(self.get('audio.window_ms')),
            silence_threshold=int(self.get('audio.silence_threshold')),
            silence_timeout_seconds=float(self.get('segmentation.silence_timeout_seconds')),
            pause_timeout_seconds=float(self.get('segmentation.pause_timeout_seconds')),
            min_recording_ms=int(self.get('segmentation.min_recording_ms')),
            max_silence_ms=int(self.get('segmentation.max_silence_ms')),
            pad_ms=int(self.get('segmentation.pad_ms')),
        )

    def transcription_options(self) -> TranscriptionOptions:
        return TranscriptionOptions(
            model=self.get('transcription.model'),
            language=self.get('transcription.language') or "",
            temperature=self.get('transcription.temperature'),
            context_bias=self.get('transcription.context_bias') or "",
            timestamp_granularities=list(self.get('transcription.timestamp_granularities') or []),
            diarize=bool(self.get('transcription.diarize')),
        )

    def get_transcription_timeout(self) -> float:
        return float(self.get('transcription.timeout_seconds', 30.0))
