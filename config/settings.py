"""
Configuration management for voicestream.

Loads settings from ~/.voicestream/config.toml with fallback to defaults.
The Dialogflow project comes from the PROJECT_ID environment variable.
"""
import os
import logging
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass

from core.audio.capture import AudioConfig
from core.audio.playback import PlaybackConfig, PlaybackPolicy
from core.recognition.session import StreamConfig
from core.tts.google_tts import SynthesisConfig
from utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_ID_ENV = "PROJECT_ID"

# Default configuration values
DEFAULT_CONFIG = {
    "audio": {
        "sample_rate": 16000,
        "chunk_size_ms": 100,
        "silence_threshold": 500.0,
        "silence_seconds": 10.0
    },
    "recognition": {
        "project_id": "",
        "language_code": "en-US",
        "encoding": "LINEAR16",
        "output_encoding": "LINEAR16",
        "turn_timeout_ms": 3000,
        "completion_timeout_ms": 15000
    },
    "playback": {
        "policy": "serialize"
    },
    "synthesis": {
        "language_code": "en-US",
        "voice_name": "en-US-Wavenet-D"
    },
    "timers": {
        "alert_path": "alarms/spaceship_alarm.wav"
    },
    "ui": {
        "hotkey": "<ctrl>+<alt>+<space>",
        "verbose": False,
        "quiet": False
    }
}


@dataclass
class VoiceStreamConfig:
    """Main configuration class for voicestream."""
    audio: Dict[str, Any]
    recognition: Dict[str, Any]
    playback: Dict[str, Any]
    synthesis: Dict[str, Any]
    timers: Dict[str, Any]
    ui: Dict[str, Any]

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> 'VoiceStreamConfig':
        """
        Load configuration from file with fallback to defaults.

        Args:
            config_path: Path to config file (defaults to ~/.voicestream/config.toml)

        Returns:
            VoiceStreamConfig instance with merged settings
        """
        if config_path is None:
            config_path = Path.home() / ".voicestream" / "config.toml"
        else:
            config_path = Path(config_path)

        config_data = _deep_merge(DEFAULT_CONFIG, {})

        if config_path.exists():
            try:
                with open(config_path, "rb") as f:
                    user_config = tomllib.load(f)

                config_data = _deep_merge(config_data, user_config)
                logger.info(f"Loaded configuration from {config_path}")

            except (OSError, tomllib.TOMLDecodeError) as e:
                logger.warning(f"Failed to load config from {config_path}: {e}")
                logger.info("Using default configuration")
        else:
            logger.info(f"Config file not found at {config_path}, using defaults")

            try:
                config_path.parent.mkdir(parents=True, exist_ok=True)
                _create_example_config(config_path)
            except OSError as e:
                logger.warning(f"Could not create example config: {e}")

        env_project = os.environ.get(PROJECT_ID_ENV)
        if env_project:
            config_data["recognition"]["project_id"] = env_project

        unknown = set(config_data) - set(DEFAULT_CONFIG)
        for section in unknown:
            logger.warning(f"Ignoring unknown config section [{section}]")
            config_data.pop(section)

        return cls(**config_data)

    @property
    def project_id(self) -> str:
        """
        Dialogflow project the conversation runs against.

        Raises:
            ConfigurationError: if PROJECT_ID is not set
        """
        project_id = self.recognition.get("project_id")
        if not project_id:
            raise ConfigurationError(
                f"{PROJECT_ID_ENV} is not set; export it to the Dialogflow project id"
            )
        return project_id

    def stream_config(self) -> StreamConfig:
        rec = self.recognition
        return StreamConfig(
            encoding=rec["encoding"],
            sample_rate_hz=self.audio["sample_rate"],
            language_code=rec["language_code"],
            output_encoding=rec["output_encoding"],
            output_sample_rate_hz=self.audio["sample_rate"],
            completion_timeout_ms=rec.get("completion_timeout_ms") or None,
        )

    def audio_config(self) -> AudioConfig:
        return AudioConfig(
            sample_rate=self.audio["sample_rate"],
            chunk_size_ms=self.audio["chunk_size_ms"],
            silence_threshold=float(self.audio["silence_threshold"]),
            silence_seconds=float(self.audio["silence_seconds"]),
        )

    def playback_config(self) -> PlaybackConfig:
        try:
            policy = PlaybackPolicy(self.playback["policy"])
        except ValueError as e:
            raise ConfigurationError(f"Unknown playback policy: {self.playback['policy']!r}") from e
        return PlaybackConfig(sample_rate=self.audio["sample_rate"], policy=policy)

    def synthesis_config(self) -> SynthesisConfig:
        return SynthesisConfig(
            language_code=self.synthesis["language_code"],
            voice_name=self.synthesis["voice_name"],
            sample_rate_hz=self.audio["sample_rate"],
        )

    @property
    def turn_timeout_ms(self) -> Optional[int]:
        return self.recognition.get("turn_timeout_ms") or None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries without mutating either."""
    result = {
        key: _deep_merge(value, {}) if isinstance(value, dict) else value
        for key, value in base.items()
    }

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _create_example_config(config_path: Path) -> None:
    """Create an example configuration file."""
    header = """# voicestream configuration
# This file was auto-generated with default values.
# The Dialogflow project is read from the PROJECT_ID environment variable.

"""

    with open(config_path, "w") as f:
        f.write(header + _dict_to_toml(DEFAULT_CONFIG))

    logger.info(f"Created example config at {config_path}")


def _dict_to_toml(data: Dict[str, Any], section: str = "") -> str:
    """Convert a two-level dictionary to TOML (simple implementation)."""
    lines = []
    tables = []

    for key, value in data.items():
        if isinstance(value, dict):
            name = f"{section}.{key}" if section else key
            tables.append(f"\n[{name}]\n" + _dict_to_toml(value, name))
        elif isinstance(value, bool):
            lines.append(f'{key} = {str(value).lower()}')
        elif isinstance(value, (int, float)):
            lines.append(f'{key} = {value}')
        else:
            lines.append(f'{key} = "{value}"')

    return "\n".join(lines) + "".join(tables)


# Convenience function
def load_config(config_path: Optional[str] = None) -> VoiceStreamConfig:
    """Load voicestream configuration from file or defaults."""
    return VoiceStreamConfig.load(config_path)
