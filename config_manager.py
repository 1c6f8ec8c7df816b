"""
Configuration manager for the Production Assistant.
Provides validation, caching, and type-safe configuration handling.
"""

import json
from dataclasses import asdict, dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

logger = logging.getLogger(__name__)

RACE_POLICIES = ("last_write_wins", "latest_request_wins")


@dataclass
class ApiConfig:
    """API configuration with validation"""
    model: str = "gemini-2.5-pro"
    fast_model: str = "gemini-2.5-flash"
    max_tokens: int = 8192
    temperature: float = 0.7
    timeout: int = 300
    max_retries: int = 3
    retry_delay: float = 2.0

    def __post_init__(self):
        """Validate configuration values"""
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"Temperature must be between 0.0 and 2.0, got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")
        if self.timeout < 1:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries cannot be negative, got {self.max_retries}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay cannot be negative, got {self.retry_delay}")


@dataclass
class ProductionConfig:
    """Defaults for story and asset generation"""
    default_story_type: str = "Peaceful countryside life"
    default_length: str = "Short"
    asset_sample_scenes: int = 8
    max_suggested_assets: int = 5
    default_palette: List[str] = field(default_factory=lambda: ["#E6E2D3", "#7C9473"])

    def __post_init__(self):
        """Validate production configuration"""
        if self.asset_sample_scenes < 1:
            raise ValueError(f"asset_sample_scenes must be positive, got {self.asset_sample_scenes}")
        if self.max_suggested_assets < 1:
            raise ValueError(f"max_suggested_assets must be positive, got {self.max_suggested_assets}")


@dataclass
class LanguageConfig:
    """Language of the localized half of every text pair"""
    default: str = "en"
    supported: List[str] = field(default_factory=lambda: ["en", "vi", "ja"])

    def __post_init__(self):
        """Validate language configuration"""
        if self.default not in self.supported:
            raise ValueError(f"Default language '{self.default}' not in supported languages")


@dataclass
class UIConfig:
    """UI configuration"""
    show_progress: bool = True


@dataclass
class AuditConfig:
    """Continuity audit behaviour"""
    reaudit_after_fix: bool = True
    race_policy: str = "last_write_wins"

    def __post_init__(self):
        if self.race_policy not in RACE_POLICIES:
            raise ValueError(f"race_policy must be one of {list(RACE_POLICIES)}")


@dataclass
class AppConfig:
    """Complete application configuration"""
    api: ApiConfig = field(default_factory=ApiConfig)
    production: ProductionConfig = field(default_factory=ProductionConfig)
    language: LanguageConfig = field(default_factory=LanguageConfig)
    ui: UIConfig = field(default_factory=UIConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)


SECTIONS = {
    "api": ApiConfig,
    "production": ProductionConfig,
    "language": LanguageConfig,
    "ui": UIConfig,
    "audit": AuditConfig,
}


class ConfigManager:
    """Configuration manager with caching and validation"""

    _instance: Optional['ConfigManager'] = None
    _config_cache: Dict[str, AppConfig] = {}

    def __new__(cls) -> 'ConfigManager':
        """Singleton pattern for global configuration access"""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @lru_cache(maxsize=32)
    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration as dictionary with caching"""
        return asdict(AppConfig())

    def load_config(self, config_path: Union[str, Path] = "config.json") -> AppConfig:
        """Load configuration from file with validation and caching.

        An invalid section is reported and replaced by its defaults; the
        remaining sections keep their overrides.
        """
        config_path = Path(config_path)

        cache_key = str(config_path.absolute())
        if cache_key in self._config_cache:
            cached_time = getattr(self._config_cache[cache_key], '_load_time', 0)
            if not config_path.exists() or config_path.stat().st_mtime <= cached_time:
                return self._config_cache[cache_key]

        config_dict = self._get_default_config()

        if config_path.exists():
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    user_config = json.load(f)

                if isinstance(user_config, dict):
                    config_dict = self._deep_merge_config(config_dict, user_config)
                    logger.info(f"Loaded configuration from {config_path}")
                else:
                    logger.warning(f"{config_path} does not hold a JSON object. Using defaults.")

            except json.JSONDecodeError as e:
                logger.warning(f"Invalid JSON in {config_path}: {e}. Using defaults.")
            except IOError as e:
                logger.warning(f"Error reading {config_path}: {e}. Using defaults.")
        else:
            logger.info(f"Config file {config_path} not found, using defaults.")

        for error in self.validate_config(config_dict):
            logger.error(f"Configuration validation error: {error}. Using section defaults.")

        config = self._build_config(config_dict)
        # Add load time for cache invalidation
        config._load_time = config_path.stat().st_mtime if config_path.exists() else 0
        self._config_cache[cache_key] = config
        return config

    @staticmethod
    def _build_section(section: str, values: Any):
        config_cls = SECTIONS[section]
        try:
            return config_cls(**values)
        except (ValueError, TypeError):
            return config_cls()

    def _build_config(self, config_dict: Dict[str, Any]) -> AppConfig:
        return AppConfig(**{
            section: self._build_section(section, config_dict.get(section, {}))
            for section in SECTIONS
        })

    def _deep_merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge user configuration with defaults"""
        result = default.copy()

        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def validate_config(self, config_dict: Dict[str, Any]) -> List[str]:
        """Validate configuration dictionary and return list of errors"""
        errors = []
        for section, config_cls in SECTIONS.items():
            values = config_dict.get(section, {})
            try:
                if not isinstance(values, dict):
                    raise TypeError(f"expected an object, got {type(values).__name__}")
                config_cls(**values)
            except (ValueError, TypeError) as e:
                errors.append(f"{section} config error: {e}")

        return errors

    def clear_cache(self) -> None:
        """Clear configuration cache"""
        self._config_cache.clear()
        self._get_default_config.cache_clear()


# Global configuration manager instance
config_manager = ConfigManager()
