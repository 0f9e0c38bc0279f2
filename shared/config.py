"""
Configuration for the recommendation service and the rebuild jobs

Values come from config.yaml beside this module, or from the file named by
FRIEND_CONFIG_PATH. In test mode, numeric values found under the test_mode
section replace their regular counterparts.
"""
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import yaml

from shared.errors import ConfigError

DEFAULT_CONFIG_PATH = Path(__file__).parent / "config.yaml"
CONFIG_PATH_ENV = 'FRIEND_CONFIG_PATH'

_MISSING = object()


def _walk(tree: Any, keys: Sequence[str]) -> Any:
    for key in keys:
        if not isinstance(tree, dict) or key not in tree:
            return _MISSING
        tree = tree[key]
    return tree


class Config:
    def __init__(self, config_path: Optional[str] = None, test_mode: bool = False):
        self.test_mode = test_mode
        self.config_path = self._resolve_path(config_path)
        self._config = self._load_config(self.config_path)

    @staticmethod
    def _resolve_path(config_path: Optional[str]) -> Path:
        config_path = config_path or os.getenv(CONFIG_PATH_ENV)
        return Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    @staticmethod
    def _load_config(config_path: Path) -> Dict[str, Any]:
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")

        try:
            with config_path.open('r') as f:
                loaded = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")
        except OSError as e:
            raise ConfigError(f"Could not read {config_path}: {e}")

        if not isinstance(loaded, dict):
            raise ConfigError(f"{config_path} must hold a mapping at the top level")
        return loaded

    def get(self, path: str, default: Any = None) -> Any:
        """
        Dotted lookup such as get('discovery.sample_size')

        Args:
            path: Dot separated keys
            default: Returned when any key along the path is missing

        Returns:
            The configured value, or its test_mode override for numbers
        """
        keys = path.split('.')
        value = _walk(self._config, keys)
        if value is _MISSING:
            return default

        if self.test_mode and isinstance(value, (int, float)) and not isinstance(value, bool):
            override = _walk(self._config.get('test_mode', {}), keys)
            if override is not _MISSING:
                return override
        return value

    def section(self, name: str) -> Dict[str, Any]:
        value = self.get(name, {})
        return value if isinstance(value, dict) else {}

    def get_redis_config(self) -> Dict[str, Any]:
        return self.section('redis')

    def get_discovery_config(self) -> Dict[str, Any]:
        return self.section('discovery')

    def get_ranking_config(self) -> Dict[str, Any]:
        return self.section('ranking')

    def get_interaction_config(self) -> Dict[str, Any]:
        return self.section('interaction')

    def get_rebuild_config(self) -> Dict[str, Any]:
        return self.section('rebuild')


def load_bigquery_settings() -> Tuple[Dict[str, Any], str]:
    """Service account info and project id from BIGQUERY_CREDENTIALS_JSON / BIGQUERY_PROJECT_ID"""
    try:
        credentials_json = json.loads(os.environ['BIGQUERY_CREDENTIALS_JSON'])
        project_id = os.environ['BIGQUERY_PROJECT_ID']
    except KeyError as e:
        raise ConfigError(f"Missing environment variable {e.args[0]}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"BIGQUERY_CREDENTIALS_JSON is not valid JSON: {e}")
    return credentials_json, project_id


_global_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None, test_mode: bool = False) -> Config:
    """Shared Config, rebuilt when a path is given or test_mode changes"""
    global _global_config

    if _global_config is None or config_path is not None or _global_config.test_mode != test_mode:
        _global_config = Config(config_path, test_mode)
    return _global_config


def reset_config():
    global _global_config
    _global_config = None
