#!/usr/bin/env python3
"""
Configuration loading for the DHH review guard.

Implements cascading configuration:
1. Built-in defaults
2. Global defaults (~/.claude/dhh-review.yaml)
3. Project config (.claude/dhh-review.yaml) - committed to repo
4. Local overrides (.claude/dhh-review.local.yaml) - gitignored

Invalid values are reported on stderr and replaced by their defaults;
loading config never raises.
"""
import copy
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

import yaml


DEFAULT_CONFIG = {
    'enabled': True,
    'max_reinforcements': 10,
    'stale_after_seconds': 7200,
    'logging': {
        'level': 'error',
        'destinations': ['file'],
    },
}

LOG_LEVELS = {'debug', 'info', 'warning', 'error'}
LOG_DESTINATIONS = {'file', 'stderr'}

CONFIG_FILENAME = 'dhh-review.yaml'
LOCAL_CONFIG_FILENAME = 'dhh-review.local.yaml'


def load_yaml(path: Path) -> dict:
    """
    Load a YAML config file.

    Args:
        path: Path to config file

    Returns:
        Parsed config dictionary (empty dict if missing or invalid)
    """
    if not path.exists():
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding='utf-8'))
    except yaml.YAMLError as e:
        print(f"⚠️ YAML parse error in {path}: {e}", file=sys.stderr)
        return {}
    except OSError as e:
        print(f"⚠️ Could not load {path}: {e}", file=sys.stderr)
        return {}

    if data is None:
        return {}
    if not isinstance(data, dict):
        print(f"⚠️ Config {path} must be a mapping, got {type(data).__name__}", file=sys.stderr)
        return {}
    return data


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge override into base dictionary.

    Recursively merges nested dictionaries. Non-dict values are replaced.

    Args:
        base: Base dictionary (modified in place)
        override: Dictionary with values to merge

    Returns:
        Merged dictionary (same as base)
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def write_local_config(project_dir: str, config_data: dict) -> Path:
    """
    Write configuration to the local override file.

    Args:
        project_dir: Project directory
        config_data: Configuration data to write

    Returns:
        Path to the file that was written

    Raises:
        OSError: If write fails
    """
    claude_dir = Path(project_dir) / '.claude'
    claude_dir.mkdir(parents=True, exist_ok=True)

    local_file = claude_dir / LOCAL_CONFIG_FILENAME
    with open(local_file, 'w', encoding='utf-8') as f:
        yaml.safe_dump(
            config_data,
            f,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    return local_file


class ReviewConfig:
    """
    Configuration manager for the review guard.

    Loads and merges configuration from global, project, and local sources.
    """

    def __init__(self, project_dir: Optional[str] = None, global_dir: Optional[Path] = None):
        """
        Initialize config for project.

        Args:
            project_dir: Project root directory (None = global config only)
            global_dir: Directory holding the global config (default ~/.claude)
        """
        self.project_dir = project_dir
        self.global_dir = Path(global_dir) if global_dir else Path.home() / '.claude'
        self.validation_errors: list[str] = []
        self._config = self._load_cascade()

    def _load_cascade(self) -> dict:
        config = copy.deepcopy(DEFAULT_CONFIG)

        global_config = load_yaml(self.global_dir / CONFIG_FILENAME)
        project_config: dict = {}
        local_config: dict = {}

        if self.project_dir:
            claude_dir = Path(self.project_dir) / '.claude'
            project_config = load_yaml(claude_dir / CONFIG_FILENAME)
            local_config = load_yaml(claude_dir / LOCAL_CONFIG_FILENAME)

        # Project config may opt out of the global layer
        if project_config.get('inherit', True):
            deep_merge(config, global_config)
        deep_merge(config, project_config)
        deep_merge(config, local_config)
        config.pop('inherit', None)

        self._validate(config)
        return config

    def _validate(self, config: dict) -> None:
        """Replace invalid values with defaults, recording what was wrong."""
        checks = [
            ('enabled', lambda v: isinstance(v, bool), "must be boolean"),
            ('max_reinforcements',
             lambda v: isinstance(v, int) and not isinstance(v, bool) and v >= 0,
             "must be a non-negative integer"),
            ('stale_after_seconds',
             lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0,
             "must be a positive number"),
        ]
        for key, is_valid, problem in checks:
            if not is_valid(config.get(key)):
                self._reject(f"'{key}' {problem}, got {config.get(key)!r}")
                config[key] = DEFAULT_CONFIG[key]

        logging_config = config.get('logging')
        if not isinstance(logging_config, dict):
            self._reject(f"'logging' must be a mapping, got {type(logging_config).__name__}")
            config['logging'] = copy.deepcopy(DEFAULT_CONFIG['logging'])
            return

        level = logging_config.get('level', 'error')
        if not isinstance(level, str) or level.lower() not in LOG_LEVELS:
            allowed = ', '.join(sorted(LOG_LEVELS))
            self._reject(f"'logging.level' must be one of: {allowed}")
            logging_config['level'] = 'error'

        destinations = logging_config.get('destinations', ['file'])
        if isinstance(destinations, str):
            destinations = [destinations]
        if not isinstance(destinations, list):
            self._reject("'logging.destinations' must be a list")
            destinations = ['file']
        unknown = [d for d in destinations if d not in LOG_DESTINATIONS]
        if unknown:
            self._reject(f"'logging.destinations' has unknown entries: {unknown}")
            destinations = [d for d in destinations if d in LOG_DESTINATIONS]
        logging_config['destinations'] = destinations

        if 'file' in logging_config and not isinstance(logging_config['file'], str):
            self._reject("'logging.file' must be a path string")
            del logging_config['file']

    def _reject(self, message: str) -> None:
        print(f"⚠️ Config validation error: {message}", file=sys.stderr)
        self.validation_errors.append(message)

    def get_validation_errors(self) -> list[str]:
        """Return any validation errors encountered while loading config."""
        return list(self.validation_errors)

    def is_enabled(self) -> bool:
        return self._config['enabled']

    def get_max_reinforcements(self) -> int:
        return self._config['max_reinforcements']

    def get_stale_after(self) -> timedelta:
        return timedelta(seconds=self._config['stale_after_seconds'])

    def get_logging_config(self) -> dict:
        return dict(self._config['logging'])

    def get_raw_config(self) -> dict:
        return copy.deepcopy(self._config)
