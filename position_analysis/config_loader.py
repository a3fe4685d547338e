"""
config_loader.py - Load and manage analysis configuration from YAML file.

Seeds, split fraction, linkage method and model settings live in config.yaml
so the analysis can be re-run with different settings without editing code.
The file location can be overridden with the POSITION_ANALYSIS_CONFIG
environment variable.
"""

import copy
import logging
import os
from pathlib import Path
from typing import Dict, Any, List

import yaml

from .constants import (
    DEFAULT_LINKAGE,
    MIN_PLAYERS_PER_POSITION,
    RANDOM_STATE,
    TRAIN_FRACTION,
)

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'POSITION_ANALYSIS_CONFIG'


class ConfigLoader:
    """Load and cache configuration from config.yaml."""

    _instance = None
    _config = None

    def __new__(cls):
        """Singleton pattern - return same instance."""
        if cls._instance is None:
            cls._instance = super(ConfigLoader, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize config loader."""
        if self._config is None:
            self.reload()

    @staticmethod
    def config_path() -> Path:
        """Resolve the config file path (env override, else repository root)."""
        override = os.getenv(CONFIG_ENV_VAR)
        if override:
            return Path(override)
        return Path(__file__).parent.parent / 'config.yaml'

    def reload(self):
        """Load config from YAML file, layering it over the built-in defaults."""
        config_path = self.config_path()
        defaults = self._get_default_config()

        if not config_path.exists():
            logger.warning(f"Config file not found at {config_path}. Using defaults.")
            self._config = defaults
            return

        try:
            with open(config_path, 'r') as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.warning(f"Error parsing config {config_path}: {e}. Using defaults.")
            self._config = defaults
            return

        self._config = _deep_merge(defaults, loaded)
        logger.info(f"Configuration loaded from {config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get config value by dot-notation path.

        Args:
            key: Path to config value (e.g., 'models.knn.k_grid')
            default: Default value if key not found

        Returns:
            Config value or default
        """
        parts = key.split('.')
        value = self._config

        for part in parts:
            if isinstance(value, dict):
                value = value.get(part)
                if value is None:
                    return default
            else:
                return default

        return value if value is not None else default

    def get_random_state(self) -> int:
        """Seed threaded into every randomised step of the run."""
        return int(self.get('analysis.random_state', RANDOM_STATE))

    def get_train_fraction(self) -> float:
        return float(self.get('analysis.train_fraction', TRAIN_FRACTION))

    def get_clustering_config(self) -> Dict[str, Any]:
        return self.get('clustering', {})

    def get_model_config(self, model_name: str) -> Dict[str, Any]:
        """Get the settings block for one model family (may be empty)."""
        return self.get(f'models.{model_name}', {})

    def get_enabled_models(self) -> List[str]:
        return list(self.get('models.enabled', []))

    @staticmethod
    def _get_default_config() -> Dict[str, Any]:
        """
        Return default configuration if YAML file not found.
        This should match config.yaml defaults.
        """
        return {
            'data': {
                'csv_path': 'data/premier_league_players_processed.csv',
            },
            'analysis': {
                'random_state': RANDOM_STATE,
                'train_fraction': TRAIN_FRACTION,
            },
            'clustering': {
                'linkage': DEFAULT_LINKAGE,
                'min_players': MIN_PLAYERS_PER_POSITION,
                'n_clusters': 4,
            },
            'models': {
                'enabled': [
                    'svm_linear', 'svm_radial', 'svm_polynomial',
                    'random_forest', 'ranger', 'knn', 'treebag', 'lda',
                ],
                'svm': {
                    'cost': 1.0,
                    'degree': 3,
                },
                'random_forest': {
                    'n_estimators': 500,
                },
                'ranger': {
                    'n_estimators': 500,
                    'max_features_grid': ['sqrt', 0.5, 1.0],
                },
                'knn': {
                    'k_grid': [5, 7, 9],
                    'cv_folds': 5,
                },
                'treebag': {
                    'n_estimators': 25,
                },
            },
            'output': {
                'reports_dir': 'reports',
                'log_file': 'logs/analysis.log',
            },
        }


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively overlay ``override`` on a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def get_config() -> ConfigLoader:
    """Get global config instance (singleton)."""
    return ConfigLoader()
