"""
Configuration Manager

This module provides utilities to save, load, and manage pipeline configurations
for repeatable QC runs.
"""
import copy
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel

from .pipeline_config import Config

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manages saving, loading, and applying pipeline configurations."""

    def __init__(self, config_dir: Union[str, Path] = "configs"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def save_config(self, config: Config, name: str, description: str = "") -> Path:
        """
        Save a configuration to disk.

        Args:
            config: The pipeline configuration to save
            name: Name for the configuration file
            description: Optional description of the configuration

        Returns:
            Path to the saved configuration file
        """
        timestamp = config.run_timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
        config_path = self.config_dir / f"{name}_{timestamp}.yaml"

        config_dict = config.model_dump(mode="json")
        config_dict['_metadata'] = {
            'name': name,
            'description': description,
            'created_at': timestamp,
            'config_version': '1.0'
        }

        with open(config_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, indent=2)

        logger.info(f"Configuration saved to: {config_path}")
        return config_path

    def load_config(self, config_path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a configuration from disk (YAML, or JSON as written by the reporter).

        Args:
            config_path: Path to the configuration file

        Returns:
            Configuration dictionary
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix in ('.yaml', '.yml'):
                config_dict = yaml.safe_load(f) or {}
            else:
                config_dict = json.load(f)

        logger.info(f"Configuration loaded from: {config_path}")
        return config_dict

    def apply_config(self, base_config: Config, stored_config_path: Union[str, Path],
                     override_params: Optional[Dict[str, Any]] = None) -> Config:
        """
        Apply a stored configuration to a base configuration.

        Args:
            base_config: The base configuration (left unmodified)
            stored_config_path: Path to the stored configuration
            override_params: Optional top-level parameters to override

        Returns:
            New, validated configuration
        """
        stored_config = self.load_config(stored_config_path)

        metadata = stored_config.pop('_metadata', None)
        if metadata:
            logger.info(f"Applying config: {metadata.get('name', 'unnamed')} - {metadata.get('description', '')}")

        merged = self._merge_dicts(base_config.model_dump(), stored_config, base_config)
        if override_params:
            for key, value in override_params.items():
                if key in merged:
                    merged[key] = value
                    logger.info(f"Override applied: {key}={value}")
                else:
                    logger.warning(f"Override key not found in config: {key}")

        return Config.model_validate(merged)

    def list_configs(self) -> List[Dict[str, Any]]:
        """
        List all available configurations with their metadata.

        Returns:
            List of configuration metadata, newest first
        """
        configs = []
        for config_file in sorted(self.config_dir.glob("*.yaml")):
            try:
                config_dict = self.load_config(config_file)
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to read config {config_file}: {e}")
                continue
            metadata = dict(config_dict.get('_metadata', {}))
            metadata['file_path'] = str(config_file)
            configs.append(metadata)

        configs.sort(key=lambda x: str(x.get('created_at', '')), reverse=True)
        return configs

    def _merge_dicts(self, base: Dict[str, Any], stored: Dict[str, Any],
                     model: BaseModel) -> Dict[str, Any]:
        """Merge stored values into a dumped config, recursing into nested models."""
        merged = copy.deepcopy(base)
        for key, value in stored.items():
            if key.startswith('_'):
                continue
            if key not in merged:
                logger.warning(f"Ignoring unknown config field: {key}")
                continue
            current = getattr(model, key, None)
            if isinstance(value, dict) and isinstance(current, BaseModel):
                logger.debug(f"Merging nested config: {key}")
                merged[key] = self._merge_dicts(merged[key], value, current)
            else:
                merged[key] = value
                logger.debug(f"Set config field: {key}={value}")
        return merged
