import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "AGENT_ID_CONFIG"


class ConfigManager:
    """Read-only access to the JSON configuration file"""

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """Initialize the configuration manager

        Args:
            config_file: Path to the JSON file. Defaults to $AGENT_ID_CONFIG,
                then ``config.json`` in the current working directory.
        """
        self.config_file = Path(config_file or os.environ.get(CONFIG_PATH_ENV) or "config.json")
        self.config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration file; a missing file yields an empty configuration"""
        if not self.config_file.exists():
            return {}
        with open(self.config_file, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.config_file} must contain a JSON object")
        logger.debug("Loaded configuration from %s", self.config_file)
        return data

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration item using a dotted path ("identity.chains.80002")"""
        keys = key.split('.')
        value = self.config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def list_config(self) -> Dict[str, Any]:
        """List all configuration items"""
        return self.config
