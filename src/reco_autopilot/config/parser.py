"""YAML configuration parser for the autopilot service."""

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import ValidationError

from .models import AutopilotConfig

DEFAULT_CONFIG_FILE = "autopilot.yaml"

# Environment variables that override values from the YAML file
ENV_OVERRIDES = {
    "GITHUB_ACCOUNT": ("github", "account"),
    "GITHUB_HOST": ("github", "host"),
    "GITHUB_TOKEN": ("github", "token"),
    "RECOMMENDER_TOKEN": ("recommender", "token"),
    "COMMIT_INDEX_TABLE": ("commit_index", "table_name"),
    "AUTOPILOT_LOG_LEVEL": ("log_level",),
}


class ConfigValidationError(Exception):
    """The configuration could not be parsed or does not match the schema.

    Attributes:
        errors: One {"loc": [...], "msg": str} entry per problem
    """

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def __str__(self) -> str:
        problems = [
            f"  - {' -> '.join(str(part) for part in error.get('loc', []))}: {error.get('msg', 'Unknown error')}"
            for error in self.errors
        ]
        return "\n".join([self.message, ""] + problems) if problems else self.message


class Config:
    """Loads the process configuration from YAML and the environment.

    Args:
        config_path: Path to autopilot.yaml. When omitted, AUTOPILOT_CONFIG
            or ./autopilot.yaml is used if present.
        environ: Environment mapping, defaults to os.environ
    """

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ
        self.explicit_path = config_path is not None or "AUTOPILOT_CONFIG" in self.environ
        self.config_path = Path(config_path or self.environ.get("AUTOPILOT_CONFIG", DEFAULT_CONFIG_FILE))
        self.data: Dict[str, Any] = {}
        self.settings: Optional[AutopilotConfig] = None

    def load(self) -> AutopilotConfig:
        """Read the file if there is one, overlay the environment, validate.

        Raises:
            ConfigValidationError: Unparseable YAML or schema violations
            FileNotFoundError: An explicitly named file is missing
        """
        self.data = self._read_file()
        self._apply_environment()

        problems = self.validate()
        if problems:
            raise ConfigValidationError(f"Invalid configuration ({len(problems)} problem(s))", problems)
        return self.settings

    def _read_file(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            if self.explicit_path:
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")
            return {}

        try:
            data = yaml.safe_load(self.config_path.read_text())
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")
        return data

    def validate(self) -> List[Dict]:
        """Build AutopilotConfig from the loaded data.

        Returns:
            Problems found, empty when ``self.settings`` was built
        """
        if not (self.data.get("github") or {}).get("account"):
            return [{
                "loc": ["github", "account"],
                "msg": "Required; set github.account or the GITHUB_ACCOUNT environment variable",
            }]

        try:
            self.settings = AutopilotConfig(**self.data)
        except ValidationError as e:
            return [{"loc": list(error["loc"]), "msg": error["msg"]} for error in e.errors()]
        return []

    def _apply_environment(self) -> None:
        """Overlay environment variables onto the loaded data."""
        for variable, path in ENV_OVERRIDES.items():
            value = self.environ.get(variable)
            if not value:
                continue

            # GITHUB_ACCOUNT may carry the host as well, e.g. "github.com:acme"
            if variable == "GITHUB_ACCOUNT" and ":" in value:
                host, value = value.split(":", 1)
                self._set(("github", "host"), host)

            self._set(path, value)

    def _set(self, path, value: Any) -> None:
        section = self.data
        for key in path[:-1]:
            if not isinstance(section.get(key), dict):
                section[key] = {}
            section = section[key]
        section[path[-1]] = value
