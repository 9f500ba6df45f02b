"""Configuration loading and validation."""

import os
import json
import hashlib
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field
import jsonschema

from .errors import ConfigError, DefinitionError


class RunnerConfig(BaseModel):
    """Automation runner limits."""
    max_automation_depth: int = Field(default=5, ge=1, le=50)
    track_automation_chain: bool = Field(default=True)


class TransportConfig(BaseModel):
    """Outbound HTTP and email delivery."""
    http_timeout_seconds: float = Field(default=10.0, gt=0)
    email_endpoint: Optional[str] = Field(default=None)
    default_headers: dict[str, str] = Field(default_factory=dict)


class StoreConfig(BaseModel):
    """SQLite locations for definitions, logs and records."""
    database_path: str = Field(default="./data/automations.db")
    records_path: str = Field(default="./data/records.db")


class SchedulerConfig(BaseModel):
    """Schedule and date-approaching trigger polling."""
    enabled: bool = Field(default=True)
    tick_interval_seconds: int = Field(default=60, ge=1)


class ServerConfig(BaseModel):
    """HTTP entrypoint."""
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, ge=1, le=65535)


class EngineConfig(BaseModel):
    """Main engine configuration."""
    name: str = Field(default="automation-engine")
    version: str = Field(default="0.1.0")

    # Module configs
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    transport: TransportConfig = Field(default_factory=TransportConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    # Paths
    automations_directory: str = Field(default="./config/automations")
    pages_directory: str = Field(default="./config/pages")
    data_directory: str = Field(default="./data")

    # Seconds between checks of definition files; 0 disables reloading
    reload_interval_seconds: int = Field(default=0, ge=0)

    def config_hash(self) -> str:
        """Generate hash of config for change detection."""
        return hashlib.sha256(
            self.model_dump_json().encode()
        ).hexdigest()[:16]


# Structural pre-check for definition files. Per-kind field rules are left to
# the pydantic models so error messages name the failing variant.
_DEFINITION_SCHEMA = {
    "type": "object",
    "required": ["name", "trigger", "actions"],
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string", "minLength": 1},
        "status": {"enum": ["active", "paused"]},
        "trigger": {
            "type": "object",
            "required": ["type"],
            "properties": {"type": {"type": "string"}},
        },
        "conditions": {"type": "array", "items": {"type": "object"}},
        "actions": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["type"],
                "properties": {"type": {"type": "string"}},
            },
        },
    },
}

AUTOMATION_FILE_SCHEMA = {
    "oneOf": [
        {
            "type": "object",
            "required": ["automations"],
            "properties": {"automations": {"type": "array", "items": _DEFINITION_SCHEMA}},
        },
        _DEFINITION_SCHEMA,
    ]
}

PAGE_SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string"},
        "name": {"type": "string"},
        "table": {"type": "string"},
        "actions": {"type": "array", "items": {"type": "object", "required": ["type"]}},
        "quick_automations": {"type": "array", "items": _DEFINITION_SCHEMA},
        "quickAutomations": {"type": "array", "items": _DEFINITION_SCHEMA},
    },
}

PAGE_FILE_SCHEMA = {
    "oneOf": [
        {
            "type": "object",
            "required": ["pages"],
            "properties": {"pages": {"type": "array", "items": PAGE_SCHEMA}},
        },
        PAGE_SCHEMA,
    ]
}


class ConfigLoader:
    """Loads and validates YAML/JSON configurations."""

    def __init__(self, config_dir: str = "./config"):
        self.config_dir = Path(config_dir)
        self._hashes: dict[str, str] = {}
        self._scanned: set[Path] = set()

    def load_engine_config(self, path: Optional[str] = None) -> EngineConfig:
        """
        Load main engine configuration.

        A missing default file yields the built-in defaults; an explicit path
        must exist. DATA_DIR overrides the data directory and store paths.
        """
        if path is None:
            path = self.config_dir / "engine.yaml"
            data = self._load_file(path) if path.exists() else {}
        else:
            path = Path(path)
            data = self._load_file(path)

        try:
            config = EngineConfig(**data)
        except Exception as e:
            raise ConfigError(f"Invalid engine config: {e}", config_path=str(path))

        data_dir = os.environ.get("DATA_DIR")
        if data_dir:
            config.data_directory = data_dir
            config.store.database_path = str(Path(data_dir) / "automations.db")
            config.store.records_path = str(Path(data_dir) / "records.db")

        return config

    def load_automations(self, directory: Optional[str] = None) -> list:
        """Load all automation definitions from directory."""
        from ..rules.models import parse_automation

        definitions = []
        for path, data in self._iter_documents(directory, "automations", AUTOMATION_FILE_SCHEMA):
            for item in data.get("automations", [data] if "trigger" in data else []):
                try:
                    definitions.append(parse_automation(item))
                except DefinitionError as e:
                    raise ConfigError(e.message, config_path=str(path))
        return definitions

    def load_pages(self, directory: Optional[str] = None) -> list:
        """Load all page configurations from directory."""
        from ..pages.models import parse_page

        pages = []
        for path, data in self._iter_documents(directory, "pages", PAGE_FILE_SCHEMA):
            for item in data.get("pages", [data] if "id" in data else []):
                try:
                    pages.append(parse_page(item))
                except DefinitionError as e:
                    raise ConfigError(e.message, config_path=str(path))
        return pages

    def has_config_changed(self, path: str) -> bool:
        """Check if a config file has changed since last load."""
        path = Path(path)
        current_hash = self._compute_file_hash(path)
        previous_hash = self._hashes.get(str(path))
        return current_hash != previous_hash

    def definitions_changed(self) -> bool:
        """Check if any loaded definition directory gained, lost or edited a file."""
        for directory in self._scanned:
            tracked = {p for p in self._hashes if Path(p).is_relative_to(directory)}
            current = {str(p) for p in self._definition_paths(directory)}
            if tracked != current:
                return True
            if any(self.has_config_changed(p) for p in tracked):
                return True
        return False

    @staticmethod
    def _definition_paths(directory: Path) -> list[Path]:
        if not directory.exists():
            return []
        return sorted(
            list(directory.glob("**/*.yaml"))
            + list(directory.glob("**/*.yml"))
            + list(directory.glob("**/*.json"))
        )

    def _iter_documents(self, directory, default_name: str, schema: dict):
        if directory is None:
            directory = self.config_dir / default_name
        else:
            directory = Path(directory)

        # Forget files removed since the last load
        self._scanned.add(directory)
        for stale in [p for p in self._hashes if Path(p).is_relative_to(directory)]:
            del self._hashes[stale]

        for path in self._definition_paths(directory):
            data = self._load_file(path)
            try:
                jsonschema.validate(data, schema)
            except jsonschema.ValidationError as e:
                raise ConfigError(
                    f"Schema validation failed: {e.message}",
                    config_path=str(path)
                )
            yield path, data

    def _load_file(self, path: Path) -> dict[str, Any]:
        """Load YAML or JSON file."""
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}", config_path=str(path))

        try:
            content = path.read_text()
            self._hashes[str(path)] = hashlib.sha256(content.encode()).hexdigest()[:16]

            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(content) or {}
            elif path.suffix == ".json":
                return json.loads(content)
            else:
                raise ConfigError(
                    f"Unsupported config format: {path.suffix}",
                    config_path=str(path)
                )
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}", config_path=str(path))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON: {e}", config_path=str(path))

    def _compute_file_hash(self, path: Path) -> str:
        """Compute hash of file contents."""
        if not path.exists():
            return ""
        content = path.read_text()
        return hashlib.sha256(content.encode()).hexdigest()[:16]
