"""
Configuration loading, validation, and typed models.

Supports:
  - YAML config file (config/config.yaml)
  - Environment variable overrides using the OCI CLI / Data Safe names
    (OCI_CLI_CONFIG_FILE, OCI_CLI_PROFILE, OCI_CLI_REGION, DS_ROOT_COMP)
  - CLI overrides, applied by the command modules on top of the result

Precedence: CLI > environment > YAML > code defaults.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .snapshot import parse_max_age
from .validation import ValidationError

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PROJECT_ROOT",
    "ConfigError",
    "OciConfig",
    "DataSafeConfig",
    "SelectionConfig",
    "TagConfig",
    "ReportConfig",
    "AppConfig",
    "load_config",
]

logger = logging.getLogger(__name__)

# Default config path, relative to the project root
DEFAULT_CONFIG_PATH = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))),
    "config",
    "config.yaml",
)

# Project root directory
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Environment variable names
ENV_OCI_CONFIG_FILE = "OCI_CLI_CONFIG_FILE"
ENV_OCI_PROFILE = "OCI_CLI_PROFILE"
ENV_OCI_REGION = "OCI_CLI_REGION"
ENV_ROOT_COMPARTMENT = "DS_ROOT_COMP"


# ---------------------------------------------------------------------------
# Typed configuration models
# ---------------------------------------------------------------------------

class ConfigError(Exception):
    """Raised when the configuration file is missing or invalid."""


@dataclass(frozen=True)
class OciConfig:
    config_file: str = "~/.oci/config"
    profile: str = "DEFAULT"
    region: str = ""


@dataclass(frozen=True)
class DataSafeConfig:
    root_compartment: str = ""


@dataclass(frozen=True)
class SelectionConfig:
    max_snapshot_age: str = "24h"


@dataclass(frozen=True)
class TagConfig:
    namespace: str = "DBSec"
    environment_key: str = "Environment"
    container_stage_key: str = "ContainerStage"
    container_type_key: str = "ContainerType"
    classification_key: str = "Classification"
    environment_pattern: str = r"^cmp-[^-]+-([^-]+)-projects$"
    environments: tuple[str, ...] = ("test", "qs", "prod")


@dataclass(frozen=True)
class ReportConfig:
    output_dir: str = "reports"


@dataclass(frozen=True)
class AppConfig:
    oci: OciConfig = field(default_factory=OciConfig)
    datasafe: DataSafeConfig = field(default_factory=DataSafeConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    tags: TagConfig = field(default_factory=TagConfig)
    report: ReportConfig = field(default_factory=ReportConfig)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping, got {type(value).__name__}")
    return value


def _str(section: dict, key: str, default: str) -> str:
    value = section.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, (str, int)):
        raise ConfigError(f"Config value '{key}' must be a string")
    return str(value).strip()


def load_config(config_path: str | None = None) -> AppConfig:
    """Load and validate the YAML configuration file.

    A missing file at the default location is fine: the tool then runs on
    code defaults plus environment variables.  An explicitly requested
    file that does not exist is an error.

    Raises:
        ConfigError: If the config file is missing (explicit path) or invalid.
    """
    explicit = config_path is not None and config_path != DEFAULT_CONFIG_PATH
    path = Path(config_path or DEFAULT_CONFIG_PATH)

    raw: dict = {}
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise ConfigError(
                f"Invalid config file format: expected YAML mapping, got {type(raw).__name__}"
            )
        logger.debug("Config loaded from %s", path)
    elif explicit:
        raise ConfigError(
            f"Config file not found: {path}\n"
            "Copy config/config.yaml.example to config/config.yaml and fill in your values."
        )
    else:
        logger.debug("No config file at %s; using defaults and environment", path)

    # --- OCI ---
    oci_section = _section(raw, "oci")
    defaults = OciConfig()
    oci_cfg = OciConfig(
        config_file=os.environ.get(ENV_OCI_CONFIG_FILE)
        or _str(oci_section, "config_file", defaults.config_file),
        profile=os.environ.get(ENV_OCI_PROFILE) or _str(oci_section, "profile", defaults.profile),
        region=os.environ.get(ENV_OCI_REGION) or _str(oci_section, "region", defaults.region),
    )

    # --- Data Safe ---
    ds_section = _section(raw, "datasafe")
    root_comp = os.environ.get(ENV_ROOT_COMPARTMENT) or _str(ds_section, "root_compartment", "")
    if root_comp.startswith("your-"):
        raise ConfigError(
            "Placeholder value in datasafe.root_compartment. "
            f"Set it in config or via the {ENV_ROOT_COMPARTMENT} env var."
        )

    # --- Selection ---
    sel_section = _section(raw, "selection")
    max_age = _str(sel_section, "max_snapshot_age", SelectionConfig().max_snapshot_age)
    try:
        parse_max_age(max_age)
    except ValidationError as e:
        raise ConfigError(f"selection.max_snapshot_age: {e}") from e

    # --- Tags ---
    tag_section = _section(raw, "tags")
    tag_defaults = TagConfig()
    envs = tag_section.get("environments", list(tag_defaults.environments))
    if not isinstance(envs, list) or not all(isinstance(e, str) for e in envs):
        raise ConfigError("tags.environments must be a list of strings")
    pattern = _str(tag_section, "environment_pattern", tag_defaults.environment_pattern)
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"tags.environment_pattern is not a valid regex: {e}") from e
    tag_cfg = TagConfig(
        namespace=_str(tag_section, "namespace", tag_defaults.namespace),
        environment_key=_str(tag_section, "environment_key", tag_defaults.environment_key),
        container_stage_key=_str(tag_section, "container_stage_key", tag_defaults.container_stage_key),
        container_type_key=_str(tag_section, "container_type_key", tag_defaults.container_type_key),
        classification_key=_str(tag_section, "classification_key", tag_defaults.classification_key),
        environment_pattern=pattern,
        environments=tuple(envs),
    )

    # --- Report ---
    rpt_section = _section(raw, "report")
    output_dir = _str(rpt_section, "output_dir", ReportConfig().output_dir)

    config = AppConfig(
        oci=oci_cfg,
        datasafe=DataSafeConfig(root_compartment=root_comp),
        selection=SelectionConfig(max_snapshot_age=max_age),
        tags=tag_cfg,
        report=ReportConfig(output_dir=output_dir),
    )

    logger.debug(
        "Config: profile=%s region=%s root compartment from %s",
        oci_cfg.profile,
        oci_cfg.region or "(profile default)",
        "env" if os.environ.get(ENV_ROOT_COMPARTMENT) else "file",
    )
    return config
