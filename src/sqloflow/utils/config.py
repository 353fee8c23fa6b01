"""Configuration management for sqloflow.

Settings live in the ``[sqloflow]`` table of sqloflow.toml in the current
working directory:

    [sqloflow]
    dialect = "postgres"
    output_format = "mermaid"
    schema_format = "csv"
    cache_expressions = true
"""

import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from rich.console import Console
from rich.markup import escape

from sqloflow.global_models import OutputFormat, SchemaFormat

console = Console(stderr=True)

CONFIG_FILE_NAME = "sqloflow.toml"
CONFIG_SECTION = "sqloflow"


class ConfigSettings(BaseModel):
    """Defaults for the sqloflow commands.

    Unset fields are None; command line options always win over them.
    Format names are validated against the supported formats and stored as
    their plain string values.
    """

    model_config = ConfigDict(use_enum_values=True)

    dialect: Optional[str] = Field(None, description="SQL dialect used for parsing")
    output_format: Optional[OutputFormat] = Field(
        None, description="Default format of `sqloflow convert`"
    )
    schema_format: Optional[SchemaFormat] = Field(
        None, description="Default format of `sqloflow schema`"
    )
    cache_expressions: Optional[bool] = Field(
        None, description="Memoize printed expressions during conversion"
    )

    @field_validator("dialect", "output_format", "schema_format", mode="before")
    @classmethod
    def _normalize_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


def find_config_file(start_path: Optional[Path] = None) -> Optional[Path]:
    """Return the sqloflow.toml of a directory (default: cwd), if there is one."""
    config_path = (start_path or Path.cwd()) / CONFIG_FILE_NAME
    return config_path if config_path.is_file() else None


def _read_section(config_path: Path) -> Dict[str, Any]:
    data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    section = data.get(CONFIG_SECTION, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{CONFIG_SECTION}] must be a table")
    return section


def _fallback(message: str) -> ConfigSettings:
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")
    console.print("[yellow]Using default settings[/yellow]")
    return ConfigSettings()


def load_config(config_path: Optional[Path] = None) -> ConfigSettings:
    """Load settings from sqloflow.toml.

    Args:
        config_path: Explicit config file. When omitted, sqloflow.toml in the
            current working directory is used if present.

    Returns:
        The settings, or empty settings when there is no file. A file that
        cannot be read, parsed or validated produces a warning on stderr and
        empty settings; unknown keys are ignored.
    """
    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            return ConfigSettings()

    try:
        section = _read_section(config_path)
    except tomllib.TOMLDecodeError as e:
        return _fallback(f"Failed to parse {config_path}: {e}")
    except (OSError, ValueError) as e:
        return _fallback(f"Could not read {config_path}: {e}")

    try:
        return ConfigSettings.model_validate(section)
    except ValidationError as e:
        return _fallback(f"Invalid configuration in {config_path}: {e}")
