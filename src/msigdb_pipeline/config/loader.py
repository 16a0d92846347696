"""Read pipeline configuration from YAML."""

from pathlib import Path
from typing import Any

import pydantic_yaml

from msigdb_pipeline.exceptions import InvalidArgumentError

from .schema import PipelineConfig


def load_config(config_path: Path | str) -> PipelineConfig:
    """
    Parse and validate a YAML configuration file.

    Raises:
        FileNotFoundError: If the file is missing
        pydantic.ValidationError: If a value is out of range or a required
            path is absent
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    return pydantic_yaml.parse_yaml_file_as(PipelineConfig, path)


def _set_dotted(values: dict[str, Any], dotted_key: str, value: Any) -> None:
    *sections, field = dotted_key.split(".")
    node = values
    for section in sections:
        if not isinstance(node.get(section), dict):
            raise InvalidArgumentError(f"Unknown config section in override {dotted_key!r}")
        node = node[section]
    node[field] = value


def load_config_with_overrides(
    config_path: Path | str,
    overrides: dict[str, Any],
) -> PipelineConfig:
    """
    Load a config file, then replace individual values.

    The CLI uses this for --release and --species.

    Args:
        config_path: YAML configuration file
        overrides: Dotted key -> value, e.g. {"msigdb.release": "2023.2"}

    Returns:
        PipelineConfig re-validated after the overrides
    """
    values = load_config(config_path).model_dump()
    for dotted_key, value in overrides.items():
        _set_dotted(values, dotted_key, value)

    return PipelineConfig.model_validate(values)
