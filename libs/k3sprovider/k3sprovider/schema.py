"""
Schema loading and validation for resources.yaml.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import jsonschema
import yaml

from .types import ProviderFile

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "resources.yaml"


def get_schema_path() -> Path:
    """Get path to the packaged JSON schema file."""
    return Path(__file__).parent / "schemas" / "resources-schema.json"


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema for resources.yaml."""
    with open(get_schema_path()) as f:
        return json.load(f)


def validate_config(data: Any) -> List[str]:
    """
    Validate resources.yaml data against JSON schema.

    Returns list of validation errors (empty if valid).
    """
    if data is None:
        return ["configuration is empty"]

    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{path}: {error.message}" if path else error.message)
    return errors


def load_config(
    path: str = DEFAULT_CONFIG_FILE,
    validate: bool = True,
    environ: Optional[Mapping[str, str]] = None,
) -> ProviderFile:
    """
    Load and parse resources.yaml file.

    Args:
        path: Path to resources.yaml file
        validate: Whether to validate against schema
        environ: Environment used for KUBE_* fallbacks (default: os.environ)

    Returns:
        Parsed ProviderFile

    Raises:
        FileNotFoundError: If resources.yaml not found
        ValueError: If validation fails
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"{DEFAULT_CONFIG_FILE} not found at {path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    if validate:
        errors = validate_config(data)
        if errors:
            raise ValueError(f"{path} validation failed:\n" + "\n".join(errors))

    config = ProviderFile.from_dict(data, environ)
    logger.debug(f"Loaded {len(config.resources)} resources from {path}")
    return config


def find_config() -> Optional[Path]:
    """
    Find resources.yaml by searching up from current directory.

    Returns:
        Path to resources.yaml or None if not found
    """
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        candidate = parent / DEFAULT_CONFIG_FILE
        if candidate.exists():
            return candidate
    return None
