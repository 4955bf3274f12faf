"""
Configuration management and loading.

Loads model catalog overrides from YAML so pricing can be updated at
deploy time without a code change.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from spend_audit.core.catalog import (
    DEFAULT_CATALOG,
    ModelCatalog,
    ModelSpec,
    catalog_from_mapping,
    normalize_model_id,
)

ALLOWED_TOP_KEYS = {'models', 'extends_default'}
ALLOWED_MODEL_KEYS = {
    'display_name',
    'input',
    'output',
    'thinking',
    'legacy_tax',
    'alternative',
    'thinking_alert_threshold',
}


def load_catalog_config(path: str) -> ModelCatalog:
    """Load and validate a model catalog from a YAML file.

    Strict validation ensures no silent mispricing: unknown keys,
    missing rates and dangling alternatives are all rejected.

    Example::

        extends_default: true
        models:
          o4-mini:
            display_name: o4-mini
            input: 1.10
            output: 4.40
            thinking: 4.40
            thinking_alert_threshold: 3.0
            alternative: gpt-5-mini

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated ModelCatalog

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Catalog config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    unknown_keys = set(raw_config.keys()) - ALLOWED_TOP_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    extends_default = raw_config.get('extends_default', False)
    if not isinstance(extends_default, bool):
        raise ValueError("'extends_default' must be true or false")

    if 'models' not in raw_config:
        raise ValueError("Missing required 'models' section")

    models_data = raw_config['models']
    if not isinstance(models_data, dict):
        raise ValueError("'models' must be a dictionary")
    if not models_data and not extends_default:
        raise ValueError("'models' must define at least one model")

    specs: Dict[str, ModelSpec] = {}
    for model_id, model_data in models_data.items():
        if not isinstance(model_id, str) or not model_id.strip():
            raise ValueError(f"Model id {model_id!r} must be a non-empty string")
        if not isinstance(model_data, dict):
            raise ValueError(f"Model '{model_id}' must be a dictionary")
        key = normalize_model_id(model_id)
        specs[key] = _parse_model_config(key, model_data, f"models.{model_id}")

    catalog = catalog_from_mapping(specs, DEFAULT_CATALOG if extends_default else None)

    for spec in catalog:
        if spec.alternative_model_id and spec.alternative_model_id not in catalog:
            raise ValueError(
                f"Alternative '{spec.alternative_model_id}' for models.{spec.model_id} "
                "is not defined in the catalog"
            )

    return catalog


def _rate(data: Dict[str, Any], key: str, path: str, required: bool) -> Optional[float]:
    if key not in data:
        if required:
            raise ValueError(f"Missing required '{key}' in {path}")
        return None
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ValueError(f"'{key}' in {path} must be a number >= 0")
    return float(value)


def _parse_model_config(model_id: str, data: Dict[str, Any], path: str) -> ModelSpec:
    """Parse and validate a single model entry.

    Args:
        model_id: Normalized model id
        data: Model configuration data
        path: Path for error messages

    Returns:
        Validated ModelSpec

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(data.keys()) - ALLOWED_MODEL_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    input_rate = _rate(data, 'input', path, required=True)
    output_rate = _rate(data, 'output', path, required=True)
    thinking_rate = _rate(data, 'thinking', path, required=False)
    legacy_tax = _rate(data, 'legacy_tax', path, required=False) or 0.0

    threshold = data.get('thinking_alert_threshold')
    if threshold is not None:
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or threshold <= 0:
            raise ValueError(f"'thinking_alert_threshold' in {path} must be > 0")
        if thinking_rate is None:
            raise ValueError(f"'thinking_alert_threshold' in {path} requires a 'thinking' rate")
        threshold = float(threshold)

    alternative = data.get('alternative')
    if alternative is not None:
        if not isinstance(alternative, str) or not alternative.strip():
            raise ValueError(f"'alternative' in {path} must be a model id")
        alternative = normalize_model_id(alternative)
        if alternative == model_id:
            raise ValueError(f"'alternative' in {path} cannot be the model itself")

    display_name = data.get('display_name', model_id)
    if not isinstance(display_name, str) or not display_name.strip():
        raise ValueError(f"'display_name' in {path} must be a non-empty string")

    return ModelSpec(
        model_id=model_id,
        display_name=display_name.strip(),
        cost_per_million_input=input_rate,
        cost_per_million_output=output_rate,
        cost_per_million_thinking=thinking_rate,
        has_thinking=thinking_rate is not None,
        is_legacy=legacy_tax > 0,
        legacy_tax_ratio=legacy_tax,
        alternative_model_id=alternative,
        thinking_ratio_alert_threshold=threshold,
    )
