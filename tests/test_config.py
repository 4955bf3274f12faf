"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for catalog configs.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from spend_audit.config.loader import load_catalog_config
from spend_audit.core.catalog import DEFAULT_CATALOG


class TestCatalogConfigLoading:
    """Test catalog configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "catalog.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def _write_text(self, text: str, filename: str = "catalog.yaml") -> str:
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write(text)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a standalone catalog loads correctly."""
        config_data = {
            "models": {
                "o4-mini": {
                    "display_name": "o4-mini",
                    "input": 1.10,
                    "output": 4.40,
                    "thinking": 4.40,
                    "thinking_alert_threshold": 3.0,
                    "alternative": "gpt-5-mini",
                },
                "GPT-5-Mini": {
                    "input": 0.25,
                    "output": 2.00,
                },
            }
        }

        catalog = load_catalog_config(self._write_config(config_data))

        assert len(catalog) == 2
        o4 = catalog.get("o4-mini")
        assert o4.has_thinking
        assert o4.cost_per_million_thinking == 4.40
        assert o4.thinking_ratio_alert_threshold == 3.0
        assert o4.alternative_model_id == "gpt-5-mini"
        assert not o4.is_legacy

        # Ids are normalized; display name defaults to the id
        mini = catalog.get("gpt-5-mini")
        assert mini.display_name == "gpt-5-mini"
        assert not mini.has_thinking

    def test_legacy_tax_marks_model_legacy(self):
        config_data = {
            "extends_default": True,
            "models": {
                "gpt-4-turbo": {
                    "input": 10.0,
                    "output": 30.0,
                    "legacy_tax": 0.5,
                    "alternative": "gpt-5.2",
                },
            },
        }
        catalog = load_catalog_config(self._write_config(config_data))
        spec = catalog.get("gpt-4-turbo")
        assert spec.is_legacy
        assert spec.legacy_tax_ratio == 0.5

    def test_extends_default_layers_over_builtin_catalog(self):
        """Test that overrides replace built-in entries and keep the rest."""
        config_data = {
            "extends_default": True,
            "models": {
                "gpt-5.2": {"display_name": "GPT-5.2", "input": 1.50, "output": 12.00},
            },
        }
        catalog = load_catalog_config(self._write_config(config_data))
        assert catalog.get("gpt-5.2").cost_per_million_input == 1.50
        assert catalog.get("o3") == DEFAULT_CATALOG.get("o3")
        assert len(catalog) == len(DEFAULT_CATALOG)

    def test_extends_default_with_no_models(self):
        config_data = {"extends_default": True, "models": {}}
        catalog = load_catalog_config(self._write_config(config_data))
        assert catalog.model_ids() == DEFAULT_CATALOG.model_ids()

    def test_missing_file_raises_error(self):
        with pytest.raises(FileNotFoundError, match="Catalog config file not found"):
            load_catalog_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_empty_file_raises_error(self):
        with pytest.raises(ValueError, match="Configuration file is empty"):
            load_catalog_config(self._write_text(""))

    def test_invalid_yaml_raises_error(self):
        with pytest.raises(yaml.YAMLError, match="Invalid YAML"):
            load_catalog_config(self._write_text("models: [unclosed\n"))

    def test_non_dict_config_raises_error(self):
        with pytest.raises(ValueError, match="must be a dictionary"):
            load_catalog_config(self._write_config(["gpt-5.2"]))

    def test_unknown_top_level_key_raises_error(self):
        config_data = {"models": {"x": {"input": 1, "output": 1}}, "budget": 5}
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_catalog_config(self._write_config(config_data))

    def test_non_bool_extends_default_raises_error(self):
        config_data = {"extends_default": "yes", "models": {}}
        with pytest.raises(ValueError, match="'extends_default' must be true or false"):
            load_catalog_config(self._write_config(config_data))

    def test_missing_models_section_raises_error(self):
        with pytest.raises(ValueError, match="Missing required 'models' section"):
            load_catalog_config(self._write_config({"extends_default": True}))

    def test_models_not_dict_raises_error(self):
        with pytest.raises(ValueError, match="'models' must be a dictionary"):
            load_catalog_config(self._write_config({"models": ["gpt-5.2"]}))

    def test_empty_models_without_default_raises_error(self):
        with pytest.raises(ValueError, match="at least one model"):
            load_catalog_config(self._write_config({"models": {}}))

    def test_model_entry_not_dict_raises_error(self):
        with pytest.raises(ValueError, match="Model 'gpt-5.2' must be a dictionary"):
            load_catalog_config(self._write_config({"models": {"gpt-5.2": 1.75}}))

    def test_missing_rate_raises_error(self):
        config_data = {"models": {"gpt-5.2": {"input": 1.75}}}
        with pytest.raises(ValueError, match="Missing required 'output' in models.gpt-5.2"):
            load_catalog_config(self._write_config(config_data))

    def test_negative_rate_raises_error(self):
        config_data = {"models": {"gpt-5.2": {"input": -1, "output": 14}}}
        with pytest.raises(ValueError, match="'input' in models.gpt-5.2 must be a number >= 0"):
            load_catalog_config(self._write_config(config_data))

    def test_boolean_rate_raises_error(self):
        config_data = {"models": {"gpt-5.2": {"input": True, "output": 14}}}
        with pytest.raises(ValueError, match="must be a number"):
            load_catalog_config(self._write_config(config_data))

    def test_unknown_model_key_raises_error(self):
        config_data = {"models": {"gpt-5.2": {"input": 1, "output": 1, "cached_input": 0.1}}}
        with pytest.raises(ValueError, match="Unknown keys in models.gpt-5.2"):
            load_catalog_config(self._write_config(config_data))

    def test_threshold_requires_thinking_rate(self):
        config_data = {"models": {"o9": {"input": 1, "output": 1, "thinking_alert_threshold": 2.0}}}
        with pytest.raises(ValueError, match="requires a 'thinking' rate"):
            load_catalog_config(self._write_config(config_data))

    def test_non_positive_threshold_raises_error(self):
        config_data = {
            "models": {"o9": {"input": 1, "output": 1, "thinking": 1, "thinking_alert_threshold": 0}}
        }
        with pytest.raises(ValueError, match="must be > 0"):
            load_catalog_config(self._write_config(config_data))

    def test_self_alternative_raises_error(self):
        config_data = {"models": {"gpt-5.2": {"input": 1, "output": 1, "alternative": "GPT-5.2"}}}
        with pytest.raises(ValueError, match="cannot be the model itself"):
            load_catalog_config(self._write_config(config_data))

    def test_undefined_alternative_raises_error(self):
        config_data = {"models": {"gpt-4o": {"input": 2.5, "output": 10, "alternative": "gpt-5.2"}}}
        with pytest.raises(ValueError, match="Alternative 'gpt-5.2' for models.gpt-4o is not defined"):
            load_catalog_config(self._write_config(config_data))
