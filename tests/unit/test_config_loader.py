"""
Unit tests for YAML model configuration loading.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.warehouse_loading.common.config import IncrementalConfig, SnapshotConfig
from libraries.warehouse_loading.common.config_loader import build_model_config, load_model_config
from libraries.warehouse_loading.common.exceptions import ConfigurationError


SNAPSHOT_YAML = """
snapshot:
  source_table: dev.raw_listings
  target_table: dev.scd_raw_listings
  unique_key: id
  strategy: timestamp
  updated_at: updated_at
  invalidate_hard_deletes: true
"""

INCREMENTAL_YAML = """
incremental:
  source_table: dev.src_reviews
  target_table: dev.fct_reviews
  timestamp_column: review_date
  surrogate_key_column: review_id
  surrogate_key_columns: [listing_id, review_date, reviewer_name, review_text]
  required_columns: [review_text]
"""


class TestLoadModelConfig:
    """Test cases for load_model_config."""

    def test_load_snapshot_model(self, tmp_path):
        path = tmp_path / "scd_raw_listings.yml"
        path.write_text(SNAPSHOT_YAML)

        model = load_model_config(path)

        assert model.kind == "snapshot"
        assert model.source_table == "dev.raw_listings"
        assert isinstance(model.config, SnapshotConfig)
        assert model.config.unique_key == ["id"]
        assert model.config.invalidate_hard_deletes is True

    def test_load_incremental_model(self, tmp_path):
        path = tmp_path / "fct_reviews.yml"
        path.write_text(INCREMENTAL_YAML)

        model = load_model_config(str(path))

        assert model.kind == "incremental"
        assert isinstance(model.config, IncrementalConfig)
        assert model.config.surrogate_key_columns == [
            "listing_id", "review_date", "reviewer_name", "review_text"
        ]
        assert model.config.dedup_key == ["review_id"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read model config"):
            load_model_config(tmp_path / "missing.yml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yml"
        path.write_text("snapshot: [unclosed")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_model_config(path)


class TestBuildModelConfig:
    """Test cases for build_model_config."""

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            build_model_config(["snapshot"])

    def test_requires_exactly_one_kind(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_model_config({"snapshot": {}, "incremental": {}})
        assert exc_info.value.config_field == "kind"

        with pytest.raises(ConfigurationError):
            build_model_config({"table": {}})

    def test_requires_source_table(self):
        with pytest.raises(ConfigurationError) as exc_info:
            build_model_config({"incremental": {"target_table": "t", "timestamp_column": "ts"}})
        assert exc_info.value.config_field == "source_table"

    def test_unknown_option(self):
        with pytest.raises(ConfigurationError, match="Unknown incremental options"):
            build_model_config({"incremental": {
                "source_table": "s", "target_table": "t", "timestamp_column": "ts",
                "materialized": "incremental",
            }})

    def test_invalid_values_become_configuration_error(self):
        with pytest.raises(ConfigurationError, match="Invalid snapshot config") as exc_info:
            build_model_config({"snapshot": {
                "source_table": "s", "target_table": "t", "unique_key": "id",
            }})
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert exc_info.value.error_code == "CONFIGURATION_ERROR"
