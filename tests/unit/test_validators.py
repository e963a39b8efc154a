"""
Unit tests for SnapshotValidator.
"""

from datetime import datetime

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..', 'src'))

from libraries.warehouse_loading.common.config import SnapshotConfig
from libraries.warehouse_loading.common.exceptions import MissingKeyError, SchemaMismatchError
from libraries.warehouse_loading.scd_type2.validators import SnapshotValidator


def history_row(id, valid_from, valid_to=None, is_current=None):
    if is_current is None:
        is_current = valid_to is None
    return {
        "id": id,
        "surrogate_key": f"{id}-{valid_from}",
        "valid_from": datetime.fromisoformat(valid_from),
        "valid_to": None if valid_to is None else datetime.fromisoformat(valid_to),
        "is_current": is_current,
    }


class TestSnapshotValidator:
    """Test cases for SnapshotValidator."""

    @pytest.fixture
    def config(self):
        return SnapshotConfig(target_table="dim_customers", unique_key="id", updated_at="updated_at")

    @pytest.fixture
    def validator(self, config):
        return SnapshotValidator(config)

    def test_non_null_columns(self, validator):
        assert validator.non_null_columns == ["id", "updated_at"]

    def test_validate_source_data_success(self, validator):
        result = validator.validate_source_data([{"id": 1, "name": "Bob", "updated_at": "2024-01-01"}])

        assert result.is_valid is True
        assert result.errors == []

    def test_validate_source_data_empty(self, validator):
        result = validator.validate_source_data([])

        assert result.is_valid is True
        assert "Incoming extract is empty" in result.warnings

    def test_validate_source_data_missing_columns(self, validator):
        result = validator.validate_source_data([{"id": 1, "name": "Bob"}])

        assert result.is_valid is False
        assert "Missing required columns: ['updated_at']" in result.errors

    def test_validate_source_data_reserved_columns(self, validator):
        result = validator.validate_source_data(
            [{"id": 1, "updated_at": "2024-01-01", "is_current": True}]
        )

        assert result.is_valid is False
        assert "reserved history columns" in result.errors[0]

    def test_check_schema(self, validator):
        destination = ["id", "name", "updated_at", "surrogate_key", "valid_from", "valid_to", "is_current"]

        validator.check_schema([{"id": 1, "name": "Bob", "updated_at": "2024-01-01"}], destination)

        with pytest.raises(SchemaMismatchError) as exc_info:
            validator.check_schema([{"id": 1, "email": "b@x.io", "updated_at": "2024-01-01"}], destination)
        assert exc_info.value.missing_columns == ["name"]
        assert exc_info.value.unexpected_columns == ["email"]

    def test_check_schema_requires_history_columns(self, validator):
        with pytest.raises(SchemaMismatchError, match="missing history columns"):
            validator.check_schema([{"id": 1, "updated_at": "2024-01-01"}], ["id", "updated_at"])

    def test_filter_missing_keys_fail(self, validator):
        records = [{"id": 1, "updated_at": "2024-01-01"}, {"id": None, "updated_at": "2024-01-01"}]

        with pytest.raises(MissingKeyError) as exc_info:
            validator.filter_missing_keys(records)

        assert exc_info.value.row_index == 1
        assert exc_info.value.key_columns == ["id"]

    def test_filter_missing_keys_skip(self, config):
        config.missing_key_policy = "skip"
        validator = SnapshotValidator(config)
        records = [{"id": 1, "updated_at": "2024-01-01"}, {"id": 2, "updated_at": None}]

        kept, rejected = validator.filter_missing_keys(records)

        assert kept == [records[0]]
        assert rejected == 1


class TestValidateHistory:
    """Test cases for interval integrity checks."""

    @pytest.fixture
    def validator(self):
        return SnapshotValidator(
            SnapshotConfig(target_table="dim_customers", unique_key="id", updated_at="updated_at")
        )

    def test_contiguous_history_is_valid(self, validator):
        rows = [
            history_row(1, "2024-01-01", "2024-02-01"),
            history_row(1, "2024-02-01"),
            history_row(2, "2024-01-01"),
        ]

        result = validator.validate_history(rows)

        assert result.is_valid is True
        assert result.warnings == []

    def test_gap_is_a_warning(self, validator):
        rows = [
            history_row(1, "2024-01-01", "2024-02-01"),
            history_row(1, "2024-03-01"),
        ]

        result = validator.validate_history(rows)

        assert result.is_valid is True
        assert len(result.warnings) == 1

    def test_overlap_is_an_error(self, validator):
        rows = [
            history_row(1, "2024-01-01", "2024-03-01"),
            history_row(1, "2024-02-01"),
        ]

        assert validator.validate_history(rows).is_valid is False

    def test_two_open_versions_is_an_error(self, validator):
        rows = [history_row(1, "2024-01-01"), history_row(1, "2024-02-01")]

        result = validator.validate_history(rows)

        assert result.is_valid is False
        assert any("2 open versions" in error for error in result.errors)

    def test_is_current_must_agree_with_valid_to(self, validator):
        rows = [history_row(1, "2024-01-01", "2024-02-01", is_current=True)]

        result = validator.validate_history(rows)

        assert result.is_valid is False

    def test_valid_to_before_valid_from(self, validator):
        rows = [history_row(1, "2024-02-01", "2024-01-01")]
        assert validator.validate_history(rows).is_valid is False
