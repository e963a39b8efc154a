"""
YAML model configuration loading.

A model file describes one load, either a dimension snapshot::

    snapshot:
      source_table: dev.dim_listings_cleansed
      target_table: dev.scd_raw_listings
      unique_key: listing_id
      strategy: timestamp
      updated_at: updated_at
      invalidate_hard_deletes: true

or an incremental fact load::

    incremental:
      source_table: dev.src_reviews
      target_table: dev.fct_reviews
      timestamp_column: review_date
      surrogate_key_column: review_id
      surrogate_key_columns: [listing_id, review_date, reviewer_name, review_text]
      required_columns: [review_text]
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Union
import logging

import yaml

from .config import IncrementalConfig, SnapshotConfig
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

MODEL_KINDS = {
    "snapshot": SnapshotConfig,
    "incremental": IncrementalConfig,
}


@dataclass
class ModelConfig:
    """A loaded model: its kind, where it reads from, and its load configuration."""

    kind: str
    source_table: str
    config: Union[SnapshotConfig, IncrementalConfig]


def build_model_config(document: Dict[str, Any]) -> ModelConfig:
    """
    Build a ModelConfig from a parsed YAML document.

    Args:
        document: Mapping with exactly one of the keys in MODEL_KINDS

    Returns:
        ModelConfig for the described load
    """
    if not isinstance(document, dict):
        raise ConfigurationError("Model config must be a mapping")

    kinds = [kind for kind in MODEL_KINDS if kind in document]
    if len(kinds) != 1:
        raise ConfigurationError(
            f"Model config must contain exactly one of {sorted(MODEL_KINDS)}", config_field="kind"
        )
    kind = kinds[0]
    options = dict(document[kind] or {})

    source_table = options.pop("source_table", None)
    if not source_table:
        raise ConfigurationError("source_table is required", config_field="source_table")

    config_class = MODEL_KINDS[kind]
    known = {f.name for f in fields(config_class)}
    unknown = sorted(set(options) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown {kind} options: {unknown}", config_field=unknown[0]
        )

    try:
        config = config_class(**options)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid {kind} config: {e}", config_field=kind) from e

    logger.info(f"Loaded {kind} model {source_table} -> {config.target_table}")
    return ModelConfig(kind=kind, source_table=source_table, config=config)


def load_model_config(path: Union[str, Path]) -> ModelConfig:
    """
    Load a model configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        ModelConfig for the described load
    """
    path = Path(path)
    try:
        document = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read model config {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    return build_model_config(document)
