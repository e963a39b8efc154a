"""
Command line entry point for running model loads.

Usage:
    warehouse-loading run models/scd_raw_listings.yml
    warehouse-loading run models/fct_reviews.yml --log-level DEBUG
    warehouse-loading validate-history models/scd_raw_listings.yml

Every failure exits with status 1 and prints the structured error as JSON
on stderr. A successful run prints its metrics as JSON on stdout.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .common.config_loader import ModelConfig, load_model_config
from .common.exceptions import ConfigurationError, ProcessingError, WarehouseLoadingError
from .incremental.incremental_loader import IncrementalLoader
from .scd_type2.snapshot_processor import SnapshotProcessor
from .storage.base import TableStore

logger = logging.getLogger(__name__)


def create_delta_store(app_name: str, model: ModelConfig) -> TableStore:
    """Start a local Spark session with Delta Lake and wrap it in a store."""
    from delta import configure_spark_with_delta_pip
    from pyspark.sql import SparkSession

    from .storage.delta_store import DeltaTableStore

    builder = (SparkSession.builder
               .appName(app_name)
               .config("spark.sql.extensions", "io.delta.sql.DeltaSparkSessionExtension")
               .config("spark.sql.catalog.spark_catalog",
                       "org.apache.spark.sql.delta.catalog.DeltaCatalog"))
    spark = configure_spark_with_delta_pip(builder).getOrCreate()

    same_type_as = {}
    if model.kind == "snapshot":
        same_type_as[model.config.valid_to_column] = model.config.valid_from_column
    return DeltaTableStore(spark, same_type_as=same_type_as)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warehouse-loading",
        description="Run incremental fact loads and SCD Type 2 snapshots",
    )
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--app-name", default="warehouse-loading",
                        help="Spark application name")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the load described by a model file")
    run_parser.add_argument("model", help="Path to the model YAML file")
    run_parser.add_argument("--run-timestamp", default=None,
                            help="ISO-8601 run timestamp for snapshots (default: now)")

    validate_parser = subparsers.add_parser(
        "validate-history", help="Check interval integrity of a snapshot's history table"
    )
    validate_parser.add_argument("model", help="Path to the snapshot model YAML file")
    return parser


def run_model(model: ModelConfig, store: TableStore, run_timestamp: Optional[str] = None) -> dict:
    """
    Run one model load.

    Args:
        model: Loaded model configuration
        store: Storage holding source and destination tables
        run_timestamp: Optional snapshot run timestamp

    Returns:
        Metrics dictionary
    """
    if model.kind == "snapshot":
        processor = SnapshotProcessor(model.config, store)
        metrics = processor.process_table(model.source_table, run_timestamp)
    else:
        if run_timestamp is not None:
            raise ConfigurationError("--run-timestamp only applies to snapshots",
                                     config_field="run_timestamp")
        metrics = IncrementalLoader(model.config, store).load(model.source_table)
    return metrics.to_dict()


def main(argv: Optional[List[str]] = None, store: Optional[TableStore] = None) -> int:
    """
    Parse arguments and run a command.

    Args:
        argv: Command line arguments, defaults to sys.argv
        store: Storage to use instead of a Delta store

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s:%(name)s:%(message)s",
    )

    try:
        model = load_model_config(args.model)
        if store is None:
            store = create_delta_store(args.app_name, model)

        if args.command == "run":
            result = run_model(model, store, args.run_timestamp)
        else:
            if model.kind != "snapshot":
                raise ConfigurationError("validate-history requires a snapshot model",
                                         config_field="kind")
            validation = SnapshotProcessor(model.config, store).validate_history()
            result = validation.to_dict()
            if not validation.is_valid:
                print(json.dumps(result, default=str), file=sys.stderr)
                return 1
    except WarehouseLoadingError as e:
        logger.error(f"{e.error_code}: {e.message}")
        print(json.dumps(e.to_dict(), default=str), file=sys.stderr)
        return 1
    except Exception as e:
        error = ProcessingError(f"Command {args.command} failed: {str(e)}", processing_step=args.command)
        logger.exception(f"{error.error_code}: {error.message}")
        print(json.dumps(error.to_dict(), default=str), file=sys.stderr)
        return 1

    print(json.dumps(result, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
