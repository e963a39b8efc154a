"""
Custom exceptions for warehouse loading library.
"""

from typing import Any, Dict, List, Optional


class WarehouseLoadingError(Exception):
    """Base exception for warehouse loading library."""

    def __init__(self, message: str, error_code: str = None, entity: str = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.entity = entity

    def details(self) -> Dict[str, Any]:
        """Extra fields describing the failure, overridden by subclasses."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a structured dictionary."""
        result = {
            "error": self.message,
            "error_code": self.error_code,
            "entity": self.entity,
        }
        result.update(self.details())
        return result


class SchemaMismatchError(WarehouseLoadingError):
    """Exception raised when an extract does not match the destination's shape."""

    def __init__(self, message: str, entity: str = None,
                 missing_columns: Optional[List[str]] = None,
                 unexpected_columns: Optional[List[str]] = None):
        super().__init__(message, "SCHEMA_MISMATCH", entity)
        self.missing_columns = sorted(missing_columns or [])
        self.unexpected_columns = sorted(unexpected_columns or [])

    def details(self) -> Dict[str, Any]:
        return {
            "missing_columns": self.missing_columns,
            "unexpected_columns": self.unexpected_columns,
        }


class MissingKeyError(WarehouseLoadingError):
    """Exception raised when an incoming row has a null natural key."""

    def __init__(self, message: str, entity: str = None,
                 key_columns: Optional[List[str]] = None, row_index: int = None):
        super().__init__(message, "MISSING_KEY", entity)
        self.key_columns = list(key_columns or [])
        self.row_index = row_index

    def details(self) -> Dict[str, Any]:
        return {"key_columns": self.key_columns, "row_index": self.row_index}


class DuplicateKeyError(WarehouseLoadingError):
    """Exception raised when incoming rows cannot be reduced to one per natural key."""

    def __init__(self, message: str, entity: str = None, natural_key: tuple = None):
        super().__init__(message, "DUPLICATE_KEY", entity)
        self.natural_key = natural_key

    def details(self) -> Dict[str, Any]:
        key = None if self.natural_key is None else [str(v) for v in self.natural_key]
        return {"natural_key": key}


class CommitFailureError(WarehouseLoadingError):
    """Exception raised when storage rejects a ChangeSet commit."""

    def __init__(self, message: str, entity: str = None, operation: str = None):
        super().__init__(message, "COMMIT_FAILURE", entity)
        self.operation = operation

    def details(self) -> Dict[str, Any]:
        return {"operation": self.operation}


class ConfigurationError(WarehouseLoadingError):
    """Exception raised when configuration is invalid."""

    def __init__(self, message: str, config_field: str = None, entity: str = None):
        super().__init__(message, "CONFIGURATION_ERROR", entity)
        self.config_field = config_field

    def details(self) -> Dict[str, Any]:
        return {"config_field": self.config_field}


class ProcessingError(WarehouseLoadingError):
    """Exception raised when a load fails outside the other error kinds."""

    def __init__(self, message: str, entity: str = None, processing_step: str = None):
        super().__init__(message, "PROCESSING_ERROR", entity)
        self.processing_step = processing_step

    def details(self) -> Dict[str, Any]:
        return {"processing_step": self.processing_step}
