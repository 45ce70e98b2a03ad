"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, validate_clean_layer
from .layers import LayerValidationReport, LayerValidator

__all__ = [
    "DataValidator",
    "ValidationResult",
    "validate_clean_layer",
    "LayerValidationReport",
    "LayerValidator",
]
