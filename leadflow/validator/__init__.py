"""
leadflow/validator - Structural validation of conversation flows.

Usage:
    from leadflow.validator import validate_flow, summarize_warnings

    warnings = validate_flow(flow)
    counts = summarize_warnings(warnings)  # {"error": 1, "warning": 0, "info": 0}
"""

from .errors import (
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_ORDER,
    SEVERITY_WARNING,
    FlowValidationWarning,
    ValidationReport,
    sort_by_severity,
    summarize_warnings,
)
from .rules import is_flow_valid, validate_flow

__all__ = [
    "SEVERITY_ERROR",
    "SEVERITY_WARNING",
    "SEVERITY_INFO",
    "SEVERITY_ORDER",
    "FlowValidationWarning",
    "ValidationReport",
    "sort_by_severity",
    "summarize_warnings",
    "validate_flow",
    "is_flow_valid",
]
