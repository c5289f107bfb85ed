# leadflow/validator/errors.py
"""Validation finding collection and formatting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

# Finding template: [ERROR] rule: location message
FINDING_TEMPLATE = "[{severity}] {rule}: {location}{message}"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_INFO = "info"

# Display order; summaries and sorted output keep this grouping
SEVERITY_ORDER: Dict[str, int] = {
    SEVERITY_ERROR: 0,
    SEVERITY_WARNING: 1,
    SEVERITY_INFO: 2,
}


@dataclass(frozen=True)
class FlowValidationWarning:
    """Structured validation finding.

    Attributes:
        id: Deterministic finding id (``<rule>-<subject>``).
        severity: "error", "warning" or "info".
        message: Human-readable description.
        rule: Rule that produced the finding.
        node_id: Node the finding is about, if any.
        edge_id: Edge the finding is about, if any.
    """

    id: str
    severity: str
    message: str
    rule: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None

    def format(self) -> str:
        """Format finding as a single line."""
        location = ""
        if self.node_id:
            location = f"node {self.node_id} "
        elif self.edge_id:
            location = f"edge {self.edge_id} "
        return FINDING_TEMPLATE.format(
            severity=self.severity.upper(),
            rule=self.rule,
            location=location,
            message=self.message,
        )

    def sort_key(self) -> int:
        return SEVERITY_ORDER.get(self.severity, len(SEVERITY_ORDER))

    def to_dict(self) -> Dict[str, Any]:
        """Convert finding to dictionary for JSON serialization."""
        result: Dict[str, Any] = {
            "id": self.id,
            "severity": self.severity,
            "message": self.message,
            "rule": self.rule,
        }
        if self.node_id is not None:
            result["nodeId"] = self.node_id
        if self.edge_id is not None:
            result["edgeId"] = self.edge_id
        return result


def sort_by_severity(warnings: List[FlowValidationWarning]) -> List[FlowValidationWarning]:
    """Group findings error, warning, info. Stable within each group."""
    return sorted(warnings, key=lambda w: w.sort_key())


def summarize_warnings(warnings: List[FlowValidationWarning]) -> Dict[str, int]:
    """Count findings per severity, keyed in display order."""
    counts = {severity: 0 for severity in SEVERITY_ORDER}
    for warning in warnings:
        counts[warning.severity] = counts.get(warning.severity, 0) + 1
    return counts


class ValidationReport:
    """Validation findings for one flow, with rendering helpers."""

    def __init__(self, warnings: List[FlowValidationWarning]):
        self.warnings = sort_by_severity(warnings)

    @property
    def errors(self) -> List[FlowValidationWarning]:
        return [w for w in self.warnings if w.severity == SEVERITY_ERROR]

    def has_errors(self) -> bool:
        """Check if any errors were collected."""
        return len(self.errors) > 0

    def counts(self) -> Dict[str, int]:
        return summarize_warnings(self.warnings)

    def format(self) -> str:
        """Render all findings followed by a one-line summary."""
        lines = [w.format() for w in self.warnings]
        counts = self.counts()
        lines.append(
            f"{'FAIL' if self.has_errors() else 'PASS'}: "
            f"{counts[SEVERITY_ERROR]} error(s), "
            f"{counts[SEVERITY_WARNING]} warning(s), "
            f"{counts[SEVERITY_INFO]} info"
        )
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert report to dictionary for JSON serialization."""
        return {
            "warnings": [w.to_dict() for w in self.warnings],
            "counts": self.counts(),
            "valid": not self.has_errors(),
            "status": "FAIL" if self.has_errors() else "PASS",
        }
