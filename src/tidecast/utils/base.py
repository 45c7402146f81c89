"""Base classes for upstream data pipelines."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ValidationResult:
    """Result of data validation.

    Attributes:
        valid: Whether the data passed all validation checks
        total_rows: Total number of rows/records in the dataset
        missing_pct: Percentage of missing values (0-100)
        outliers_count: Number of outlier values detected
        issues: List of validation issues found
        stats: Dictionary of summary statistics
    """

    valid: bool
    total_rows: int
    missing_pct: float
    outliers_count: int = 0
    issues: list[str] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        status = "VALID" if self.valid else "INVALID"
        return (
            f"ValidationResult({status}, "
            f"rows={self.total_rows}, "
            f"missing={self.missing_pct:.1f}%, "
            f"outliers={self.outliers_count})"
        )


class BasePipeline(ABC):
    """Abstract base class for upstream ingestion pipelines.

    A pipeline turns a raw upstream payload into a DataFrame via ``process``
    and reports on its quality via ``validate``.
    """

    @abstractmethod
    def process(self, payload: Any) -> Any:
        """Convert a raw upstream payload into a standardized structure.

        Args:
            payload: Decoded upstream response

        Returns:
            Processed data (usually a DataFrame)
        """
        pass

    @abstractmethod
    def validate(self, data: Any) -> ValidationResult:
        """Validate data for quality and completeness.

        Args:
            data: Data to validate (DataFrame, list, etc.)

        Returns:
            ValidationResult with quality metrics and issues
        """
        pass
