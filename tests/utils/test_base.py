"""Tests for base pipeline classes."""

import pytest

from tidecast.utils.base import BasePipeline, ValidationResult


class TestValidationResult:
    """Tests for ValidationResult dataclass."""

    def test_create_valid_result(self):
        """Should create a valid result."""
        result = ValidationResult(
            valid=True,
            total_rows=48,
            missing_pct=0.0,
        )
        assert result.valid is True
        assert result.total_rows == 48
        assert result.outliers_count == 0
        assert result.issues == []
        assert result.stats == {}

    def test_create_invalid_result_with_issues(self):
        """Should create an invalid result with issues."""
        result = ValidationResult(
            valid=False,
            total_rows=10,
            missing_pct=25.0,
            issues=["Unparseable values: 5", "Duplicate timestamps: 1"],
        )
        assert result.valid is False
        assert len(result.issues) == 2

    def test_str_valid(self):
        """Should format valid result as string."""
        s = str(ValidationResult(valid=True, total_rows=48, missing_pct=0.0, outliers_count=0))
        assert "VALID" in s
        assert "48" in s
        assert "0.0%" in s

    def test_str_invalid(self):
        """Should format invalid result as string."""
        s = str(ValidationResult(valid=False, total_rows=2, missing_pct=50.0, outliers_count=1))
        assert "INVALID" in s
        assert "outliers=1" in s


class TestBasePipeline:
    """Tests for the BasePipeline abstract class."""

    def test_cannot_instantiate(self):
        """Should not be instantiable without process and validate."""
        with pytest.raises(TypeError):
            BasePipeline()

    def test_concrete_subclass(self):
        """A subclass implementing both methods works."""

        class Echo(BasePipeline):
            def process(self, payload):
                return list(payload)

            def validate(self, data):
                return ValidationResult(valid=bool(data), total_rows=len(data), missing_pct=0.0)

        pipeline = Echo()
        data = pipeline.process((1, 2))
        assert data == [1, 2]
        assert pipeline.validate(data).valid
