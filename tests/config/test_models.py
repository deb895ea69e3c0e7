"""Tests for config/models.py validators."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from bucketstore.config.models import (
    BucketStoreConfig,
    DatabaseConfig,
    LimitsConfig,
    LogOutputConfig,
)


class TestLogOutputConfig:
    @pytest.mark.parametrize("destination", ["stderr", "stdout"])
    def test_stream_destinations(self, destination: str) -> None:
        assert LogOutputConfig(destination=destination).destination == destination

    def test_absolute_file_destination(self, tmp_path: Path) -> None:
        target = tmp_path / "bucketstore.log"
        assert LogOutputConfig(destination=str(target)).destination == str(target)

    def test_relative_file_destination_rejected(self) -> None:
        """Log files must be absolute so the working directory cannot change where they land."""
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="logs/bucketstore.log")


class TestDatabaseConfig:
    def test_negative_busy_timeout_rejected(self) -> None:
        with pytest.raises(ValidationError):
            DatabaseConfig(busy_timeout_ms=-1)

    def test_zero_busy_timeout_allowed(self) -> None:
        assert DatabaseConfig(busy_timeout_ms=0).busy_timeout_ms == 0


class TestLimitsConfig:
    @pytest.mark.parametrize("field", ["max_data_per_page", "query_timeout_ms", "max_issues"])
    @pytest.mark.parametrize("value", [0, -5])
    def test_non_positive_rejected(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            LimitsConfig(**{field: value})


class TestBucketStoreConfig:
    def test_sections_are_independent_instances(self) -> None:
        first = BucketStoreConfig()
        second = BucketStoreConfig()
        first.limits.max_issues = 3
        assert second.limits.max_issues == 100

    def test_default_logging_output(self) -> None:
        [output] = BucketStoreConfig().logging.outputs
        assert output.format == "console"
        assert output.destination == "stderr"
