"""Bulk validation of many records against one schema.

A Schema is read-only and every validate() call builds its own result, so
records are validated on a thread pool without any locking.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from recordcast.engine import validate
from recordcast.logging import get_validation_logger
from recordcast.result import ValidationResult, traverse_errors
from recordcast.schema import Schema
from recordcast.settings import get_settings

__all__ = ["BatchReport", "validate_many", "validate_frame", "frame_records"]


@dataclass
class BatchReport:
    """Summary of a batch validation run.

    Attributes:
        schema: Name of the schema validated against
        results: One ValidationResult per input, in input order
        elapsed_seconds: Wall-clock time of the run
    """

    schema: str
    results: List[ValidationResult] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def valid_count(self) -> int:
        return sum(1 for r in self.results if r.valid)

    @property
    def invalid_count(self) -> int:
        return self.total - self.valid_count

    @property
    def all_valid(self) -> bool:
        return self.invalid_count == 0

    def errors_by_row(self) -> Dict[int, Dict[str, Any]]:
        """Nested error maps keyed by input position, invalid rows only."""
        return {
            index: traverse_errors(result)
            for index, result in enumerate(self.results)
            if result.invalid
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        return {
            "schema": self.schema,
            "total": self.total,
            "valid": self.valid_count,
            "invalid": self.invalid_count,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "errors": {str(k): v for k, v in self.errors_by_row().items()},
        }


def validate_many(
    schema: Schema,
    inputs: Iterable[Any],
    bindings: Iterable[Tuple[str, Any]] = (),
    *,
    max_workers: Optional[int] = None,
) -> BatchReport:
    """Validate every input against a schema on a thread pool.

    Args:
        schema: Schema descriptor shared by all validations
        inputs: Raw records (anything validate() accepts)
        bindings: External bindings passed to every validation
        max_workers: Pool size (defaults to settings.max_workers)

    Returns:
        BatchReport with results in input order
    """
    records: Sequence[Any] = list(inputs)
    external = list(bindings.items() if isinstance(bindings, Mapping) else bindings or ())
    if max_workers is None:
        max_workers = get_settings().max_workers
    max_workers = max(1, min(max_workers, len(records) or 1))

    logger = get_validation_logger(__name__, schema=schema.name, batch_size=len(records))
    logger.info("Validating %d record(s) with %d worker(s)", len(records), max_workers)

    started = time.monotonic()
    results: List[Optional[ValidationResult]] = [None] * len(records)

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_index = {
            executor.submit(validate, schema, record, external): index
            for index, record in enumerate(records)
        }
        for future in as_completed(future_to_index):
            index = future_to_index[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.error("Unexpected error validating record %d: %s", index, e, exc_info=True)
                raise
            logger.record_outcome(index, results[index])

    report = BatchReport(
        schema=schema.name,
        results=[r for r in results if r is not None],
        elapsed_seconds=time.monotonic() - started,
    )

    logger.metric("records_total", report.total, unit="records")
    logger.metric("records_valid", report.valid_count, unit="records")
    logger.metric("records_invalid", report.invalid_count, unit="records")
    logger.metric(
        "errors_total", sum(r.error_count for r in report.results), unit="errors"
    )
    logger.metric("elapsed_seconds", round(report.elapsed_seconds, 3), unit="seconds")
    logger.info(
        "Batch complete: %d valid, %d invalid out of %d total",
        report.valid_count,
        report.invalid_count,
        report.total,
    )
    return report


def frame_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as plain dicts, with NaN/NaT/None all turned into None."""
    if df.empty:
        return []
    cleaned = df.astype(object).where(pd.notna(df), None)
    return cleaned.to_dict("records")


def validate_frame(
    schema: Schema,
    df: pd.DataFrame,
    bindings: Iterable[Tuple[str, Any]] = (),
    *,
    max_workers: Optional[int] = None,
) -> BatchReport:
    """Validate each row of a DataFrame.

    Example:
        >>> df = pd.DataFrame({"age": ["5", "-1"]})
        >>> report = validate_frame(person, df)
        >>> report.invalid_count
        1
    """
    return validate_many(schema, frame_records(df), bindings, max_workers=max_workers)
