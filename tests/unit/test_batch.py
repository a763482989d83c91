"""Tests for recordcast/batch.py - bulk validation."""

import logging

import pandas as pd

from recordcast.batch import BatchReport, frame_records, validate_frame, validate_many


class TestValidateMany:
    """Tests for validate_many."""

    def test_preserves_input_order(self, person_schema):
        """Results line up with inputs regardless of completion order."""
        inputs = [{"age": i} for i in range(-5, 45)]
        report = validate_many(person_schema, inputs, max_workers=8)
        assert [r.changes.get("age") for r in report.results] == list(range(-5, 45))
        assert report.invalid_count == 5
        assert report.valid_count == 45

    def test_bindings_passed_to_each(self, person_schema):
        """External bindings reach every validation."""
        from recordcast.expressions import expr
        from recordcast.schema import SchemaBuilder, when

        schema = (
            SchemaBuilder("Person")
            .field("age", "integer", rules=[when(expr("age < min_age"), "too young")])
            .build()
        )
        report = validate_many(schema, [{"age": 10}, {"age": 30}], {"min_age": 18})
        assert [r.valid for r in report.results] == [False, True]

    def test_empty_input(self, person_schema):
        """No inputs gives an empty, valid report."""
        report = validate_many(person_schema, [])
        assert report.total == 0
        assert report.all_valid

    def test_metrics_logged(self, person_schema, caplog):
        """Summary metrics are logged with the schema name."""
        with caplog.at_level(logging.INFO, logger="recordcast.batch"):
            validate_many(person_schema, [{"age": 1}, {}], max_workers=1)
        metrics = {r.metric_name: r.metric_value for r in caplog.records if hasattr(r, "metric_name")}
        assert metrics["records_total"] == 2
        assert metrics["records_valid"] == 1
        assert metrics["records_invalid"] == 1
        assert metrics["errors_total"] == 1
        assert "elapsed_seconds" in metrics
        batch_records = [r for r in caplog.records if r.name == "recordcast.batch"]
        assert all(r.schema == "Person" for r in batch_records)


class TestBatchReport:
    """Tests for BatchReport."""

    def test_errors_by_row(self, person_schema):
        """Only invalid rows appear, keyed by position."""
        report = validate_many(person_schema, [{"age": 1}, {"age": -1}, {}])
        assert report.errors_by_row() == {
            1: {"age": ["must be non-negative"]},
            2: {"age": ["can't be blank"]},
        }

    def test_to_dict(self, person_schema):
        """to_dict summarises counts and errors."""
        data = validate_many(person_schema, [{"age": -1}]).to_dict()
        assert data["schema"] == "Person"
        assert data["total"] == 1
        assert data["invalid"] == 1
        assert data["errors"] == {"0": {"age": ["must be non-negative"]}}

    def test_empty_report(self):
        """A report without results is all valid."""
        assert BatchReport(schema="X").all_valid


class TestValidateFrame:
    """Tests for DataFrame validation."""

    def test_nan_becomes_none(self):
        """Missing values in a frame are None in the records."""
        df = pd.DataFrame({"age": [1.0, float("nan")], "name": ["a", None]})
        assert frame_records(df) == [{"age": 1.0, "name": "a"}, {"age": None, "name": None}]

    def test_empty_frame(self):
        """An empty frame has no records."""
        assert frame_records(pd.DataFrame()) == []

    def test_validate_frame(self, person_schema):
        """Each row is validated."""
        df = pd.DataFrame({"age": ["5", "-1", None]})
        report = validate_frame(person_schema, df)
        assert [r.valid for r in report.results] == [True, False, False]
        assert report.results[2].errors[0].message == "can't be blank"
