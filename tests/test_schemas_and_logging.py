"""Tests for analysis schemas, task configs and structured logging."""

import logging

import pytest
from pydantic import ValidationError

from analysis_engine.core.completion_tasks import TASK_CONFIGS, get_task_config
from analysis_engine.core.logging import StructuredFormatter, log_with_context
from analysis_engine.core.schemas_analysis import (
    Entity,
    Relationship,
    SignalAnalysis,
    VisualizationRecommendation,
)


class TestSchemas:
    def test_entity_type_falls_back_to_concept(self):
        assert Entity(text="X", type="Spaceship").type == "concept"
        assert Entity(text="X", type="PERSON").type == "person"

    def test_relationship_type_normalized(self):
        assert Relationship(source="a", target="b", type="depends_on").type == "depends-on"
        assert Relationship(source="a", target="b", type="loves").type == "relates-to"

    def test_signal_scores_reject_bool_and_nan(self):
        with pytest.raises(ValidationError):
            SignalAnalysis(structural=True)
        with pytest.raises(ValidationError):
            SignalAnalysis(structural=float("nan"))

    def test_visualization_type_normalized(self):
        rec = VisualizationRecommendation(type="Executive Dashboard", score=0.7)
        assert rec.type == "executive-dashboard"

    def test_visualization_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            VisualizationRecommendation(type="pie-chart", score=0.7)


class TestTaskConfigs:
    def test_every_stage_has_a_template(self):
        assert set(TASK_CONFIGS) == {
            "tldr",
            "executiveSummary",
            "entityExtraction",
            "signalAnalysis",
            "relationshipDetection",
            "sectionSummary",
            "vizRecommendation",
        }

    def test_unknown_key(self):
        with pytest.raises(ValueError):
            get_task_config("poem")


class TestStructuredLogging:
    def test_context_fields_rendered(self):
        """run_id and stage lead the line; other extras are appended."""
        logger = logging.getLogger("tests.structured")
        logger.propagate = False
        logger.setLevel(logging.INFO)
        records: list[logging.LogRecord] = []

        class _Capture(logging.Handler):
            def emit(self, record):
                records.append(record)

        handler = _Capture()
        logger.addHandler(handler)
        try:
            log_with_context(logger, logging.WARNING, "mismatch", run_id="run-1", stage="relationships", count=2)
        finally:
            logger.removeHandler(handler)

        line = StructuredFormatter().format(records[0])
        assert "run_id=run-1 stage=relationships message=mismatch" in line
        assert line.endswith("count=2")
        assert "level=WARNING" in line
