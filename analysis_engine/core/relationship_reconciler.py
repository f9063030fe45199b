"""Cross-check relationship endpoints against extracted entity ids.

Completions sometimes echo entity names into ``source``/``target`` instead of
the entity ids they were given. This module detects and reports those
mismatches. It never rewrites or drops a relationship; any correction is
left to the consumer of the analysis.
"""

import logging

from analysis_engine.core.logging import get_logger, log_with_context
from analysis_engine.core.schemas_analysis import (
    EndpointMismatch,
    Entity,
    ReconciliationReport,
    Relationship,
)

logger = get_logger(__name__)

SAMPLE_SIZE = 3


def reconcile_relationships(
    entities: list[Entity],
    relationships: list[Relationship],
    run_id: str | None = None,
) -> ReconciliationReport:
    """
    Classify every relationship endpoint that is not a known entity id.

    An endpoint matching an entity's text (case-insensitive) is reported as
    "using text instead of id"; anything else as "unknown entity".

    Args:
        entities: Entities extracted in this run
        relationships: Relationships returned by detection
        run_id: Run id for log correlation

    Returns:
        ReconciliationReport listing the mismatches
    """
    known_ids = {entity.id for entity in entities}
    id_by_text = {entity.text.strip().lower(): entity.id for entity in entities}

    mismatches: list[EndpointMismatch] = []
    for relationship in relationships:
        for endpoint in ("source", "target"):
            value = getattr(relationship, endpoint)
            if value in known_ids:
                continue

            matched_id = id_by_text.get(value.strip().lower())
            mismatches.append(
                EndpointMismatch(
                    relationship_id=relationship.id,
                    endpoint=endpoint,
                    value=value,
                    kind="using text instead of id" if matched_id else "unknown entity",
                    matched_entity_id=matched_id,
                )
            )

    report = ReconciliationReport(checked=len(relationships), mismatches=mismatches)

    if report.text_instead_of_id:
        sample = [
            f"{m.relationship_id}.{m.endpoint}={m.value!r}->{m.matched_entity_id}"
            for m in report.text_instead_of_id[:SAMPLE_SIZE]
        ]
        log_with_context(
            logger,
            logging.WARNING,
            f"{len(report.text_instead_of_id)} relationship endpoint(s) using text instead of id",
            run_id=run_id,
            stage="relationships",
            sample=sample,
        )
    if report.unknown:
        sample = [f"{m.relationship_id}.{m.endpoint}={m.value!r}" for m in report.unknown[:SAMPLE_SIZE]]
        log_with_context(
            logger,
            logging.WARNING,
            f"{len(report.unknown)} relationship endpoint(s) reference unknown entities",
            run_id=run_id,
            stage="relationships",
            sample=sample,
        )

    return report
