"""Pydantic schemas for document analysis input, stage outputs and results."""

import math
from datetime import datetime, timezone
from typing import Any, Literal, get_args

from pydantic import BaseModel, Field, ValidationInfo, field_validator

# =======================
# Document input
# =======================


class TextSpan(BaseModel):
    """A span of the source text."""

    start: int = 0
    end: int = 0
    text: str = ""


class Section(BaseModel):
    """A node of the document section tree."""

    id: str = Field(..., description="Section identifier")
    level: int = Field(default=1, description="Heading level (1 = top)")
    title: str = Field(default="", description="Heading text")
    content: str = Field(default="", description="Body text of the section")
    start_index: int = Field(default=0, description="Offset of the heading in the document")
    end_index: int = Field(default=0, description="Offset where the section ends")
    summary: str | None = Field(default=None, description="Written once by the section walker")
    keywords: list[str] = Field(default_factory=list, description="Keywords for the section")
    children: list["Section"] = Field(default_factory=list, description="Nested sections")


Section.model_rebuild()


class DocumentStructure(BaseModel):
    """Ordered top-level sections of a document."""

    sections: list[Section] = Field(default_factory=list)


class DocumentMetadata(BaseModel):
    """Metadata computed when the document was parsed."""

    word_count: int = Field(default=0, ge=0)
    file_type: str = "txt"
    language: str = "en"
    upload_date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Document(BaseModel):
    """A document submitted for analysis."""

    id: str
    title: str = ""
    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    structure: DocumentStructure = Field(default_factory=DocumentStructure)


def count_sections(sections: list[Section]) -> int:
    """Count every node of a section forest."""
    return sum(1 + count_sections(section.children) for section in sections)


# =======================
# Stage outputs
# =======================

EntityType = Literal[
    "person",
    "organization",
    "location",
    "concept",
    "product",
    "metric",
    "date",
    "technical",
]
ENTITY_TYPES: frozenset[str] = frozenset(get_args(EntityType))

RelationType = Literal[
    "causes",
    "requires",
    "part-of",
    "relates-to",
    "implements",
    "uses",
    "depends-on",
]
RELATION_TYPES: frozenset[str] = frozenset(get_args(RelationType))

VisualizationType = Literal[
    "structured-view",
    "mind-map",
    "argument-map",
    "depth-graph",
    "flowchart",
    "knowledge-graph",
    "uml-class-diagram",
    "uml-sequence",
    "uml-activity",
    "executive-dashboard",
    "timeline",
    "gantt",
    "comparison-matrix",
    "priority-matrix",
    "raci-matrix",
    "terms-definitions",
    "entity-graph",
]

STRUCTURED_VIEW = "structured-view"

# Entity importance and relationship strength when the completion gives none
DEFAULT_SCORE = 0.5


def _clamp_unit(value: Any) -> float:
    """Coerce a score into [0, 1]. Non-numeric or non-finite values are rejected."""
    if isinstance(value, bool) or value is None:
        raise ValueError("score must be a number")
    try:
        score = float(value)
    except TypeError as e:
        raise ValueError("score must be a number") from e
    if not math.isfinite(score):
        raise ValueError("score must be finite")
    return min(1.0, max(0.0, score))


def _score_or_default(value: Any, default: float) -> float:
    """Clamp a numeric score into [0, 1]; missing or unparseable scores take the default."""
    try:
        return _clamp_unit(value)
    except ValueError:
        return default


class TLDRSummary(BaseModel):
    """Short plain-text summary of the whole document."""

    text: str
    confidence: float | None = None
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    model: str | None = None


class KPI(BaseModel):
    """A key performance indicator mentioned by the document."""

    id: str
    label: str = Field(..., min_length=1)
    value: float
    unit: str = Field(..., min_length=1)
    trend: Literal["up", "down", "stable"] | None = None
    confidence: float = 0.8

    @field_validator("trend", mode="before")
    @classmethod
    def _unknown_trend(cls, value: Any) -> Any:
        if value not in ("up", "down", "stable"):
            return None
        return value


class ExecutiveSummary(BaseModel):
    """Executive summary with headline, key ideas and KPIs."""

    headline: str = "Document Summary"
    key_ideas: list[str] = Field(default_factory=list)
    kpis: list[KPI] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    call_to_action: str = "Review the document for details"


class Entity(BaseModel):
    """A named entity extracted from the document."""

    id: str = ""
    text: str = Field(..., min_length=1)
    type: EntityType = "concept"
    importance: float = DEFAULT_SCORE
    context: str | None = None
    mentions: list[TextSpan] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        tag = str(value or "").strip().lower()
        return tag if tag in ENTITY_TYPES else "concept"

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, value: Any) -> float:
        return _score_or_default(value, DEFAULT_SCORE)


class Relationship(BaseModel):
    """A directed relation between two entities, referenced by id."""

    id: str = ""
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: RelationType = "relates-to"
    strength: float = DEFAULT_SCORE
    evidence: list[TextSpan] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        tag = str(value or "").strip().lower().replace("_", "-").replace(" ", "-")
        return tag if tag in RELATION_TYPES else "relates-to"

    @field_validator("strength", mode="before")
    @classmethod
    def _clamp_strength(cls, value: Any) -> float:
        return _score_or_default(value, DEFAULT_SCORE)


class SignalAnalysis(BaseModel):
    """Qualitative signal scores, each in [0, 1]."""

    structural: float = 0.5
    process: float = 0.3
    quantitative: float = 0.3
    technical: float = 0.2
    argumentative: float = 0.3
    temporal: float = 0.2

    @field_validator(
        "structural",
        "process",
        "quantitative",
        "technical",
        "argumentative",
        "temporal",
        mode="before",
    )
    @classmethod
    def _clamp(cls, value: Any, info: ValidationInfo) -> float:
        # null means the score was left out
        if value is None:
            return cls.model_fields[info.field_name].default
        return _clamp_unit(value)


class VisualizationRecommendation(BaseModel):
    """A recommended visualization for the document."""

    type: VisualizationType
    score: float
    rationale: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        return str(value or "").strip().lower().replace("_", "-").replace(" ", "-")

    @field_validator("score")
    @classmethod
    def _finite_score(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("score must be finite")
        return value


# =======================
# Reconciliation
# =======================

MismatchKind = Literal["using text instead of id", "unknown entity"]


class EndpointMismatch(BaseModel):
    """A relationship endpoint that does not resolve to a known entity id."""

    relationship_id: str
    endpoint: Literal["source", "target"]
    value: str
    kind: MismatchKind
    matched_entity_id: str | None = None


class ReconciliationReport(BaseModel):
    """Outcome of cross-checking relationship endpoints against entities."""

    checked: int = 0
    mismatches: list[EndpointMismatch] = Field(default_factory=list)

    @property
    def text_instead_of_id(self) -> list[EndpointMismatch]:
        return [m for m in self.mismatches if m.kind == "using text instead of id"]

    @property
    def unknown(self) -> list[EndpointMismatch]:
        return [m for m in self.mismatches if m.kind == "unknown entity"]


# =======================
# Aggregate output
# =======================


class AnalysisMetadata(BaseModel):
    """Run metadata for one analysis."""

    document_id: str
    tokens_used: int = 0
    models: list[str] = Field(default_factory=list)
    call_count: int = 0
    duration_ms: int = 0


class DocumentAnalysis(BaseModel):
    """Complete analysis of a document."""

    tldr: TLDRSummary
    executive_summary: ExecutiveSummary
    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    metrics: list[KPI] = Field(default_factory=list)
    signals: SignalAnalysis
    recommendations: list[VisualizationRecommendation] = Field(default_factory=list)
    sections: list[Section] = Field(default_factory=list)
    relationship_issues: ReconciliationReport = Field(default_factory=ReconciliationReport)
    metadata: AnalysisMetadata


class AnalysisProgress(BaseModel):
    """One progress record emitted by an analysis run."""

    step: str
    progress: int = Field(..., ge=0, le=100)
    message: str
    partial_analysis: dict[str, Any] | None = None
    analysis: DocumentAnalysis | None = None
