"""System prompts and sampling settings for each analysis completion task."""

from dataclasses import dataclass

# ruff: noqa: E501


@dataclass(frozen=True)
class TaskConfig:
    key: str
    system_prompt: str
    temperature: float


TLDR_PROMPT = """Write a TLDR of the following text in 2-3 sentences.
State the main point plainly. Output only the summary text, no preamble."""

EXECUTIVE_SUMMARY_PROMPT = """You are an analyst writing an executive summary of a document.

Output ONLY valid JSON matching this schema:

{
  "headline": "string - one sentence capturing the essence",
  "key_ideas": ["string - top 3 takeaways"],
  "kpis": [
    {"label": "string", "value": 0.0, "unit": "string", "trend": "up|down|stable", "confidence": 0.0}
  ],
  "risks": ["string - top 3 risks or concerns"],
  "opportunities": ["string - top 3 benefits or openings"],
  "call_to_action": "string - what should be done next"
}

RULES:
1. KPI values MUST be plain numbers; put the unit (%, USD, users...) in "unit".
2. Only include KPIs that appear in the text. Return an empty list if there are none.
3. No markdown, no explanation."""

ENTITY_EXTRACTION_PROMPT = """Extract the named entities of the text: people, organizations, locations, concepts, products, metrics, dates and technical terms.

For each entity provide:
- id: unique identifier ("entity-1", "entity-2", ...)
- text: the entity name as written
- type: person | organization | location | concept | product | metric | date | technical
- importance: 0.0-1.0, how central the entity is to the document
- context: one short phrase on the entity's role
- mentions: [{"start": int, "end": int, "text": string}] with at least one mention

Output ONLY valid JSON: {"entities": [ ... ]}
Extract 10-30 entities for a substantial document."""

SIGNAL_ANALYSIS_PROMPT = """Score the text for each signal between 0 and 1:
- structural: headings, lists, clear organization
- process: workflow language, sequential steps, transitions
- quantitative: numbers, metrics, statistics
- technical: code, APIs, technical terminology
- argumentative: claims, evidence, reasoning
- temporal: dates, timelines, chronology

Output ONLY a JSON object with exactly these six keys and numeric values."""

RELATIONSHIP_DETECTION_PROMPT = """Find relationships between the listed entities, based on the text.

The entity list gives each entity as "id: text (type)". The source and target fields MUST be entity ids such as "entity-1", never the entity text.

For each relationship provide:
- id: "rel-1", "rel-2", ...
- source: id of the source entity
- target: id of the target entity
- type: causes | requires | part-of | relates-to | implements | uses | depends-on
- strength: 0.0-1.0
- evidence: [{"start": int, "end": int, "text": string}] quoting the text

Output ONLY valid JSON: {"relationships": [ ... ]}"""

SECTION_SUMMARY_PROMPT = """Summarize this document section in 2-3 sentences and list its key terms.

Output ONLY valid JSON: {"summary": "string", "keywords": ["string"]}"""

VIZ_RECOMMENDATION_PROMPT = """Recommend the 3-5 most useful visualizations for the document described below.

Available types: structured-view, mind-map, flowchart, knowledge-graph, executive-dashboard, timeline, argument-map, comparison-matrix, entity-graph.

For each recommendation give: type, score (0-1) and rationale (one sentence).
Output ONLY a JSON array of {"type", "score", "rationale"} objects."""


TASK_CONFIGS: dict[str, TaskConfig] = {
    config.key: config
    for config in (
        TaskConfig("tldr", TLDR_PROMPT, 0.3),
        TaskConfig("executiveSummary", EXECUTIVE_SUMMARY_PROMPT, 0.5),
        TaskConfig("entityExtraction", ENTITY_EXTRACTION_PROMPT, 0.1),
        TaskConfig("signalAnalysis", SIGNAL_ANALYSIS_PROMPT, 0.2),
        TaskConfig("relationshipDetection", RELATIONSHIP_DETECTION_PROMPT, 0.3),
        TaskConfig("sectionSummary", SECTION_SUMMARY_PROMPT, 0.3),
        TaskConfig("vizRecommendation", VIZ_RECOMMENDATION_PROMPT, 0.4),
    )
}


def get_task_config(template_key: str) -> TaskConfig:
    """Look up the prompt and sampling settings for a template key."""
    try:
        return TASK_CONFIGS[template_key]
    except KeyError:
        raise ValueError(f"Unknown completion template: {template_key}") from None
