"""Plain-text document parsing: headings, section tree and metadata.

Headings are detected three ways:
- Markdown: ``#`` to ``#####`` followed by a title
- Numbered: ``1.`` / ``2.3.`` followed by a title (level = number of parts, max 5)
- ALL CAPS lines of at least three words and under 100 characters (level 1)

Sections nest under the closest preceding heading with a lower level. A
document with no headings becomes a single "Document" section.
"""

import hashlib
import re
from pathlib import Path

from analysis_engine.core.schemas_analysis import (
    Document,
    DocumentMetadata,
    DocumentStructure,
    Section,
)

MARKDOWN_HEADING_RE = re.compile(r"^(#{1,5})\s+(.+)$")
NUMBERED_HEADING_RE = re.compile(r"^(\d+(?:\.\d+)*)\.\s+(.+)$")
MAX_HEADING_LEVEL = 5


def detect_heading(line: str) -> tuple[int, str] | None:
    """Return ``(level, title)`` if the stripped line is a heading."""
    md_match = MARKDOWN_HEADING_RE.match(line)
    if md_match:
        return len(md_match.group(1)), md_match.group(2).strip()

    numbered_match = NUMBERED_HEADING_RE.match(line)
    if numbered_match:
        level = len(numbered_match.group(1).split("."))
        return min(level, MAX_HEADING_LEVEL), numbered_match.group(2).strip()

    if (
        line == line.upper()
        and any(c.isalpha() for c in line)
        and len(line.split()) >= 3
        and len(line) < 100
    ):
        return 1, line

    return None


def _flat_sections(text: str) -> list[Section]:
    sections: list[Section] = []
    current: dict | None = None
    body: list[str] = []
    offset = 0

    def close(end: int) -> None:
        if current is not None:
            sections.append(Section(**current, content="\n".join(body).strip(), end_index=end))

    for raw_line in text.split("\n"):
        line = raw_line.strip()
        heading = detect_heading(line) if line else None

        if heading:
            close(offset)
            level, title = heading
            current = {
                "id": f"section-{len(sections)}",
                "level": level,
                "title": title,
                "start_index": offset,
            }
            body = []
        elif line:
            body.append(line)

        offset += len(raw_line) + 1

    close(len(text))

    if not sections:
        sections.append(
            Section(
                id="section-0",
                level=1,
                title="Document",
                content=text,
                start_index=0,
                end_index=len(text),
            )
        )
    return sections


def build_section_tree(flat: list[Section]) -> list[Section]:
    """Nest a flat, document-ordered section list by heading level."""
    roots: list[Section] = []
    stack: list[Section] = []

    for section in flat:
        node = section.model_copy(update={"children": []})
        while stack and stack[-1].level >= node.level:
            stack.pop()
        if stack:
            stack[-1].children.append(node)
        else:
            roots.append(node)
        stack.append(node)

    return roots


def count_words(text: str) -> int:
    return len(text.split())


def extract_title(text: str, filename: str) -> str:
    """First line of reasonable length among the first five, else the filename stem."""
    for line in text.split("\n")[:5]:
        stripped = line.strip()
        if 10 < len(stripped) < 100:
            cleaned = re.sub(r"^#+\s*", "", stripped)
            if cleaned:
                return cleaned
    return Path(filename).stem


def document_id_for(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def parse_text_document(text: str, filename: str = "document.txt") -> Document:
    """
    Build a Document with a nested section tree from plain or markdown text.

    Args:
        text: Document text
        filename: Original filename, used for the title fallback and file type

    Returns:
        Document ready for analysis
    """
    suffix = Path(filename).suffix.lstrip(".").lower()
    return Document(
        id=document_id_for(text),
        title=extract_title(text, filename),
        content=text,
        metadata=DocumentMetadata(
            word_count=count_words(text),
            file_type=suffix or "txt",
        ),
        structure=DocumentStructure(sections=build_section_tree(_flat_sections(text))),
    )
