"""Prompt templates for summarization, constellation matching and document synthesis.

Templates use Python string formatting (``{variable}``) for injection;
literal JSON braces in response examples are doubled.
"""

from __future__ import annotations

from browsing_kg.models.entities import KnowledgeBox, KnowledgeBoxNote, Page, Topic

MAX_PROMPT_PAGES = 50
CHUNK_PREVIEW_CHARS = 200


# =====================================================================
# Page summary
# =====================================================================

PAGE_SUMMARY_SYSTEM = (
    "You are a knowledge assistant that creates clear, factual page summaries. "
    "Be concise and informative. Return plain text only."
)

PAGE_SUMMARY_USER = """\
Summarize this web page in 2-3 concise, informative sentences. Focus on what \
the page is about, its key content, and why someone might find it useful.

{page_details}

Respond with ONLY the summary text, no JSON or extra formatting."""


# =====================================================================
# Constellation matching
# =====================================================================

CONSTELLATION_MATCH_SYSTEM = (
    "You are a knowledge organization assistant. Match browsing pages to "
    "user-defined research goals with high precision. Always respond with valid JSON."
)

CONSTELLATION_MATCH_USER = """\
You are assigning browsing pages and topics to knowledge constellations.
Each constellation has a title and goal statement. Assign pages and topics \
that are clearly relevant to each constellation's goal.

CONSTELLATIONS:
{constellations}

CANDIDATE PAGES:
{pages}

{topics_section}

Respond in JSON format:
{{
  "assignments": [
    {{
      "constellation_index": 0,
      "page_indices": [1, 3, 7],
      "topic_indices": [2]
    }}
  ]
}}

Rules:
- Only assign pages/topics that are CLEARLY relevant to a constellation's goal
- A page can be assigned to multiple constellations if truly relevant to both
- If no pages match a constellation, omit it from the response
- Prefer precision over recall — only high-confidence matches
- Use the page summaries, descriptions, and keywords to judge relevance"""


# =====================================================================
# Living document: bootstrap
# =====================================================================

DOCUMENT_BOOTSTRAP_SYSTEM = (
    "You are a research documentation assistant. Create well-structured, richly "
    "formatted Markdown documents that synthesize browsing research into coherent "
    "knowledge. Always respond with valid JSON."
)

DOCUMENT_BOOTSTRAP_USER = """\
Create a comprehensive knowledge document for this research constellation.

CONSTELLATION:
Title: "{title}"
Goal: {goal}
Status: {status}
Started: {started}

PAGES ({page_count}):
{pages}

{topics_section}

{notes_section}

Create a well-structured document with the following sections. Each section \
must have rich Markdown formatting (headings, lists, bold, links where relevant).

Respond in JSON:
{{
  "updates": [
    {{
      "section_key": "overview",
      "section_type": "overview",
      "action": "create",
      "order_index": 0,
      "title": "Overview",
      "content": "## [Evolved document title]\\n\\n[Rich overview paragraph describing the scope, purpose, and current state of this research area.]"
    }},
    {{
      "section_key": "key_findings",
      "section_type": "key_findings",
      "action": "create",
      "order_index": 100,
      "title": "Key Findings",
      "content": "## Key Findings\\n\\n[Synthesized insights from all sources, with bullet points for key takeaways]"
    }},
    {{
      "section_key": "source:[domain_or_theme]",
      "section_type": "source_analysis",
      "action": "create",
      "order_index": 200,
      "title": "[Source Group Name]",
      "content": "## [Source Group Name]\\n\\n[Analysis of pages from this domain/theme and what they contribute]"
    }},
    {{
      "section_key": "topic_synthesis",
      "section_type": "topic_synthesis",
      "action": "create",
      "order_index": 300,
      "title": "Topic Connections",
      "content": "## Topic Connections\\n\\n[How the topics relate to each other and to the constellation goal]"
    }},
    {{
      "section_key": "progress_log",
      "section_type": "progress_log",
      "action": "create",
      "order_index": 400,
      "title": "Progress Log",
      "content": "## Progress Log\\n\\n**{today}** — Document created with {page_count} pages and {topic_count} topics."
    }},
    {{
      "section_key": "next_steps",
      "section_type": "next_steps",
      "action": "create",
      "order_index": 500,
      "title": "Next Steps",
      "content": "## Next Steps\\n\\n[Actionable recommendations based on the current research]"
    }}
  ]
}}

Rules:
- Create one source_analysis chunk per distinct domain or thematic group (use order_index 200-299)
- All content must be well-formatted Markdown
- The overview should read like the opening of a polished research document
- Be comprehensive but concise — quality over quantity"""


# =====================================================================
# Living document: incremental update
# =====================================================================

DOCUMENT_UPDATE_SYSTEM = (
    "You are a research documentation assistant performing incremental updates "
    "to a living document. Be precise — only modify sections affected by new "
    "information. Always respond with valid JSON."
)

DOCUMENT_UPDATE_USER = """\
You are incrementally updating a living knowledge document. Only modify \
sections that NEED changing based on new information. This is like a git \
diff — preserve unchanged sections.

CONSTELLATION:
Title: "{title}"
Goal: {goal}

CURRENT DOCUMENT INDEX:
{document_index}

NEW PAGES ADDED ({page_count}):
{pages}

{topics_section}

Determine which sections need updating and respond in JSON:
{{
  "updates": [
    {{
      "section_key": "existing_key_or_new_key",
      "section_type": "overview|key_findings|source_analysis|topic_synthesis|progress_log|next_steps",
      "action": "create|update|append",
      "order_index": 0,
      "title": "Section Title",
      "content": "Full Markdown content for this section"
    }}
  ]
}}

Rules:
- ONLY include sections that need changing — do NOT return unchanged sections
- For "update" action: provide the COMPLETE new content for that section (replaces old)
- For "append" action (progress_log only): provide ONLY the new entries to append
- For "create" action: used for new source_analysis chunks from new domains
- Create new source_analysis chunks for pages from new domains/themes (order_index 200-299)
- topic_synthesis should be updated if new topics are added
- ALWAYS append to progress_log noting what was added
- All content must be well-formatted Markdown with ## headings, lists, bold text
- Be surgical — only update what truly needs changing"""


# =====================================================================
# Formatting helpers
# =====================================================================

def format_page_details(page: Page) -> str:
    """Key/value block describing a single page for summarization."""
    meta = page.metadata
    lines = [
        f"Title: {page.title or 'Untitled'}",
        f"URL: {page.url}",
        f"Domain: {page.domain}",
    ]
    description = meta.og_description or meta.description
    if description:
        lines.append(f"Description: {description}")
    if meta.keywords:
        lines.append(f"Keywords: {', '.join(meta.keywords)}")
    if meta.author:
        lines.append(f"Author: {meta.author}")
    lines.append(f"Time spent: {round(page.total_dwell_time / 1000)}s")
    return "\n".join(lines)


def format_constellations(boxes: list[KnowledgeBox]) -> str:
    return "\n".join(
        f'[C{i}] "{b.title}" — Goal: {b.goal_statement} ({len(b.related_page_ids)} existing pages)'
        for i, b in enumerate(boxes)
    )


def format_candidate_pages(pages: list[Page]) -> str:
    lines = []
    for i, p in enumerate(pages):
        line = f'[P{i}] "{p.title or "Untitled"}" ({p.domain})'
        if p.metadata.best_description:
            line += f" — {p.metadata.best_description}"
        if p.ai_summary:
            line += f" | Summary: {p.ai_summary}"
        lines.append(line)
    return "\n".join(lines)


def format_indexed_topics(topics: list[Topic]) -> str:
    """``TOPICS:`` section with ``[T<i>]`` indices, or empty."""
    if not topics:
        return ""
    body = "\n".join(
        f'[T{i}] "{t.name}" — {t.description} ({len(t.page_ids)} pages)'
        for i, t in enumerate(topics)
    )
    return f"TOPICS:\n{body}"


def format_document_pages(pages: list[Page]) -> str:
    lines = []
    for i, p in enumerate(pages[:MAX_PROMPT_PAGES]):
        line = f'[P{i}] "{p.title or "Untitled"}" ({p.domain})'
        if p.metadata.best_description:
            line += f" — {p.metadata.best_description}"
        if p.ai_summary:
            line += f"\n    Summary: {p.ai_summary}"
        lines.append(line)
    return "\n".join(lines)


def format_topic_list(topics: list[Topic], heading: str = "TOPICS:") -> str:
    if not topics:
        return ""
    body = "\n".join(
        f'- "{t.name}" — {t.description} ({len(t.page_ids)} pages)' for t in topics
    )
    return f"{heading}\n{body}"


def format_notes(notes: list[KnowledgeBoxNote], limit: int = 5) -> str:
    if not notes:
        return ""
    body = "\n".join(f"- {n.text}" for n in notes[-limit:])
    return f"USER NOTES:\n{body}"


def format_chunk_preview(content: str) -> str:
    preview = content[:CHUNK_PREVIEW_CHARS]
    return preview + "..." if len(content) > CHUNK_PREVIEW_CHARS else preview
