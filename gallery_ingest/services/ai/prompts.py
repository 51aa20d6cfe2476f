"""Prompt templates for page classification and extraction."""

import json
from typing import Any

PROMPT_VERSION = "1.0"

# Markdown beyond this many characters is truncated before prompting.
MAX_MD_LENGTH = 50_000

SYSTEM_PROMPT = """You extract structured facts about art galleries and their events from website content.

Rules:
- Only include facts explicitly present in the content. Never invent values.
- Use null for unknown scalar fields and [] for unknown lists.
- Dates and times are ISO 8601. Include a UTC offset when the page states one.
- Output ONLY a JSON object matching the requested schema, no markdown code blocks or additional text."""


CLASSIFY_PROMPT_TEMPLATE = """Classify the Markdown content below into one of the following page kinds:
- gallery_main (home/landing page for the gallery)
- gallery_about (about/biography/contact page for the gallery)
- event_list (lists multiple events, exhibitions or programs)
- event_detail (describes a single event in detail)
- other (any other supporting page)

Respond with a JSON object of the form {{"kind": "<page kind>"}}.

URL: {url}
---
{markdown}"""


EXTRACT_PAGE_PROMPT_TEMPLATE = """Decide what kind of page the Markdown below is and extract its content.

- If it describes a *single* event, respond with {{"type": "event_detail", "payload": {{...}}}}
  where payload holds the event facts.
- Otherwise respond with {{"type": "<kind>"}} where kind is one of
  gallery_main, gallery_about, event_list, other.

When an event has several dates, list each in "occurrences" and put the first
one in start_at/end_at as well.

JSON SCHEMA:
{schema}

URL: {url}
---
{markdown}"""


EXTRACT_GALLERY_PROMPT_TEMPLATE = """Extract gallery information (name, about, contacts, district, tags) from the Markdown below.
The content may combine several pages of the same gallery website.

JSON SCHEMA:
{schema}

URL: {url}
---
{markdown}"""


OPENING_HOURS_PROMPT_TEMPLATE = """Convert the opening hours text below into weekly opening ranges.

- dow is the weekday number: 0 = Monday ... 6 = Sunday.
- Each range gives open_minute and close_minute as minutes since midnight
  (e.g. 11:00-19:00 is 660-1140).
- Omit days that are closed.

JSON SCHEMA:
{schema}

OPENING HOURS:
{text}"""


def truncate_markdown(markdown: str, limit: int = MAX_MD_LENGTH) -> str:
    """Clip markdown to the prompt budget."""
    return markdown[:limit]


def _schema_json(schema: dict[str, Any]) -> str:
    return json.dumps(schema, indent=2)


def build_classify_prompt(markdown: str, url: str, limit: int = MAX_MD_LENGTH) -> str:
    """Build the page classification prompt."""
    return CLASSIFY_PROMPT_TEMPLATE.format(url=url, markdown=truncate_markdown(markdown, limit))


def build_extract_page_prompt(
    markdown: str, url: str, schema: dict[str, Any], limit: int = MAX_MD_LENGTH
) -> str:
    """
    Build the page extraction prompt.

    Args:
        markdown: Page markdown.
        url: Page URL (context for relative dates and links).
        schema: JSON schema of the tagged page extraction union.
        limit: Markdown truncation length.

    Returns:
        The formatted prompt string.
    """
    return EXTRACT_PAGE_PROMPT_TEMPLATE.format(
        schema=_schema_json(schema), url=url, markdown=truncate_markdown(markdown, limit)
    )


def build_extract_gallery_prompt(
    markdown: str, url: str, schema: dict[str, Any], limit: int = MAX_MD_LENGTH
) -> str:
    """Build the gallery extraction prompt."""
    return EXTRACT_GALLERY_PROMPT_TEMPLATE.format(
        schema=_schema_json(schema), url=url, markdown=truncate_markdown(markdown, limit)
    )


def build_opening_hours_prompt(text: str, schema: dict[str, Any]) -> str:
    """Build the opening hours parsing prompt."""
    return OPENING_HOURS_PROMPT_TEMPLATE.format(schema=_schema_json(schema), text=text)
