"""
Template rendering for Vault Bridge MCP Server.

Substitutes core-template style placeholders when a note is created from a template.
"""

import posixpath
import re
from datetime import datetime

TEMPLATE_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(title|date|time)(?::([^}]*))?\s*\}\}")

DEFAULT_DATE_FORMAT = "%Y-%m-%d"
DEFAULT_TIME_FORMAT = "%H:%M"


def note_title(path: str) -> str:
    """Basename of a note without its ``.md`` suffix."""
    name = posixpath.basename(path)
    if name.lower().endswith(".md"):
        return name[:-3]
    return name


def render_template(template: str, target_path: str, now: datetime | None = None) -> str:
    """Fill ``{{title}}``, ``{{date}}``, ``{{date:FORMAT}}`` and ``{{time}}``.

    FORMAT is a strftime format. Unknown placeholders are left untouched.
    """
    now = now or datetime.now()
    title = note_title(target_path)

    def substitute(match: re.Match[str]) -> str:
        name, fmt = match.group(1), match.group(2)
        if name == "title":
            return title
        if name == "date":
            return now.strftime(fmt.strip() if fmt else DEFAULT_DATE_FORMAT)
        return now.strftime(fmt.strip() if fmt else DEFAULT_TIME_FORMAT)

    return TEMPLATE_PLACEHOLDER_PATTERN.sub(substitute, template)
