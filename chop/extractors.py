"""Frontmatter extraction for chop.

Content documents are YAML frontmatter followed by a body:

    ---
    title: Hello
    ---
    Body text.

Unlike a lenient extractor, a document that does not start with the
delimiter is an error: every document feeds the page lists of every
output target, so a skipped page would silently change the site.

Key functions:
- parse_frontmatter: Split a document into variables and body.
- serialize_frontmatter: Write variables and body back into a document.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .errors import MalformedFrontmatterError

DELIMITER = "---"
DELIMITER_RE = re.compile(r"^---[ \t]*\r?$", re.MULTILINE)


def parse_frontmatter(text: str, source_path: Path) -> tuple[dict[str, Any], str]:
    """Split a content document into frontmatter variables and body.

    The document must start with a delimiter line. Everything up to the
    second delimiter line is parsed as a YAML mapping; the rest, which
    may itself contain delimiter lines, is the stripped body.

    Args:
        text: Raw document text.
        source_path: Path of the document, used in error messages.

    Returns:
        Tuple of (frontmatter dict, body text).

    Raises:
        MalformedFrontmatterError: If the delimiters are missing or the
            frontmatter is not a YAML mapping.
    """
    parts = DELIMITER_RE.split(text, maxsplit=2)
    if parts[0] != "":
        raise MalformedFrontmatterError(
            source_path, "document does not start with a '---' frontmatter delimiter"
        )
    if len(parts) < 3:
        raise MalformedFrontmatterError(
            source_path, "frontmatter is not closed by a second '---' delimiter"
        )
    _, frontmatter, body = parts
    try:
        data = yaml.safe_load(frontmatter)
    except yaml.YAMLError as exc:
        raise MalformedFrontmatterError(
            source_path, f"invalid YAML in frontmatter: {exc}", exc
        ) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedFrontmatterError(
            source_path,
            f"frontmatter must be a mapping, got {type(data).__name__}",
        )
    return data, body.strip()


def serialize_frontmatter(variables: Mapping[str, Any], body: str) -> str:
    """Write variables and body as a frontmatter document.

    Args:
        variables: Frontmatter variables.
        body: Document body.

    Returns:
        Document text accepted by parse_frontmatter.
    """
    block = ""
    if variables:
        block = yaml.safe_dump(
            dict(variables), sort_keys=False, allow_unicode=True
        )
    return f"{DELIMITER}\n{block}{DELIMITER}\n{body}\n"
