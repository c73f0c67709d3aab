#!/usr/bin/env python3
"""
Skills Audit - Frontmatter Parser

Splits a markdown document into its leading YAML frontmatter block and body.
The block must open on the first line with `---` and close at the next line
that is exactly `---`.
"""

from __future__ import annotations

from typing import Any

import yaml
from audit_common import BUILD_PATTERN, MalformedFrontmatterError

DELIMITER = "---"


def coerce_version(value: Any) -> int:
    """Coerce a build version to a positive integer.

    Accepts ints and digit strings ("2"). Raises ValueError otherwise.
    """
    if isinstance(value, bool):
        raise ValueError(f"version must be a positive integer, got {value!r}")
    if isinstance(value, int):
        if value < 1:
            raise ValueError(f"version must be a positive integer, got {value}")
        return value
    if isinstance(value, str) and BUILD_PATTERN.match(value.strip()):
        return int(value.strip())
    raise ValueError(f"version must be a positive integer, got {value!r}")


def _coerce_versions(frontmatter: dict[str, Any]) -> None:
    if "version" in frontmatter:
        try:
            frontmatter["version"] = coerce_version(frontmatter["version"])
        except ValueError as e:
            raise MalformedFrontmatterError(str(e)) from e

    metadata = frontmatter.get("metadata")
    if isinstance(metadata, dict) and "version" in metadata:
        try:
            metadata["version"] = coerce_version(metadata["version"])
        except ValueError as e:
            raise MalformedFrontmatterError(f"metadata.{e}") from e


def split_frontmatter(text: str) -> tuple[str, str, int]:
    """Return (frontmatter_text, body, body_start_line) without parsing YAML."""
    text = text.removeprefix("\ufeff")
    lines = text.splitlines(keepends=True)

    if not lines or lines[0].strip() != DELIMITER:
        raise MalformedFrontmatterError("Missing YAML frontmatter delimiters")

    for idx in range(1, len(lines)):
        if lines[idx].strip() == DELIMITER:
            return "".join(lines[1:idx]), "".join(lines[idx + 1 :]), idx + 2

    raise MalformedFrontmatterError("Unterminated YAML frontmatter block")


def parse_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown content.

    Args:
        text: Raw markdown file content

    Returns:
        Tuple of (frontmatter mapping, body text)

    Raises:
        MalformedFrontmatterError: block absent or unterminated, YAML invalid,
            not a mapping, or a version field is not a positive integer
    """
    block, body, _ = split_frontmatter(text)

    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise MalformedFrontmatterError(f"Invalid YAML frontmatter: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedFrontmatterError("Frontmatter must parse to a YAML mapping")

    frontmatter = {str(k): v for k, v in data.items()}
    _coerce_versions(frontmatter)
    return frontmatter, body


def skill_version(frontmatter: dict[str, Any]) -> int | None:
    """Build version from top-level `version` or `metadata.version`."""
    if "version" in frontmatter:
        return frontmatter["version"]
    metadata = frontmatter.get("metadata")
    if isinstance(metadata, dict):
        return metadata.get("version")
    return None


def render_frontmatter(frontmatter: dict[str, Any], body: str) -> str:
    """Serialize frontmatter and body back into a markdown document."""
    dumped = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return f"{DELIMITER}\n{dumped}{DELIMITER}\n{body}"
