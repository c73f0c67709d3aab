#!/usr/bin/env python3
"""
Skills Audit - Schema Validator

Checks the shape of parsed frontmatter for each document kind:

skill-manifest (SKILL.md):
    name, description required; category in the closed category enum;
    status in {ready, scaffold}; tags a list of strings; closed key list.

rule-file (rules/*.md):
    title required; impact in the closed impact enum; tags non-empty.

The field checks return a list of SchemaIssue values rather than raising,
so one pass reports everything wrong with a file. Advisory body checks
(required sections, trigger language, local links) are reported as warnings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from audit_common import (
    BROKEN_LINK,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    RESERVED_NAME_PATTERN,
    RULE_FILE,
    RULE_FRONTMATTER_KEYS,
    SCHEMA_VIOLATION,
    SKILL_FRONTMATTER_KEYS,
    SKILL_MANIFEST,
    STRUCTURE_WARNING,
    TRIGGER_PATTERN,
    VALID_CATEGORIES,
    VALID_IMPACTS,
    VALID_STATUSES,
    ValidationReport,
    is_valid_kebab_case,
)
from skills_corpus import CorpusSnapshot, RuleFile, Section, SkillManifest

# Sections every active skill body must carry
REQUIRED_SKILL_SECTIONS = {
    "Workflow": re.compile(r"^##+\s+Workflow\b", re.IGNORECASE | re.MULTILINE),
    "Examples": re.compile(r"^##+\s+Examples?\b", re.IGNORECASE | re.MULTILINE),
    "Troubleshooting": re.compile(r"^##+\s+Troubleshooting\b", re.IGNORECASE | re.MULTILINE),
}

# Parts every rule body must carry
REQUIRED_RULE_PARTS = {
    "Incorrect": re.compile(r"\bincorrect\b", re.IGNORECASE),
    "Correct": re.compile(r"\bcorrect\b", re.IGNORECASE),
    "Why it matters": re.compile(r"\bwhy it matters\b", re.IGNORECASE),
}

MD_LINK_RE = re.compile(r"\[[^\]]+\]\(([^)\s]+)[^)]*\)")
EXTERNAL_LINK_RE = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//)", re.IGNORECASE)


@dataclass(frozen=True)
class SchemaIssue:
    """One schema violation: the offending field and why."""

    field: str
    reason: str

    def __str__(self) -> str:
        return f"'{self.field}' {self.reason}"


# =============================================================================
# Field Checks
# =============================================================================


def _type_name(value: Any) -> str:
    return type(value).__name__


def _check_unknown_keys(frontmatter: Mapping[str, Any], allowed: set[str]) -> list[SchemaIssue]:
    return [
        SchemaIssue(key, "is not a recognized frontmatter field")
        for key in sorted(frontmatter)
        if key not in allowed
    ]


def _check_string_list(frontmatter: Mapping[str, Any], field_name: str, required: bool) -> list[SchemaIssue]:
    if field_name not in frontmatter:
        return [SchemaIssue(field_name, "is required")] if required else []

    value = frontmatter[field_name]
    if isinstance(value, str):
        # Comma separated strings are a common shorthand in rule files
        value = [v.strip() for v in value.split(",") if v.strip()]
    if not isinstance(value, list):
        return [SchemaIssue(field_name, f"must be a list of strings, got {_type_name(value)}")]
    if required and not value:
        return [SchemaIssue(field_name, "must not be empty")]

    issues: list[SchemaIssue] = []
    for i, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            issues.append(SchemaIssue(f"{field_name}[{i}]", "must be a non-empty string"))
    return issues


def _check_enum(frontmatter: Mapping[str, Any], field_name: str, allowed: set[str] | tuple[str, ...]) -> list[SchemaIssue]:
    if field_name not in frontmatter:
        return [SchemaIssue(field_name, "is required")]
    value = frontmatter[field_name]
    if not isinstance(value, str) or value not in allowed:
        choices = ", ".join(sorted(allowed)) if isinstance(allowed, set) else ", ".join(allowed)
        return [SchemaIssue(field_name, f"must be one of: {choices} (got {value!r})")]
    return []


def validate_name(name: Any) -> list[SchemaIssue]:
    """Validate a skill name: kebab-case, bounded length, no reserved terms."""
    if not isinstance(name, str) or not name:
        return [SchemaIssue("name", f"must be a non-empty string, got {_type_name(name)}")]

    issues: list[SchemaIssue] = []
    if not is_valid_kebab_case(name):
        issues.append(SchemaIssue("name", f"must be kebab-case: {name}"))
    if len(name) > MAX_NAME_LENGTH:
        issues.append(SchemaIssue("name", f"exceeds {MAX_NAME_LENGTH} characters ({len(name)})"))
    if RESERVED_NAME_PATTERN.search(name):
        issues.append(SchemaIssue("name", "must not include reserved terms `claude` or `anthropic`"))
    return issues


def validate_description(description: Any) -> list[SchemaIssue]:
    if not isinstance(description, str):
        return [SchemaIssue("description", f"must be a string, got {_type_name(description)}")]

    issues: list[SchemaIssue] = []
    if not description.strip():
        issues.append(SchemaIssue("description", "must be non-empty"))
    if len(description) > MAX_DESCRIPTION_LENGTH:
        issues.append(
            SchemaIssue("description", f"exceeds {MAX_DESCRIPTION_LENGTH} characters ({len(description)})")
        )
    if "<" in description or ">" in description:
        issues.append(SchemaIssue("description", "must not include angle brackets"))
    return issues


def validate_skill_manifest(frontmatter: Mapping[str, Any]) -> list[SchemaIssue]:
    """Validate SKILL.md frontmatter. Returns all issues found."""
    issues = _check_unknown_keys(frontmatter, SKILL_FRONTMATTER_KEYS)

    if "name" in frontmatter:
        issues.extend(validate_name(frontmatter["name"]))
    else:
        issues.append(SchemaIssue("name", "is required"))

    if "description" in frontmatter:
        issues.extend(validate_description(frontmatter["description"]))
    else:
        issues.append(SchemaIssue("description", "is required"))

    issues.extend(_check_enum(frontmatter, "category", VALID_CATEGORIES))
    issues.extend(_check_enum(frontmatter, "status", VALID_STATUSES))
    issues.extend(_check_string_list(frontmatter, "tags", required=False))

    if "extends" in frontmatter and (not isinstance(frontmatter["extends"], str) or not frontmatter["extends"]):
        issues.append(SchemaIssue("extends", "must be the name of another skill"))

    if "metadata" in frontmatter and not isinstance(frontmatter["metadata"], dict):
        issues.append(SchemaIssue("metadata", f"must be a mapping, got {_type_name(frontmatter['metadata'])}"))

    metadata = frontmatter.get("metadata")
    if "version" in frontmatter and isinstance(metadata, dict) and "version" in metadata:
        if frontmatter["version"] != metadata["version"]:
            issues.append(
                SchemaIssue("version", f"{frontmatter['version']} differs from metadata.version {metadata['version']}")
            )

    return issues


def validate_rule_frontmatter(frontmatter: Mapping[str, Any]) -> list[SchemaIssue]:
    """Validate rule file frontmatter. Returns all issues found."""
    issues = _check_unknown_keys(frontmatter, RULE_FRONTMATTER_KEYS)

    title = frontmatter.get("title")
    if "title" not in frontmatter:
        issues.append(SchemaIssue("title", "is required"))
    elif not isinstance(title, str) or not title.strip():
        issues.append(SchemaIssue("title", "must be a non-empty string"))

    issues.extend(_check_enum(frontmatter, "impact", VALID_IMPACTS))
    issues.extend(_check_string_list(frontmatter, "tags", required=True))
    return issues


def validate_document(frontmatter: Mapping[str, Any], kind: str) -> list[SchemaIssue]:
    """Dispatch on document kind (`skill-manifest` or `rule-file`)."""
    if kind == SKILL_MANIFEST:
        return validate_skill_manifest(frontmatter)
    if kind == RULE_FILE:
        return validate_rule_frontmatter(frontmatter)
    raise ValueError(f"Unknown document kind: {kind}")


def validate_section_declarations(sections: tuple[Section, ...]) -> list[tuple[Section, SchemaIssue]]:
    """Check each declared section has a known impact and a unique id."""
    issues: list[tuple[Section, SchemaIssue]] = []
    seen: set[str] = set()
    for section in sections:
        if section.id in seen:
            issues.append((section, SchemaIssue("id", f"section '{section.id}' is declared more than once")))
        seen.add(section.id)
        if section.impact not in VALID_IMPACTS:
            got = section.impact or "missing"
            issues.append(
                (section, SchemaIssue("impact", f"of section '{section.id}' must be one of: {', '.join(VALID_IMPACTS)} (got {got})"))
            )
    return issues


# =============================================================================
# Advisory Body Checks
# =============================================================================


def strip_fenced_code(markdown: str) -> str:
    """Drop fenced code blocks so example links are not checked."""
    kept: list[str] = []
    in_fence = False
    for line in markdown.splitlines(keepends=True):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if not in_fence:
            kept.append(line)
    return "".join(kept)


def find_broken_links(body: str, base_dir: Path) -> list[str]:
    """Local link targets in `body` that do not exist relative to base_dir."""
    broken: list[str] = []
    for target in MD_LINK_RE.findall(strip_fenced_code(body)):
        link_path = target.split("#", 1)[0]
        if not link_path or EXTERNAL_LINK_RE.match(link_path):
            continue
        if not (base_dir / link_path).exists():
            broken.append(target)
    return broken


def check_skill_body(skill: SkillManifest, root: Path, report: ValidationReport) -> None:
    """Advisory checks on an active skill's description, body and folder."""
    description = skill.description
    if description and not TRIGGER_PATTERN.search(description):
        report.warning(
            STRUCTURE_WARNING,
            "description should include explicit trigger language (`Use when ...`)",
            skill.path,
        )

    if skill.name and skill.name != skill.folder:
        report.warning(STRUCTURE_WARNING, f"name `{skill.name}` does not match folder `{skill.folder}`", skill.path)

    for section, pattern in REQUIRED_SKILL_SECTIONS.items():
        if not pattern.search(skill.body):
            report.warning(STRUCTURE_WARNING, f"missing `## {section}` section", skill.path)

    skill_dir = root / skill.skill_dir
    if (skill_dir / "README.md").exists() or (skill_dir / "readme.md").exists():
        report.warning(STRUCTURE_WARNING, "skill folders must not include README.md", skill.path)


def check_rule_body(rule: RuleFile, report: ValidationReport) -> None:
    missing = [part for part, pattern in REQUIRED_RULE_PARTS.items() if not pattern.search(rule.body)]
    if missing:
        report.warning(STRUCTURE_WARNING, f"rule body is missing: {', '.join(missing)}", rule.path)


# =============================================================================
# Main Validation Function
# =============================================================================


def validate_corpus_schema(snapshot: CorpusSnapshot, report: ValidationReport | None = None) -> ValidationReport:
    """Run schema and advisory checks over every document in the snapshot."""
    if report is None:
        report = ValidationReport()

    for skill in snapshot.skills:
        issues = validate_skill_manifest(skill.frontmatter)
        for issue in issues:
            report.error(SCHEMA_VIOLATION, str(issue), skill.path)
        if not issues:
            report.passed("manifest schema valid", skill.path)

        if not skill.is_draft:
            check_skill_body(skill, snapshot.root, report)

        for target in find_broken_links(skill.body, snapshot.root / skill.skill_dir):
            report.warning(BROKEN_LINK, f"broken local link target `{target}`", skill.path)

    for rule in snapshot.rules:
        for issue in validate_rule_frontmatter(rule.frontmatter):
            report.error(SCHEMA_VIOLATION, str(issue), rule.path)
        check_rule_body(rule, report)

    for skill_dir in sorted(snapshot.sections):
        for section, issue in validate_section_declarations(snapshot.sections[skill_dir]):
            report.error(SCHEMA_VIOLATION, str(issue), section.file, section.line)

    return report
