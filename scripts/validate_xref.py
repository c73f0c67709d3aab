#!/usr/bin/env python3
"""
Skills Audit - Cross-Reference Validator

Validates consistency between skills, rules, sections and the registry:
1. A SKILL.md `version` must match its registry entry (VersionMismatchError)
2. A rule's filename prefix must be a declared section of its skill
   (UnknownSectionError)
3. `extends` must name an existing skill (DanglingExtendsError)
4. Skill names must be unique across the corpus (DuplicateSkillNameError)
5. Registry category/tags should mirror the manifest (warning)
6. Registry entries should have a skill directory (warning)
7. Declared sections should have at least one rule (warning)
8. A skill name may appear only once in the registry
   (DuplicateRegistryEntryError)

Every check is a pure pass over an immutable CorpusSnapshot.
"""

from __future__ import annotations

from collections import defaultdict

from audit_common import (
    DANGLING_EXTENDS,
    DUPLICATE_REGISTRY_ENTRY,
    DUPLICATE_SKILL_NAME,
    EMPTY_SECTION,
    ORPHAN_REGISTRY_ENTRY,
    REGISTRY_DRIFT,
    UNKNOWN_SECTION,
    VERSION_MISMATCH,
    ValidationReport,
)
from skills_corpus import CorpusSnapshot, SkillManifest

# =============================================================================
# Rule 1: Version synchronization
# =============================================================================


def validate_version_sync(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    """Every skill that declares a version must match its registry entry.

    A skill without a version is never a mismatch, whatever the registry says.
    """
    registry = snapshot.registry or {}
    registry_label = snapshot.registry_path or "marketplace.json"

    for skill in snapshot.skills:
        version = skill.version
        if version is None or skill.name is None:
            continue

        entry = registry.get(skill.name)
        if entry is None:
            report.error(
                VERSION_MISMATCH,
                f"skill `{skill.name}` declares version {version} but has no entry in {registry_label}",
                skill.path,
            )
            continue

        if entry.raw_version is None:
            report.error(
                VERSION_MISMATCH,
                f"registry entry for `{skill.name}` is missing a version (SKILL.md has {version})",
                skill.path,
            )
        elif entry.version is None:
            report.error(
                VERSION_MISMATCH,
                f"registry version {entry.raw_version!r} for `{skill.name}` is not a positive integer",
                skill.path,
            )
        elif entry.version != version:
            report.error(
                VERSION_MISMATCH,
                f"version {version} in SKILL.md does not match {registry_label} version {entry.version}",
                skill.path,
            )
        else:
            report.passed(f"version {version} matches registry", skill.path)


# =============================================================================
# Rule 2: Rules belong to declared sections
# =============================================================================


def validate_section_refs(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    for rule in snapshot.rules:
        declared = {section.id for section in snapshot.sections_for(rule.skill_dir)}
        if rule.prefix in declared:
            continue
        if declared:
            known = ", ".join(sorted(declared))
            report.error(UNKNOWN_SECTION, f"prefix `{rule.prefix}` is not a declared section (known: {known})", rule.path)
        else:
            report.error(
                UNKNOWN_SECTION,
                f"prefix `{rule.prefix}` is not a declared section (no rules/_sections.md in {rule.skill_dir})",
                rule.path,
            )


def validate_empty_sections(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    for skill_dir in sorted(snapshot.sections):
        prefixes = {rule.prefix for rule in snapshot.rules_for(skill_dir)}
        for section in snapshot.sections[skill_dir]:
            if section.id not in prefixes:
                report.warning(EMPTY_SECTION, f"section `{section.id}` has no rule files", section.file, section.line)


# =============================================================================
# Rule 3: extends references
# =============================================================================


def validate_extends_refs(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    known = {skill.name for skill in snapshot.skills if skill.name}
    for skill in snapshot.skills:
        target = skill.extends
        if target is None:
            continue
        if target == skill.name:
            report.error(DANGLING_EXTENDS, f"skill `{target}` extends itself", skill.path)
        elif target not in known:
            report.error(DANGLING_EXTENDS, f"extends unknown skill `{target}`", skill.path)


# =============================================================================
# Rule 4: Unique names
# =============================================================================


def validate_unique_names(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    """Flag each later declaration of a name, citing the first one."""
    by_name: dict[str, list[SkillManifest]] = defaultdict(list)
    for skill in snapshot.skills:
        if skill.name:
            by_name[skill.name].append(skill)

    for name in sorted(by_name):
        declared = sorted(by_name[name], key=lambda s: s.path)
        first = declared[0]
        for duplicate in declared[1:]:
            report.error(
                DUPLICATE_SKILL_NAME,
                f"skill name `{name}` is also declared in {first.path}",
                duplicate.path,
            )


# =============================================================================
# Rules 5-6: Registry drift and orphans
# =============================================================================


def validate_registry_drift(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    if snapshot.registry is None:
        return

    for skill in snapshot.skills:
        if skill.name is None or skill.name not in snapshot.registry:
            continue
        entry = snapshot.registry[skill.name]
        if entry.category is not None and skill.category is not None and entry.category != skill.category:
            report.warning(
                REGISTRY_DRIFT,
                f"registry category `{entry.category}` differs from SKILL.md category `{skill.category}`",
                skill.path,
            )
        if entry.tags is not None and skill.tags and set(entry.tags) != set(skill.tags):
            report.warning(REGISTRY_DRIFT, "registry tags differ from SKILL.md tags", skill.path)

    names = {skill.name for skill in snapshot.skills if skill.name}
    for name in sorted(snapshot.registry):
        if name not in names:
            report.warning(
                ORPHAN_REGISTRY_ENTRY,
                f"registry lists `{name}` but no SKILL.md declares it",
                snapshot.registry_path,
            )


# =============================================================================
# Rule 8: Unique registry entries
# =============================================================================


def validate_registry_uniqueness(snapshot: CorpusSnapshot, report: ValidationReport) -> None:
    for name in snapshot.registry_duplicates:
        report.error(
            DUPLICATE_REGISTRY_ENTRY,
            f"registry lists `{name}` more than once; only one entry may carry its version",
            snapshot.registry_path,
        )


# =============================================================================
# Main Validation Function
# =============================================================================


def validate_cross_references(snapshot: CorpusSnapshot, report: ValidationReport | None = None) -> ValidationReport:
    """Run all cross-reference rules over the snapshot.

    Args:
        snapshot: Corpus loaded by skills_corpus.load_corpus
        report: Optional existing report to add results to

    Returns:
        ValidationReport with all cross-reference results
    """
    if report is None:
        report = ValidationReport()

    validate_version_sync(snapshot, report)
    validate_section_refs(snapshot, report)
    validate_empty_sections(snapshot, report)
    validate_extends_refs(snapshot, report)
    validate_unique_names(snapshot, report)
    validate_registry_drift(snapshot, report)
    validate_registry_uniqueness(snapshot, report)

    return report
