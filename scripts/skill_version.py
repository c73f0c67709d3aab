#!/usr/bin/env python3
"""
Skills Audit - Version Bump

Sets or increments a skill's build version in SKILL.md (`metadata.version`,
or a top-level `version` when the manifest already uses one) and in the
matching marketplace.json entry, so the two never drift.

Usage:
    skill-version skills/my-skill            # increment (missing version -> 1)
    skill-version my-skill 12                # skill looked up by name
    skill-version skills/my-skill --dry-run
    skill-version --all                      # add version 1 wherever it is missing

A single bump first runs the skills audit over the repository and refuses
to write while it reports violations (`--no-audit` skips this).

Prints the new build number to stdout.
"""

from __future__ import annotations

import argparse
import copy
import json
import os
import sys
from pathlib import Path
from typing import Any

from audit_common import (
    EXIT_OK,
    EXIT_VIOLATIONS,
    SKILL_FILENAME,
    AuditError,
    fatal,
    info,
    success,
)
from frontmatter import coerce_version, parse_frontmatter, render_frontmatter, skill_version
from skills_audit import emit_report, run_audit
from skills_corpus import load_corpus, load_registry_data, locate_registry, registry_entries

INITIAL_BUILD = 1


def is_project_root(directory: Path) -> bool:
    return (directory / ".git").exists() or (directory / "skills").is_dir()


def find_project_root(start: Path) -> Path:
    """First directory at or above `start` holding `skills/` or `.git`."""
    for directory in [start, *start.parents]:
        if is_project_root(directory):
            return directory
    return start


def find_registry_upwards(start: Path) -> Path | None:
    """Nearest marketplace.json at or above `start`, never above the project root."""
    for directory in [start, *start.parents]:
        found = locate_registry(directory)
        if found is not None:
            return found
        if is_project_root(directory):
            return None
    return None


def resolve_skill_file(target: str | Path, root: Path | None = None) -> Path:
    """SKILL.md for a skill directory, a SKILL.md path, or a skill name.

    Names are matched against the `name` field, then the folder name, of the
    active skills under `root` (default: current directory).
    """
    path = Path(target)
    if path.exists() or len(path.parts) > 1 or path.suffix == ".md":
        skill_file = path / SKILL_FILENAME if path.is_dir() else path
        if not skill_file.is_file():
            raise AuditError(f"File not found: {skill_file}")
        return skill_file

    snapshot = load_corpus(root or Path.cwd(), with_registry=False)
    by_name = [s for s in snapshot.active_skills if s.name == str(target)]
    by_folder = [s for s in snapshot.active_skills if s.folder == str(target)]
    matches = by_name or by_folder
    if not matches:
        raise AuditError(f"Skill not found: {target}")
    return snapshot.root / matches[0].path


def next_build(frontmatter: dict[str, Any], requested: int | None) -> int:
    if requested is not None:
        return requested
    current = skill_version(frontmatter)
    return (current or 0) + 1


def set_build(frontmatter: dict[str, Any], build: int) -> dict[str, Any]:
    metadata = frontmatter.get("metadata")
    if "version" in frontmatter:
        frontmatter["version"] = build
        # Keep both fields equal when a manifest carries both.
        if isinstance(metadata, dict) and "version" in metadata:
            metadata["version"] = build
        return frontmatter
    if not isinstance(metadata, dict):
        metadata = {}
        frontmatter["metadata"] = metadata
    metadata["version"] = build
    return frontmatter


def write_registry(registry_file: Path, data: Any) -> None:
    registry_file.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def bump_skill_version(
    skill_path: Path,
    build: int | None = None,
    registry_path: Path | None = None,
    dry_run: bool = False,
) -> int:
    """Update SKILL.md and its registry entry to the same build number.

    The registry entry is checked before anything is written, so a skill
    missing from the registry leaves both files untouched.

    Returns:
        The new build number

    Raises:
        AuditError: SKILL.md missing or malformed, or skill not in registry
    """
    skill_file = resolve_skill_file(skill_path)
    frontmatter, body = parse_frontmatter(skill_file.read_text(encoding="utf-8"))
    new_build = next_build(frontmatter, build)
    skill_name = frontmatter.get("name") or skill_file.parent.name

    registry_file = registry_path or find_registry_upwards(skill_file.parent.resolve())
    registry_data: Any = None
    if registry_file is not None:
        registry_data = load_registry_data(registry_file)
        matching = [entry for name, entry in registry_entries(registry_data) or [] if name == skill_name]
        if not matching:
            raise AuditError(f"{skill_name} missing from {registry_file.name}")
        for entry in matching:
            entry["version"] = new_build

    if dry_run:
        return new_build

    skill_file.write_text(render_frontmatter(set_build(frontmatter, new_build), body), encoding="utf-8")
    if registry_file is not None:
        write_registry(registry_file, registry_data)
    return new_build


def backfill_versions(
    root: Path,
    build: int = INITIAL_BUILD,
    registry_path: Path | None = None,
    dry_run: bool = False,
) -> tuple[list[str], list[str]]:
    """Give every unversioned active skill and registry entry version `build`.

    Drafts and manifests that fail to parse are left alone, as are entries
    and skills that already carry a version.

    Returns:
        (updated SKILL.md paths, updated registry entry names)

    Raises:
        AuditError: root missing, or registry unreadable or malformed
    """
    snapshot = load_corpus(root, with_registry=False)
    updated_skills: list[str] = []
    for skill in snapshot.active_skills:
        if skill.version is not None:
            continue
        updated_skills.append(skill.path)
        if not dry_run:
            frontmatter = copy.deepcopy(dict(skill.frontmatter))
            skill_file = snapshot.root / skill.path
            skill_file.write_text(render_frontmatter(set_build(frontmatter, build), skill.body), encoding="utf-8")

    registry_file = registry_path or locate_registry(snapshot.root)
    updated_entries: list[str] = []
    if registry_file is not None:
        registry_data = load_registry_data(registry_file)
        for name, entry in registry_entries(registry_data) or []:
            if entry.get("version") is None:
                entry["version"] = build
                updated_entries.append(name)
        if updated_entries and not dry_run:
            write_registry(registry_file, registry_data)

    return updated_skills, updated_entries


def audit_gate(skill_file: Path, registry_path: Path | None) -> None:
    """Exit with violations printed to stderr unless the repository audit passes."""
    root = find_project_root(skill_file.parent.resolve())
    info(f"Running skills audit in {root}...")
    report = run_audit(root, registry_path=registry_path)
    if report.has_error:
        emit_report(report, stream=sys.stderr)
        fatal("Skills audit failed. Fix issues before releasing.", EXIT_VIOLATIONS)
    success("Skills audit passed")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="skill-version", description="Bump a skill's build version")
    parser.add_argument("skill", nargs="?", default=None, help="Skill directory, its SKILL.md, or the skill name")
    parser.add_argument("build", nargs="?", default=None, help="Set this exact build (positive integer)")
    parser.add_argument(
        "--registry",
        default=os.environ.get("SKILLS_AUDIT_REGISTRY") or None,
        help="Registry file (default: nearest marketplace.json)",
    )
    parser.add_argument("--root", default=".", help="Repository root for name lookup and --all (default: .)")
    parser.add_argument("--all", action="store_true", help="Add version 1 to every unversioned skill and entry")
    parser.add_argument(
        "--audit",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Refuse to bump while the skills audit reports violations (default: on)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the new build without writing files")
    args = parser.parse_args(argv)
    registry_path = Path(args.registry) if args.registry else None

    if args.all:
        if args.skill is not None:
            parser.error("--all takes no skill argument")
        try:
            skills, entries = backfill_versions(Path(args.root), registry_path=registry_path, dry_run=args.dry_run)
        except AuditError as e:
            fatal(str(e), EXIT_VIOLATIONS)
        verb = "would add" if args.dry_run else "added"
        for path in skills:
            info(f"{path}: {verb} version {INITIAL_BUILD}")
        for name in entries:
            info(f"registry entry {name}: {verb} version {INITIAL_BUILD}")
        success(f"{len(skills)} SKILL.md files and {len(entries)} registry entries versioned")
        return EXIT_OK

    if args.skill is None:
        parser.error("a skill path or name is required (or use --all)")

    build: int | None = None
    if args.build is not None:
        try:
            build = coerce_version(args.build)
        except ValueError:
            fatal("Build must be a positive integer (e.g., 1, 2, 3)", EXIT_VIOLATIONS)

    try:
        skill_file = resolve_skill_file(args.skill, Path(args.root))
        if args.audit:
            audit_gate(skill_file, registry_path)
        new_build = bump_skill_version(
            skill_file,
            build=build,
            registry_path=registry_path,
            dry_run=args.dry_run,
        )
    except AuditError as e:
        fatal(str(e), EXIT_VIOLATIONS)

    if args.dry_run:
        info(f"dry run: {args.skill} would move to build {new_build}")
    else:
        success(f"{args.skill} bumped to build {new_build}")
    print(new_build)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
