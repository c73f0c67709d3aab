#!/usr/bin/env python3
"""
Skills Audit - Corpus Loader

Walks a skills tree once and builds an immutable CorpusSnapshot:
- every SKILL.md manifest (frontmatter + body)
- every rule file under a skill's rules/ directory
- the section index declared in each skill's rules/_sections.md
- the central registry (marketplace.json)

Per-file parse failures are recorded on the snapshot instead of aborting the
load. A missing root or a malformed registry raises, since no meaningful
audit is possible without them.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from audit_common import (
    DRAFTS_DIRNAME,
    MALFORMED_FRONTMATTER,
    REGISTRY_FILENAME,
    SECTIONS_FILENAME,
    SKILL_FILENAME,
    SKIP_DIRS,
    AuditError,
    MalformedFrontmatterError,
    RegistryError,
    ValidationResult,
)
from frontmatter import coerce_version, parse_frontmatter, skill_version

# `## 1. Eliminating Waterfalls (async)`
SECTION_HEADING_RE = re.compile(r"^##\s+(?:(\d+)\.\s+)?(.+?)\s*\(([A-Za-z0-9_-]+)\)\s*$")
SECTION_IMPACT_RE = re.compile(r"^\*\*Impact:\*\*\s*([A-Za-z-]+)")
SECTION_DESCRIPTION_RE = re.compile(r"^\*\*Description:\*\*\s*(.*)$")

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class SkillManifest:
    """Identity record for one skill, read from its SKILL.md."""

    path: str
    skill_dir: str
    folder: str
    frontmatter: Mapping[str, Any]
    body: str
    is_draft: bool = False

    @property
    def name(self) -> str | None:
        name = self.frontmatter.get("name")
        return name if isinstance(name, str) and name else None

    @property
    def description(self) -> str:
        desc = self.frontmatter.get("description")
        return desc if isinstance(desc, str) else ""

    @property
    def category(self) -> Any:
        return self.frontmatter.get("category")

    @property
    def tags(self) -> tuple[str, ...]:
        tags = self.frontmatter.get("tags")
        if isinstance(tags, list):
            return tuple(str(t) for t in tags)
        return ()

    @property
    def status(self) -> Any:
        return self.frontmatter.get("status")

    @property
    def version(self) -> int | None:
        return skill_version(dict(self.frontmatter))

    @property
    def extends(self) -> str | None:
        extends = self.frontmatter.get("extends")
        return extends if isinstance(extends, str) and extends else None


@dataclass(frozen=True)
class RuleFile:
    """One behavioral rule belonging to the skill that contains it."""

    path: str
    skill_dir: str
    frontmatter: Mapping[str, Any]
    body: str

    @property
    def prefix(self) -> str:
        """Section prefix: filename stem up to the first hyphen."""
        stem = Path(self.path).stem
        return stem.split("-", 1)[0]

    @property
    def title(self) -> Any:
        return self.frontmatter.get("title")

    @property
    def impact(self) -> Any:
        return self.frontmatter.get("impact")


@dataclass(frozen=True)
class Section:
    """Grouping metadata for rules within a skill."""

    id: str
    title: str
    impact: str
    description: str
    index: int
    file: str
    line: int


@dataclass(frozen=True)
class RegistryEntry:
    """Registry mirror of a subset of SkillManifest fields."""

    name: str
    version: int | None
    raw_version: Any = None
    category: Any = None
    tags: tuple[str, ...] | None = None


@dataclass(frozen=True)
class CorpusSnapshot:
    """Immutable view of the skills tree taken at invocation time."""

    root: Path
    skills_root: Path
    skills: tuple[SkillManifest, ...] = ()
    rules: tuple[RuleFile, ...] = ()
    sections: Mapping[str, tuple[Section, ...]] = field(default_factory=dict)
    registry: Mapping[str, RegistryEntry] | None = None
    registry_path: str | None = None
    registry_duplicates: tuple[str, ...] = ()
    load_failures: tuple[ValidationResult, ...] = ()

    def sections_for(self, skill_dir: str) -> tuple[Section, ...]:
        return self.sections.get(skill_dir, ())

    def rules_for(self, skill_dir: str) -> list[RuleFile]:
        return [r for r in self.rules if r.skill_dir == skill_dir]

    @property
    def active_skills(self) -> list[SkillManifest]:
        return [s for s in self.skills if not s.is_draft]


# =============================================================================
# Helper Functions
# =============================================================================


def should_skip_dir(path: Path) -> bool:
    """Check if a directory should be skipped during scanning."""
    name = path.name
    return name in SKIP_DIRS or (name.startswith(".") and name not in {".", ".."})


def rel(path: Path, root: Path) -> str:
    """Path relative to the audited root, always with forward slashes."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def find_skill_files(skills_root: Path) -> list[Path]:
    """All SKILL.md files under skills_root, sorted, skipping cache dirs."""
    found: list[Path] = []
    for skill_file in skills_root.rglob(SKILL_FILENAME):
        if not skill_file.is_file():
            continue
        if any(should_skip_dir(p) for p in skill_file.relative_to(skills_root).parents if p != Path(".")):
            continue
        found.append(skill_file)
    return sorted(found)


def find_rule_files(skill_dir: Path) -> list[Path]:
    """Rule files in <skill>/rules/, excluding `_`-prefixed support files."""
    rules_dir = skill_dir / "rules"
    if not rules_dir.is_dir():
        return []
    return sorted(p for p in rules_dir.rglob("*.md") if p.is_file() and not p.name.startswith("_"))


def read_document(path: Path) -> tuple[dict[str, Any], str]:
    """Read and parse a markdown document, mapping IO errors to parse errors."""
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedFrontmatterError(f"File is not valid UTF-8: {e}") from e
    except OSError as e:
        raise MalformedFrontmatterError(f"Cannot read file: {e}") from e
    return parse_frontmatter(text)


def parse_sections(text: str, file: str) -> tuple[Section, ...]:
    """Parse a _sections.md index into Section records.

    Each section is a level-2 heading `## <n>. <Title> (<id>)` followed by
    `**Impact:**` and `**Description:**` lines. Headings without a number
    take their position as ordering index.
    """
    sections: list[Section] = []
    current: dict[str, Any] | None = None

    def flush() -> None:
        if current is not None:
            sections.append(Section(**current))

    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        heading = SECTION_HEADING_RE.match(stripped)
        if heading:
            flush()
            number, title, section_id = heading.groups()
            current = {
                "id": section_id,
                "title": title.strip(),
                "impact": "",
                "description": "",
                "index": int(number) if number else len(sections) + 1,
                "file": file,
                "line": lineno,
            }
            continue
        if current is None:
            continue
        impact = SECTION_IMPACT_RE.match(stripped)
        if impact:
            current["impact"] = impact.group(1).upper()
            continue
        description = SECTION_DESCRIPTION_RE.match(stripped)
        if description:
            current["description"] = description.group(1).strip()

    flush()
    return tuple(sections)


# =============================================================================
# Registry
# =============================================================================


def locate_registry(root: Path) -> Path | None:
    """Find marketplace.json at the root or under .claude-plugin/."""
    for candidate in (root / REGISTRY_FILENAME, root / ".claude-plugin" / REGISTRY_FILENAME):
        if candidate.is_file():
            return candidate
    return None


def registry_entries(data: Any) -> list[tuple[str, dict[str, Any]]] | None:
    """(name, raw entry) pairs, in file order, for every accepted registry shape.

    Shapes:
        {"skills": [{"name": "x", ...}, ...]}
        {"skills": {"x": {...}, ...}}
        {"x": {...}, ...}

    An object without a `skills` key whose values are not all objects (a
    plugin marketplace manifest, for example) holds no skill index and yields
    None. Repeated names in a `skills` list are all returned.

    Raises:
        RegistryError: the document is not an object, or its `skills` index
            is malformed
    """
    if not isinstance(data, dict):
        raise RegistryError("Registry must be a JSON object")

    if "skills" not in data:
        if not all(isinstance(entry, dict) for entry in data.values()):
            return None
        return [(str(name), entry) for name, entry in data.items()]

    skills = data["skills"]
    if isinstance(skills, list):
        pairs: list[tuple[str, dict[str, Any]]] = []
        for i, entry in enumerate(skills):
            if not isinstance(entry, dict) or not isinstance(entry.get("name"), str):
                raise RegistryError(f"skills[{i}] must be an object with a string 'name'")
            pairs.append((entry["name"], entry))
        return pairs

    if isinstance(skills, dict):
        for name, entry in skills.items():
            if not isinstance(entry, dict):
                raise RegistryError(f"Registry entry '{name}' must be an object")
        return [(str(name), entry) for name, entry in skills.items()]

    raise RegistryError("Registry 'skills' must be a list or an object")


def duplicate_registry_names(pairs: list[tuple[str, dict[str, Any]]]) -> tuple[str, ...]:
    seen: set[str] = set()
    duplicates: set[str] = set()
    for name, _ in pairs:
        if name in seen:
            duplicates.add(name)
        seen.add(name)
    return tuple(sorted(duplicates))


def load_registry_data(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise RegistryError(f"Invalid JSON in {path}: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise RegistryError(f"Cannot read registry {path}: {e}") from e


def build_registry(pairs: list[tuple[str, dict[str, Any]]]) -> dict[str, RegistryEntry]:
    entries: dict[str, RegistryEntry] = {}
    for name, raw in pairs:
        raw_version = raw.get("version")
        try:
            version = coerce_version(raw_version) if raw_version is not None else None
        except ValueError:
            version = None
        tags = raw.get("tags")
        entries[name] = RegistryEntry(
            name=name,
            version=version,
            raw_version=raw_version,
            category=raw.get("category"),
            tags=tuple(str(t) for t in tags) if isinstance(tags, list) else None,
        )
    return entries


def load_registry(path: Path) -> dict[str, RegistryEntry]:
    """Load the registry into RegistryEntry records keyed by skill name.

    A document with no skill index loads as an empty registry.
    """
    return build_registry(registry_entries(load_registry_data(path)) or [])


# =============================================================================
# Main Loader
# =============================================================================


def load_corpus(
    root: str | Path,
    registry_path: str | Path | None = None,
    skills_dir: str | Path | None = None,
    with_registry: bool = True,
) -> CorpusSnapshot:
    """Load the skills tree rooted at `root` into a CorpusSnapshot.

    Args:
        root: Repository root (or a skills directory)
        registry_path: Explicit registry file; defaults to a marketplace.json
            found at the root
        skills_dir: Directory holding the skills; defaults to <root>/skills
            when present, else the root itself
        with_registry: Skip registry loading entirely when False

    The snapshot registry is None when no registry file exists or the file
    found holds no skill index; `registry_path` still names such a file.

    Raises:
        AuditError: root does not exist or is not a directory
        RegistryError: registry unreadable or malformed
    """
    root = Path(root).resolve()
    if not root.exists():
        raise AuditError(f"Path does not exist: {root}")
    if not root.is_dir():
        raise AuditError(f"Path is not a directory: {root}")

    if skills_dir is not None:
        skills_root = Path(skills_dir).resolve()
        if not skills_root.is_dir():
            raise AuditError(f"Skills directory does not exist: {skills_root}")
    elif (root / "skills").is_dir():
        skills_root = root / "skills"
    else:
        skills_root = root

    failures: list[ValidationResult] = []
    skills: list[SkillManifest] = []
    rules: list[RuleFile] = []
    sections: dict[str, tuple[Section, ...]] = {}

    for skill_file in find_skill_files(skills_root):
        skill_path = rel(skill_file, root)
        skill_dir = rel(skill_file.parent, root)
        is_draft = DRAFTS_DIRNAME in skill_file.relative_to(skills_root).parts

        try:
            frontmatter, body = read_document(skill_file)
        except MalformedFrontmatterError as e:
            failures.append(ValidationResult("ERROR", str(e), MALFORMED_FRONTMATTER, skill_path))
        else:
            skills.append(
                SkillManifest(
                    path=skill_path,
                    skill_dir=skill_dir,
                    folder=skill_file.parent.name,
                    frontmatter=frontmatter,
                    body=body,
                    is_draft=is_draft,
                )
            )

        # Rules belong to the directory, so they are loaded even when the
        # manifest itself failed to parse.
        sections_file = skill_file.parent / "rules" / SECTIONS_FILENAME
        if sections_file.is_file():
            try:
                sections_text = sections_file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                failures.append(
                    ValidationResult("ERROR", f"Cannot read file: {e}", MALFORMED_FRONTMATTER, rel(sections_file, root))
                )
            else:
                sections[skill_dir] = parse_sections(sections_text, rel(sections_file, root))

        for rule_file in find_rule_files(skill_file.parent):
            rule_path = rel(rule_file, root)
            try:
                frontmatter, body = read_document(rule_file)
            except MalformedFrontmatterError as e:
                failures.append(ValidationResult("ERROR", str(e), MALFORMED_FRONTMATTER, rule_path))
                continue
            rules.append(RuleFile(path=rule_path, skill_dir=skill_dir, frontmatter=frontmatter, body=body))

    registry: dict[str, RegistryEntry] | None = None
    registry_rel: str | None = None
    registry_duplicates: tuple[str, ...] = ()
    if with_registry:
        resolved = Path(registry_path).resolve() if registry_path else locate_registry(root)
        if resolved is not None:
            if not resolved.is_file():
                raise RegistryError(f"Registry file not found: {resolved}")
            registry_rel = rel(resolved, root)
            pairs = registry_entries(load_registry_data(resolved))
            if pairs is not None:
                registry = build_registry(pairs)
                registry_duplicates = duplicate_registry_names(pairs)

    return CorpusSnapshot(
        root=root,
        skills_root=skills_root,
        skills=tuple(skills),
        rules=tuple(rules),
        sections=sections,
        registry=registry,
        registry_path=registry_rel,
        registry_duplicates=registry_duplicates,
        load_failures=tuple(failures),
    )
