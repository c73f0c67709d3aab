#!/usr/bin/env python3
"""
Skills Audit - Common Module

Shared validation infrastructure for the skills audit tooling.
This module contains:
- Type definitions (Level, ValidationResult, ValidationReport)
- Corpus constants (categories, statuses, impact levels, name rules)
- Rule identifiers and the exception hierarchy
- Utility functions (exit codes, color formatting, console helpers)

All individual validators should import from this module to ensure consistency.
"""

from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass, field
from typing import Literal, NoReturn, TextIO

# =============================================================================
# Type Definitions
# =============================================================================

# Validation result severity levels
# - ERROR: always blocks validation (non-zero exit code)
# - WARNING: blocks only in --strict mode
# - INFO: informational only, shown in verbose mode
# - PASSED: check passed, shown in verbose mode
Level = Literal["ERROR", "WARNING", "INFO", "PASSED"]

LEVELS: tuple[Level, ...] = ("ERROR", "WARNING", "INFO", "PASSED")

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_OK = 0  # No violations (or only WARNING/INFO/PASSED outside --strict)
EXIT_VIOLATIONS = 1  # One or more violations found
EXIT_FATAL = 2  # Unrecoverable error (unreadable path, malformed registry)

# =============================================================================
# Rule Identifiers
# =============================================================================

MALFORMED_FRONTMATTER = "MalformedFrontmatterError"
SCHEMA_VIOLATION = "SchemaViolation"
VERSION_MISMATCH = "VersionMismatchError"
UNKNOWN_SECTION = "UnknownSectionError"
DANGLING_EXTENDS = "DanglingExtendsError"
DUPLICATE_SKILL_NAME = "DuplicateSkillNameError"
DUPLICATE_REGISTRY_ENTRY = "DuplicateRegistryEntryError"

# Advisory rules (WARNING level)
STRUCTURE_WARNING = "StructureWarning"
BROKEN_LINK = "BrokenLocalLink"
REGISTRY_DRIFT = "RegistryDrift"
ORPHAN_REGISTRY_ENTRY = "OrphanRegistryEntry"
EMPTY_SECTION = "EmptySection"
REGISTRY_MISSING = "RegistryMissing"

# =============================================================================
# Corpus Constants
# =============================================================================

VALID_CATEGORIES = {"universal", "platform", "framework", "design", "agent"}

VALID_STATUSES = {"ready", "scaffold"}

# Ordered from most to least severe
VALID_IMPACTS = ("CRITICAL", "HIGH", "MEDIUM-HIGH", "MEDIUM", "LOW-MEDIUM", "LOW")

# Keys recognized in SKILL.md frontmatter; anything else is a violation
SKILL_FRONTMATTER_KEYS = {
    "name",
    "description",
    "category",
    "tags",
    "status",
    "version",
    "extends",
    "license",
    "allowed-tools",
    "compatibility",
    "metadata",
}

# Keys recognized in rule file frontmatter
RULE_FRONTMATTER_KEYS = {"title", "impact", "impactDescription", "tags"}

SKILL_MANIFEST = "skill-manifest"
RULE_FILE = "rule-file"
SKILL_FILENAME = "SKILL.md"
SECTIONS_FILENAME = "_sections.md"
REGISTRY_FILENAME = "marketplace.json"
DRAFTS_DIRNAME = "_drafts"

# Directories to skip when scanning (cache dirs, hidden dirs, etc.)
SKIP_DIRS = {
    ".ruff_cache",
    ".mypy_cache",
    ".git",
    "__pycache__",
    ".venv",
    "node_modules",
    ".pytest_cache",
    ".tox",
    "dist",
    "build",
}

# Name validation pattern (kebab-case)
NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
RESERVED_NAME_PATTERN = re.compile(r"(claude|anthropic)", re.IGNORECASE)
TRIGGER_PATTERN = re.compile(r"\b(use when|when users say|when)\b", re.IGNORECASE)
BUILD_PATTERN = re.compile(r"^[1-9]\d*$")

MAX_NAME_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 1024

# =============================================================================
# Exceptions
# =============================================================================


class AuditError(Exception):
    """Base class for errors raised by the audit tooling."""


class MalformedFrontmatterError(AuditError):
    """The leading YAML block is missing, unterminated, or unparsable."""


class RegistryError(AuditError):
    """The registry file cannot be read or parsed. Aborts the run."""


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ValidationResult:
    """Single validation check result.

    Attributes:
        level: Severity level (ERROR, WARNING, INFO, PASSED)
        message: Human-readable description of the result
        rule_id: Identifier of the rule that produced the result
        file: Optional file path (relative to the audited root)
        line: Optional line number in the file
    """

    level: Level
    message: str
    rule_id: str = ""
    file: str | None = None
    line: int | None = None

    def sort_key(self) -> tuple[str, int, str, str]:
        return (self.file or "", LEVELS.index(self.level), self.rule_id, self.message)

    def format_line(self) -> str:
        """Format as `<file>: <rule-id>: <message>`."""
        message = f"{self.message} (line {self.line})" if self.line else self.message
        return f"{self.file or '-'}: {self.rule_id}: {message}"

    def to_dict(self) -> dict[str, str | int | None]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, str | int | None] = {"level": self.level, "rule_id": self.rule_id, "message": self.message}
        if self.file is not None:
            result["file"] = self.file
        if self.line is not None:
            result["line"] = self.line
        return result


@dataclass
class ValidationReport:
    """Validation report with results collection.

    Validators add results instead of raising, so a single pass can report
    everything wrong with the corpus (Error Accumulation Pattern).
    """

    results: list[ValidationResult] = field(default_factory=list)

    def add(
        self,
        level: Level,
        message: str,
        rule_id: str = "",
        file: str | None = None,
        line: int | None = None,
    ) -> None:
        """Add a validation result."""
        self.results.append(ValidationResult(level, message, rule_id, file, line))

    def passed(self, message: str, file: str | None = None) -> None:
        """Add a passed check."""
        self.add("PASSED", message, "", file)

    def info(self, message: str, file: str | None = None) -> None:
        """Add an info message."""
        self.add("INFO", message, "", file)

    def warning(self, rule_id: str, message: str, file: str | None = None, line: int | None = None) -> None:
        """Add a warning; blocks only in --strict mode."""
        self.add("WARNING", message, rule_id, file, line)

    def error(self, rule_id: str, message: str, file: str | None = None, line: int | None = None) -> None:
        """Add a violation."""
        self.add("ERROR", message, rule_id, file, line)

    @property
    def has_error(self) -> bool:
        return any(r.level == "ERROR" for r in self.results)

    @property
    def has_warning(self) -> bool:
        return any(r.level == "WARNING" for r in self.results)

    @property
    def exit_code(self) -> int:
        """Exit code ignoring warnings."""
        return EXIT_VIOLATIONS if self.has_error else EXIT_OK

    def exit_code_strict(self) -> int:
        """Exit code for --strict mode (WARNING also blocks)."""
        if self.has_error or self.has_warning:
            return EXIT_VIOLATIONS
        return EXIT_OK

    def count_by_level(self) -> dict[str, int]:
        """Get count of results by level."""
        counts: dict[str, int] = {level: 0 for level in LEVELS}
        for r in self.results:
            counts[r.level] += 1
        return counts

    def get_violations(self, strict: bool = False) -> list[ValidationResult]:
        """Get blocking results sorted deterministically."""
        blocking = {"ERROR", "WARNING"} if strict else {"ERROR"}
        return sorted((r for r in self.results if r.level in blocking), key=ValidationResult.sort_key)

    def get_by_level(self, level: Level) -> list[ValidationResult]:
        return sorted((r for r in self.results if r.level == level), key=ValidationResult.sort_key)

    def to_dict(self, strict: bool = False) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "exit_code": self.exit_code_strict() if strict else self.exit_code,
            "strict": strict,
            "counts": self.count_by_level(),
            "results": [r.to_dict() for r in sorted(self.results, key=ValidationResult.sort_key)],
        }

    def to_json(self, indent: int = 2, strict: bool = False) -> str:
        """Convert report to JSON string."""
        return json.dumps(self.to_dict(strict), indent=indent)


# =============================================================================
# Utility Functions
# =============================================================================


def is_valid_kebab_case(name: str) -> bool:
    """Check if name follows kebab-case convention."""
    return bool(NAME_PATTERN.match(name))


def env_flag(name: str) -> bool:
    """Read a boolean flag from the environment ("1", "true", "yes")."""
    return os.environ.get(name, "").strip().lower() in {"1", "true", "yes", "on"}


# =============================================================================
# Color Formatting (for terminal output)
# =============================================================================

# ANSI color codes
COLORS = {
    "ERROR": "\033[91m",  # Red
    "WARNING": "\033[93m",  # Yellow
    "INFO": "\033[36m",  # Cyan
    "PASSED": "\033[92m",  # Green
    "RESET": "\033[0m",
    "BOLD": "\033[1m",
}


def use_color(stream: TextIO) -> bool:
    """Colors only on a tty and only when NO_COLOR is unset."""
    if "NO_COLOR" in os.environ:
        return False
    isatty = getattr(stream, "isatty", None)
    return bool(isatty and isatty())


def colorize(text: str, level: str, stream: TextIO | None = None) -> str:
    """Apply color to text based on level."""
    if not use_color(stream or sys.stdout):
        return text
    color = COLORS.get(level, "")
    return f"{color}{text}{COLORS['RESET']}"


# =============================================================================
# Console Helpers
# =============================================================================


def info(msg: str) -> None:
    print(f"{colorize('[INFO]', 'INFO', sys.stderr)} {msg}", file=sys.stderr)


def success(msg: str) -> None:
    print(f"{colorize('[OK]', 'PASSED', sys.stderr)}   {msg}", file=sys.stderr)


def warn(msg: str) -> None:
    print(f"{colorize('[WARN]', 'WARNING', sys.stderr)} {msg}", file=sys.stderr)


def error(msg: str) -> None:
    print(f"{colorize('[ERR]', 'ERROR', sys.stderr)}  {msg}", file=sys.stderr)


def fatal(msg: str, code: int = EXIT_FATAL) -> NoReturn:
    """Print error and exit."""
    error(msg)
    sys.exit(code)
