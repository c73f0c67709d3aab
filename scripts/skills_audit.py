#!/usr/bin/env python3
"""
Skills Audit - Corpus Consistency Checker

Audits a skills repository: SKILL.md frontmatter, rule files, section
indexes and the marketplace.json registry. Prints one line per violation:

    <file>: <rule-id>: <message>

Usage:
    skills-audit                      # audit the current directory
    skills-audit path/to/repo
    skills-audit path/to/repo --strict
    skills-audit path/to/repo --no-strict        # override SKILLS_AUDIT_STRICT
    skills-audit path/to/repo --json
    skills-audit path/to/repo --registry path/to/marketplace.json

Environment:
    SKILLS_AUDIT_REGISTRY  default for --registry
    SKILLS_AUDIT_STRICT    treat warnings as errors when set to 1/true
    NO_COLOR               disable ANSI colors

Exit codes:
    0 - No violations
    1 - One or more violations found
    2 - Unrecoverable error (missing path, unreadable or malformed registry)
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import TextIO

from audit_common import (
    EXIT_FATAL,
    REGISTRY_MISSING,
    AuditError,
    ValidationReport,
    colorize,
    env_flag,
    error,
    info,
)
from skills_corpus import CorpusSnapshot, load_corpus
from validate_schema import validate_corpus_schema
from validate_xref import validate_cross_references


def audit_snapshot(snapshot: CorpusSnapshot) -> ValidationReport:
    """Run every validator over an already loaded snapshot."""
    report = ValidationReport()
    report.results.extend(snapshot.load_failures)

    if snapshot.registry is None and snapshot.skills:
        if snapshot.registry_path:
            report.warning(
                REGISTRY_MISSING,
                "registry has no `skills` index; version checks run against an empty registry",
                snapshot.registry_path,
            )
        else:
            report.warning(
                REGISTRY_MISSING, "no marketplace.json registry found; version checks run against an empty registry"
            )

    validate_corpus_schema(snapshot, report)
    validate_cross_references(snapshot, report)

    report.info(f"Skill files audited: {len(snapshot.skills) + _failed_manifests(snapshot)}")
    report.info(f"Active skills audited: {len(snapshot.active_skills)}")
    report.info(f"Rule files audited: {len(snapshot.rules)}")
    return report


def _failed_manifests(snapshot: CorpusSnapshot) -> int:
    return sum(1 for r in snapshot.load_failures if r.file and r.file.endswith("SKILL.md"))


def run_audit(
    root: str | Path,
    registry_path: str | Path | None = None,
    skills_dir: str | Path | None = None,
) -> ValidationReport:
    """Load the corpus at `root` and audit it.

    Raises:
        AuditError: the root or registry cannot be used (exit code 2)
    """
    snapshot = load_corpus(root, registry_path=registry_path, skills_dir=skills_dir)
    return audit_snapshot(snapshot)


# =============================================================================
# Output Functions
# =============================================================================


def emit_report(report: ValidationReport, stream: TextIO | None = None, strict: bool = False) -> int:
    """Print violations grouped by file and return the exit code.

    Errors and warnings are both listed; warnings only affect the exit code
    in strict mode. Ordering is by file path, then severity, then rule id, so
    repeated runs over an unchanged tree print identical output.
    """
    out = stream or sys.stdout
    errors = report.get_by_level("ERROR")
    warnings = report.get_by_level("WARNING")

    listed = sorted(errors + warnings, key=lambda r: r.sort_key())
    for result in listed:
        level = "ERROR" if result.level == "ERROR" or strict else "WARNING"
        print(colorize(result.format_line(), level, out), file=out)

    if not listed:
        print(colorize("PASS: no issues found.", "PASSED", out), file=out)
    else:
        print(f"Summary: errors={len(errors)}, warnings={len(warnings)}", file=out)

    return report.exit_code_strict() if strict else report.exit_code


def emit_json(report: ValidationReport, stream: TextIO | None = None, strict: bool = False) -> int:
    out = stream or sys.stdout
    print(report.to_json(strict=strict), file=out)
    return report.exit_code_strict() if strict else report.exit_code


# =============================================================================
# Main
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="skills-audit",
        description="Audit skill manifests, rule files and the registry for consistency",
    )
    parser.add_argument("path", nargs="?", default=".", help="Repository root to audit (default: current directory)")
    parser.add_argument(
        "--strict",
        action=argparse.BooleanOptionalAction,
        default=env_flag("SKILLS_AUDIT_STRICT"),
        help="Treat warnings as errors (--no-strict overrides SKILLS_AUDIT_STRICT)",
    )
    parser.add_argument("--json", action="store_true", help="Output as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print audit counts to stderr")
    parser.add_argument(
        "--registry",
        default=os.environ.get("SKILLS_AUDIT_REGISTRY") or None,
        help="Registry file (default: <path>/marketplace.json)",
    )
    parser.add_argument("--skills-dir", default=None, help="Skills directory (default: <path>/skills)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        report = run_audit(args.path, registry_path=args.registry, skills_dir=args.skills_dir)
    except AuditError as e:
        error(str(e))
        return EXIT_FATAL

    if args.verbose:
        for result in report.get_by_level("INFO"):
            info(result.message)

    if args.json:
        return emit_json(report, strict=args.strict)
    return emit_report(report, strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
