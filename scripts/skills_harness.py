#!/usr/bin/env python3
"""
Skills Audit - Quality Harness

Runs three suites over every active (non-draft) skill:

trigger:      the `### Positive Trigger` example prompt must overlap the
              description's keywords more than the `### Non-Trigger` prompt
functional:   Workflow / Examples / Troubleshooting sections plus literal
              `- Error:`, `- Cause:`, `- Solution:` and `Expected behavior:`
performance:  body <= 500 lines, <= 5000 words, description <= 1024 chars

Usage:
    skills-harness [path]

Exit codes:
    0 - All suites passed
    1 - One or more failures
    2 - Unrecoverable error
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path

from audit_common import (
    EXIT_FATAL,
    EXIT_OK,
    EXIT_VIOLATIONS,
    MAX_DESCRIPTION_LENGTH,
    AuditError,
    colorize,
    error,
    warn,
)
from skills_corpus import CorpusSnapshot, SkillManifest, load_corpus
from validate_schema import REQUIRED_SKILL_SECTIONS

MAX_BODY_LINES = 500
MAX_BODY_WORDS = 5000

STOPWORDS = set(
    """
    the and for with from this that these those use when users say your about into over under
    not any all one two three four five six seven eight nine ten only most more less should
    where what who why how will would could can must have has had than then also
    """.split()
)

POSITIVE_BLOCK_RE = re.compile(
    r"^###\s+Positive Trigger\b(.*?)(?=^###\s+Non-Trigger\b|^##\s+Troubleshooting\b|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
NEGATIVE_BLOCK_RE = re.compile(
    r"^###\s+Non-Trigger\b(.*?)(?=^##\s+Troubleshooting\b|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
USER_PROMPT_RE = re.compile(r"User:\s*[\"“](.+?)[\"”]", re.DOTALL)
KEYWORD_RE = re.compile(r"[a-z][a-z0-9+-]{3,}")

FUNCTIONAL_MARKERS = ("- Error:", "- Cause:", "- Solution:", "Expected behavior:")

SUITES = ("trigger", "functional", "performance")


@dataclass
class Failure:
    suite: str
    path: str
    message: str


@dataclass
class HarnessResult:
    """Per-suite case/pass counts and the failures collected."""

    cases: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SUITES})
    passes: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SUITES})
    failures: list[Failure] = field(default_factory=list)
    skills_tested: int = 0

    def record(self, suite: str, path: str, message: str | None) -> None:
        self.cases[suite] += 1
        if message is None:
            self.passes[suite] += 1
        else:
            self.failures.append(Failure(suite, path, message))

    @property
    def exit_code(self) -> int:
        return EXIT_VIOLATIONS if self.failures else EXIT_OK


def keyword_set(description: str) -> list[str]:
    """Distinct description keywords (4+ chars, stopwords removed), in order."""
    seen: list[str] = []
    for token in KEYWORD_RE.findall(description.lower()):
        if token not in STOPWORDS and token not in seen:
            seen.append(token)
    return seen


def extract_user_prompt(block: str) -> str:
    match = USER_PROMPT_RE.search(block)
    return match.group(1) if match else ""


def check_trigger(skill: SkillManifest) -> str | None:
    positive = POSITIVE_BLOCK_RE.search(skill.body)
    negative = NEGATIVE_BLOCK_RE.search(skill.body)
    positive_prompt = extract_user_prompt(positive.group(1) if positive else "")
    negative_prompt = extract_user_prompt(negative.group(1) if negative else "")

    if not positive_prompt or not negative_prompt:
        return "Missing positive/non-trigger example user prompts."

    keywords = keyword_set(skill.description)
    positive_hits = sum(1 for token in keywords if token in positive_prompt.lower())
    negative_hits = sum(1 for token in keywords if token in negative_prompt.lower())

    if positive_hits == 0:
        return "Positive trigger prompt has zero overlap with description keywords."
    if positive_hits <= negative_hits:
        return "Positive trigger is not more aligned than non-trigger prompt."
    return None


def check_functional(skill: SkillManifest) -> str | None:
    has_sections = all(pattern.search(skill.body) for pattern in REQUIRED_SKILL_SECTIONS.values())
    has_markers = all(marker in skill.body for marker in FUNCTIONAL_MARKERS)
    if has_sections and has_markers:
        return None
    return "Missing required structure (Workflow/Examples/Troubleshooting/Error-Cause-Solution/Expected behavior)."


def check_performance(skill: SkillManifest) -> str | None:
    body_lines = len(skill.body.splitlines())
    body_words = len(skill.body.split())
    desc_length = len(skill.description)

    if body_lines <= MAX_BODY_LINES and body_words <= MAX_BODY_WORDS and desc_length <= MAX_DESCRIPTION_LENGTH:
        return None
    return (
        f"Exceeds limits: lines={body_lines} (<={MAX_BODY_LINES}), words={body_words} (<={MAX_BODY_WORDS}), "
        f"description={desc_length} (<={MAX_DESCRIPTION_LENGTH})."
    )


def run_harness(snapshot: CorpusSnapshot) -> HarnessResult:
    """Run all suites over the active skills of a snapshot."""
    result = HarnessResult()

    for failure in snapshot.load_failures:
        if failure.file and failure.file.endswith("SKILL.md"):
            result.skills_tested += 1
            result.record("functional", failure.file, failure.message)

    for skill in sorted(snapshot.active_skills, key=lambda s: s.path):
        result.skills_tested += 1
        result.record("trigger", skill.path, check_trigger(skill))
        result.record("functional", skill.path, check_functional(skill))
        result.record("performance", skill.path, check_performance(skill))

    return result


def print_results(result: HarnessResult) -> None:
    print(f"Skills tested: {result.skills_tested}")
    print(f"Trigger suite: {result.passes['trigger']}/{result.cases['trigger']}")
    print(f"Functional suite: {result.passes['functional']}/{result.cases['functional']}")
    print(f"Performance suite: {result.passes['performance']}/{result.cases['performance']}")

    if not result.failures:
        print(colorize("PASS: trigger, functional, and performance suites all passed.", "PASSED"))
        return

    for failure in result.failures:
        print(f"{colorize(f'[FAIL][{failure.suite}]', 'ERROR')} {failure.path}: {failure.message}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="skills-harness", description="Run trigger/functional/performance suites")
    parser.add_argument("path", nargs="?", default=".", help="Repository root (default: current directory)")
    parser.add_argument("--skills-dir", default=None, help="Skills directory (default: <path>/skills)")
    args = parser.parse_args(argv)

    try:
        snapshot = load_corpus(Path(args.path), skills_dir=args.skills_dir, with_registry=False)
    except AuditError as e:
        error(str(e))
        return EXIT_FATAL

    if not snapshot.active_skills:
        warn(f"No SKILL.md files found under {snapshot.skills_root}")

    result = run_harness(snapshot)
    print_results(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
