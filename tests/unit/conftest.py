"""Shared fixtures: build throwaway skills repositories under tmp_path."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

SKILL_BODY = """\
# Agents MD

## Workflow

1. Read the repository layout.

## Examples

### Positive Trigger

User: "Write an AGENTS.md with agent instructions for this repository"

Expected behavior: an AGENTS.md file is created.

### Non-Trigger

User: "Fix the failing unit test in the parser"

## Troubleshooting

- Error: AGENTS.md is ignored
- Cause: the file is not at the repository root
- Solution: move it to the root
"""

RULE_BODY = """\
## Parallelize independent awaits

**Incorrect:**

```ts
await a(); await b();
```

**Correct:**

```ts
await Promise.all([a(), b()]);
```

**Why it matters:** sequential awaits add latency.
"""


def skill_frontmatter(name: str, **overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": name,
        "description": "Write AGENTS.md agent instructions. Use when users ask for repository agent guidance.",
        "category": "universal",
        "tags": ["agents", "docs"],
        "status": "ready",
    }
    data.update(overrides)
    return {k: v for k, v in data.items() if v is not None}


def to_markdown(frontmatter: dict[str, Any], body: str) -> str:
    return "---\n" + yaml.safe_dump(frontmatter, sort_keys=False) + "---\n" + body


class CorpusBuilder:
    """Writes skills, rules, section indexes and the registry."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.skills_dir = root / "skills"
        self.skills_dir.mkdir(parents=True, exist_ok=True)

    def add_skill(self, folder: str, body: str = SKILL_BODY, raw: str | None = None, **overrides: Any) -> Path:
        skill_dir = self.skills_dir / folder
        skill_dir.mkdir(parents=True, exist_ok=True)
        name = overrides.pop("name", Path(folder).name)
        text = raw if raw is not None else to_markdown(skill_frontmatter(name, **overrides), body)
        skill_file = skill_dir / "SKILL.md"
        skill_file.write_text(text, encoding="utf-8")
        return skill_file

    def add_sections(self, folder: str, sections: list[tuple[str, str]]) -> Path:
        rules_dir = self.skills_dir / folder / "rules"
        rules_dir.mkdir(parents=True, exist_ok=True)
        lines = ["# Sections", ""]
        for i, (section_id, impact) in enumerate(sections, start=1):
            lines += [
                f"## {i}. {section_id.title()} Rules ({section_id})",
                "",
                f"**Impact:** {impact}  ",
                f"**Description:** Rules about {section_id}.",
                "",
            ]
        path = rules_dir / "_sections.md"
        path.write_text("\n".join(lines), encoding="utf-8")
        return path

    def add_rule(
        self,
        folder: str,
        filename: str,
        body: str = RULE_BODY,
        raw: str | None = None,
        **overrides: Any,
    ) -> Path:
        rules_dir = self.skills_dir / folder / "rules"
        rules_dir.mkdir(parents=True, exist_ok=True)
        frontmatter = {"title": "Parallelize independent awaits", "impact": "CRITICAL", "tags": ["async"]}
        frontmatter.update(overrides)
        frontmatter = {k: v for k, v in frontmatter.items() if v is not None}
        path = rules_dir / filename
        path.write_text(raw if raw is not None else to_markdown(frontmatter, body), encoding="utf-8")
        return path

    def write_registry(self, data: Any) -> Path:
        path = self.root / "marketplace.json"
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path


@pytest.fixture
def corpus(tmp_path: Path) -> CorpusBuilder:
    """Empty repository with a skills/ directory."""
    return CorpusBuilder(tmp_path / "repo")


@pytest.fixture
def clean_corpus(corpus: CorpusBuilder) -> CorpusBuilder:
    """A repository that audits with no errors and no warnings."""
    corpus.add_skill("agents-md", metadata={"version": 1})
    corpus.add_sections("agents-md", [("async", "CRITICAL"), ("bundle", "HIGH")])
    corpus.add_rule("agents-md", "async-parallel.md")
    corpus.add_rule("agents-md", "bundle-imports.md", title="Avoid barrel imports", impact="HIGH", tags=["bundle"])
    corpus.write_registry(
        {"skills": [{"name": "agents-md", "version": 1, "category": "universal", "tags": ["agents", "docs"]}]}
    )
    return corpus
