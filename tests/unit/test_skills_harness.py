"""Tests for skills_harness.py - trigger, functional and performance suites."""

import pytest
from conftest import SKILL_BODY, CorpusBuilder
from skills_corpus import load_corpus
from skills_harness import keyword_set, main, run_harness


def harness(corpus: CorpusBuilder):
    return run_harness(load_corpus(corpus.root, with_registry=False))


def test_keyword_set_drops_stopwords_and_short_tokens() -> None:
    assert keyword_set("Use when users say deploy the API to Vercel") == ["deploy", "vercel"]


class TestSuites:
    def test_clean_skill_passes_every_suite(self, clean_corpus: CorpusBuilder) -> None:
        result = harness(clean_corpus)
        assert result.failures == []
        assert result.passes == {"trigger": 1, "functional": 1, "performance": 1}
        assert result.exit_code == 0

    def test_missing_error_cause_solution_fails_functional(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a", body=SKILL_BODY.replace("- Error:", "- Problem:"))
        result = harness(corpus)
        assert [(f.suite, f.path) for f in result.failures] == [("functional", "skills/a/SKILL.md")]

    def test_missing_trigger_examples(self, corpus: CorpusBuilder) -> None:
        body = SKILL_BODY.replace("### Non-Trigger", "### Other")
        corpus.add_skill("a", body=body)
        failures = harness(corpus).failures
        assert [f.suite for f in failures] == ["trigger"]
        assert "Missing positive/non-trigger" in failures[0].message

    def test_positive_prompt_must_beat_negative(self, corpus: CorpusBuilder) -> None:
        body = SKILL_BODY.replace(
            "Fix the failing unit test in the parser", "Write agents instructions for the repository guidance"
        )
        corpus.add_skill("a", body=body)
        assert "not more aligned" in harness(corpus).failures[0].message

    def test_body_line_limit(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a", body=SKILL_BODY + "line\n" * 501)
        failures = harness(corpus).failures
        assert [f.suite for f in failures] == ["performance"]
        assert "lines=" in failures[0].message

    def test_drafts_are_not_tested(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("_drafts/wip", body="# nothing\n")
        result = harness(corpus)
        assert result.skills_tested == 0
        assert result.failures == []


def test_main_prints_suite_counts(clean_corpus: CorpusBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    assert main([str(clean_corpus.root)]) == 0
    out = capsys.readouterr().out
    assert "Skills tested: 1" in out
    assert "Trigger suite: 1/1" in out


def test_main_reports_failures(corpus: CorpusBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    corpus.add_skill("a", body="# Bare\n")
    assert main([str(corpus.root)]) == 1
    assert "[FAIL][functional] skills/a/SKILL.md:" in capsys.readouterr().out


def test_unparsable_skill_counts_as_a_functional_case(
    corpus: CorpusBuilder, capsys: pytest.CaptureFixture[str]
) -> None:
    corpus.add_skill("broken", raw="---\nname: broken\n")
    corpus.add_skill("a")
    result = harness(corpus)
    assert result.cases["functional"] == 2
    assert result.passes["functional"] == 1
    assert main([str(corpus.root)]) == 1
    out = capsys.readouterr().out
    assert "Functional suite: 1/2" in out
    assert "[FAIL][functional] skills/broken/SKILL.md:" in out
