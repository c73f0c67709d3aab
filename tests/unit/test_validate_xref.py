"""Tests for validate_xref.py - registry, section, extends and uniqueness checks."""

from audit_common import ValidationReport
from conftest import CorpusBuilder
from skills_corpus import load_corpus
from validate_xref import validate_cross_references


def xref(corpus: CorpusBuilder) -> ValidationReport:
    return validate_cross_references(load_corpus(corpus.root))


def by_rule(report: ValidationReport, rule_id: str) -> list:
    return [r for r in report.results if r.rule_id == rule_id]


class TestVersionSync:
    def test_matching_versions_pass(self, clean_corpus: CorpusBuilder) -> None:
        report = xref(clean_corpus)
        assert not report.has_error
        assert not report.has_warning

    def test_absent_skill_version_is_not_a_mismatch(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md")
        corpus.write_registry({"agents-md": {"version": 1}})
        assert by_rule(xref(corpus), "VersionMismatchError") == []

    def test_version_without_registry_entry(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md", version=2)
        corpus.write_registry({"skills": []})
        mismatches = by_rule(xref(corpus), "VersionMismatchError")
        assert len(mismatches) == 1
        assert mismatches[0].file == "skills/agents-md/SKILL.md"
        assert "no entry" in mismatches[0].message

    def test_version_without_any_registry(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md", version=2)
        assert len(by_rule(xref(corpus), "VersionMismatchError")) == 1

    def test_differing_versions(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md", metadata={"version": 3})
        corpus.write_registry({"skills": [{"name": "agents-md", "version": "2"}]})
        mismatches = by_rule(xref(corpus), "VersionMismatchError")
        assert [m.message for m in mismatches] == [
            "version 3 in SKILL.md does not match marketplace.json version 2"
        ]

    def test_registry_entry_without_version(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md", version=1)
        corpus.write_registry({"skills": [{"name": "agents-md"}]})
        assert "missing a version" in by_rule(xref(corpus), "VersionMismatchError")[0].message

    def test_registry_version_not_an_integer(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("agents-md", version=1)
        corpus.write_registry({"skills": [{"name": "agents-md", "version": "1.0.0"}]})
        assert "not a positive integer" in by_rule(xref(corpus), "VersionMismatchError")[0].message


class TestSectionRefs:
    def test_undeclared_prefix(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("react")
        corpus.add_sections("react", [("async", "CRITICAL")])
        corpus.add_rule("react", "async-parallel.md")
        corpus.add_rule("react", "server-cache.md")
        unknown = by_rule(xref(corpus), "UnknownSectionError")
        assert [u.file for u in unknown] == ["skills/react/rules/server-cache.md"]
        assert "`server`" in unknown[0].message

    def test_missing_section_index(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("react")
        corpus.add_rule("react", "async-parallel.md")
        unknown = by_rule(xref(corpus), "UnknownSectionError")
        assert len(unknown) == 1
        assert "_sections.md" in unknown[0].message

    def test_sections_are_per_skill(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a")
        corpus.add_sections("a", [("async", "HIGH")])
        corpus.add_skill("b")
        corpus.add_sections("b", [("bundle", "HIGH")])
        corpus.add_rule("b", "async-parallel.md")
        assert [u.file for u in by_rule(xref(corpus), "UnknownSectionError")] == ["skills/b/rules/async-parallel.md"]

    def test_empty_section_warns(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a")
        corpus.add_sections("a", [("async", "HIGH"), ("js", "LOW")])
        corpus.add_rule("a", "async-parallel.md")
        empty = by_rule(xref(corpus), "EmptySection")
        assert [(e.level, e.file) for e in empty] == [("WARNING", "skills/a/rules/_sections.md")]


class TestExtends:
    def test_known_target(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("core")
        corpus.add_skill("react", extends="core")
        assert by_rule(xref(corpus), "DanglingExtendsError") == []

    def test_unknown_target(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("react", extends="core")
        dangling = by_rule(xref(corpus), "DanglingExtendsError")
        assert len(dangling) == 1
        assert "core" in dangling[0].message

    def test_self_reference(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("react", extends="react")
        assert len(by_rule(xref(corpus), "DanglingExtendsError")) == 1


class TestUniqueNames:
    def test_duplicate_names_reference_both_paths(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("one", name="shared")
        corpus.add_skill("two", name="shared")
        duplicates = by_rule(xref(corpus), "DuplicateSkillNameError")
        assert len(duplicates) == 1
        assert duplicates[0].file == "skills/two/SKILL.md"
        assert "skills/one/SKILL.md" in duplicates[0].message

    def test_three_way_duplicate(self, corpus: CorpusBuilder) -> None:
        for folder in ("a", "b", "c"):
            corpus.add_skill(folder, name="same")
        assert len(by_rule(xref(corpus), "DuplicateSkillNameError")) == 2


class TestRegistryDrift:
    def test_category_and_tags_drift_warn(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a")
        corpus.write_registry({"a": {"category": "design", "tags": ["other"]}})
        drift = by_rule(xref(corpus), "RegistryDrift")
        assert len(drift) == 2
        assert all(d.level == "WARNING" for d in drift)

    def test_orphan_registry_entry(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a")
        corpus.write_registry({"a": {}, "gone": {"version": 4}})
        orphans = by_rule(xref(corpus), "OrphanRegistryEntry")
        assert [(o.file, o.level) for o in orphans] == [("marketplace.json", "WARNING")]
        assert "gone" in orphans[0].message


class TestRegistryUniqueness:
    def test_repeated_registry_name_is_an_error(self, corpus: CorpusBuilder) -> None:
        corpus.add_skill("a", metadata={"version": 1})
        corpus.write_registry({"skills": [{"name": "a", "version": 2}, {"name": "a", "version": 1}]})
        duplicates = by_rule(xref(corpus), "DuplicateRegistryEntryError")
        assert [(d.level, d.file) for d in duplicates] == [("ERROR", "marketplace.json")]
        assert "`a`" in duplicates[0].message
