"""Tests for git/commits.py."""

from __future__ import annotations

from nagare.git.commits import (
    FIELD_SEP,
    RECORD_SEP,
    Commit,
    parse_log,
    parse_subject,
    release_commit_message,
)


class TestParseSubject:
    def test_conventional_with_scope(self) -> None:
        commit = parse_subject("feat(api): add endpoint", hash="abc1234def")
        assert commit.type == "feat"
        assert commit.scope == "api"
        assert commit.description == "add endpoint"
        assert commit.breaking_change is False
        assert commit.short_hash == "abc1234"

    def test_bang_marks_breaking(self) -> None:
        assert parse_subject("refactor!: drop node 16").breaking_change is True

    def test_breaking_change_footer(self) -> None:
        commit = parse_subject("fix: rename flag", body="BREAKING CHANGE: --foo is now --bar")
        assert commit.breaking_change is True

    def test_type_is_lowercased(self) -> None:
        assert parse_subject("Fix: typo").type == "fix"

    def test_non_conventional_becomes_chore(self) -> None:
        commit = parse_subject("Update README")
        assert commit.type == "chore"
        assert commit.description == "Update README"
        assert commit.scope is None

    def test_description_is_truncated(self) -> None:
        commit = parse_subject("fix: " + "x" * 300)
        assert len(commit.description) == 100


def test_summary() -> None:
    commit = Commit(type="feat", scope="ui", description="dark mode", hash="1234567890", date="")
    assert commit.summary == "1234567 feat(ui): dark mode"


def test_release_commit_message() -> None:
    assert release_commit_message("1.2.0") == "chore(release): bump version to 1.2.0"


class TestParseLog:
    def test_records_with_multiline_bodies(self) -> None:
        output = (
            f"h1{FIELD_SEP}2026-03-04T12:00:00+01:00{FIELD_SEP}feat: one{FIELD_SEP}line a\nline b{RECORD_SEP}\n"
            f"h2{FIELD_SEP}2026-03-03T12:00:00+01:00{FIELD_SEP}fix: two{FIELD_SEP}{RECORD_SEP}\n"
        )
        commits = parse_log(output)
        assert [c.hash for c in commits] == ["h1", "h2"]
        assert commits[0].body == "line a\nline b"
        assert commits[0].date == "2026-03-04"

    def test_skips_malformed_records(self) -> None:
        output = f"only-hash{RECORD_SEP}\n{FIELD_SEP}{FIELD_SEP}{RECORD_SEP}"
        assert parse_log(output) == []

    def test_empty_output(self) -> None:
        assert parse_log("") == []
