"""Tests for nagare.output.log module."""

from __future__ import annotations

import json

from nagare.output.console import MockConsole, Style
from nagare.output.log import ReleaseLogger


def test_debug_is_hidden_unless_verbose() -> None:
    console = MockConsole()
    ReleaseLogger(console).debug("hidden")
    assert console.outputs == []

    ReleaseLogger(console, verbose=True).debug("shown")
    assert console.messages == ["shown"]
    assert console.outputs[0].style == Style.DIM


def test_levels_route_to_console() -> None:
    console = MockConsole()
    logger = ReleaseLogger(console)
    logger.info("plain")
    logger.success("done")
    logger.warn("careful")
    logger.error("broken")

    assert console.messages == ["plain", "OK done", "warning: careful", "error: broken"]


def test_audit_records_structured_entries() -> None:
    console = MockConsole()
    logger = ReleaseLogger(console)

    entry = logger.audit("file_updated", {"file": "package.json", "match_count": 1})
    logger.audit("tag_deleted", {"tag": "v1.0.0"})

    assert logger.entries[0] is entry
    assert [e.action for e in logger.entries] == ["file_updated", "tag_deleted"]
    assert logger.audited("tag_deleted")[0].details == {"tag": "v1.0.0"}
    # Audit entries are silent unless verbose.
    assert console.outputs == []


def test_audit_details_are_copied() -> None:
    logger = ReleaseLogger(MockConsole())
    details: dict[str, object] = {"file": "a"}
    entry = logger.audit("file_updated", details)
    details["file"] = "b"
    assert entry.details == {"file": "a"}


def test_audit_entry_serializes_to_json() -> None:
    console = MockConsole()
    logger = ReleaseLogger(console, verbose=True)
    entry = logger.audit("rollback_completed", {"rolled_back": [3, 2]})

    payload = json.loads(entry.to_json())
    assert payload["action"] == "rollback_completed"
    assert payload["details"] == {"rolled_back": [3, 2]}
    assert payload["timestamp"].endswith("+00:00")
    assert console.text.startswith("audit: ")
