"""Tests for classification of raw listing records."""

from __future__ import annotations

from typing import Any

import pytest

from qmctl.core.classifier import classify, parse_vmid
from qmctl.models.objects import ObjectKind, RunState


class TestClassify:
    """Tests for classify()."""

    @pytest.mark.parametrize(
        ("record", "kind", "state"),
        [
            ({"vmid": 100, "status": "running"}, ObjectKind.VM, RunState.RUNNING),
            ({"vmid": 100, "status": "stopped"}, ObjectKind.VM, RunState.STOPPED),
            ({"vmid": 100, "status": "paused"}, ObjectKind.VM, RunState.RUNNING),
            ({"vmid": 100, "status": "stopped", "template": 0}, ObjectKind.VM, RunState.STOPPED),
            ({"vmid": 100, "status": "stopped", "template": ""}, ObjectKind.VM, RunState.STOPPED),
            (
                {"vmid": 9000, "status": "stopped", "template": 1},
                ObjectKind.TEMPLATE,
                RunState.UNKNOWN,
            ),
            ({"vmid": 9000, "template": "1"}, ObjectKind.TEMPLATE, RunState.UNKNOWN),
            ({"vmid": 9000, "template": True}, ObjectKind.TEMPLATE, RunState.UNKNOWN),
        ],
    )
    def test_recognised_records(
        self, record: dict[str, Any], kind: ObjectKind, state: RunState
    ) -> None:
        """Well-formed records map to a VM or template."""
        obj = classify(record)
        assert obj.kind == kind
        assert obj.run_state == state

    @pytest.mark.parametrize(
        "record",
        [
            {"vmid": 9000, "status": "running", "template": 1},
            {"vmid": 100, "status": "migrating"},
            {"vmid": 100},
            {"vmid": 100, "status": "stopped", "template": 2},
            {"vmid": 100, "status": "stopped", "template": "yes-ish"},
            {"vmid": 100, "status": "stopped", "template": [1]},
        ],
    )
    def test_ambiguous_records_are_unknown(self, record: dict[str, Any]) -> None:
        """Anything contradictory or unrecognised is unknown, never guessed."""
        obj = classify(record)
        assert obj.kind == ObjectKind.UNKNOWN
        assert obj.run_state == RunState.UNKNOWN

    def test_status_is_case_insensitive(self) -> None:
        assert classify({"vmid": 1, "status": " Running "}).run_state == RunState.RUNNING

    def test_name_is_kept(self) -> None:
        obj = classify({"vmid": "105", "name": "ci-runner", "status": "stopped"})
        assert obj.id == 105
        assert obj.name == "ci-runner"

    def test_classification_is_deterministic(self) -> None:
        record = {"vmid": 7, "status": "stopped", "template": "0"}
        assert classify(record) == classify(dict(record))


class TestParseVmid:
    """Tests for parse_vmid()."""

    def test_string_vmid(self) -> None:
        assert parse_vmid({"vmid": "9000"}) == 9000

    @pytest.mark.parametrize("record", [{}, {"vmid": None}, {"vmid": True}, {"vmid": -1}])
    def test_invalid_vmid(self, record: dict[str, Any]) -> None:
        with pytest.raises(ValueError):
            parse_vmid(record)

    @pytest.mark.parametrize("vmid", [100.7, "100.7"])
    def test_non_integral_vmid(self, vmid: object) -> None:
        with pytest.raises(ValueError):
            parse_vmid({"vmid": vmid})

    def test_integral_float_vmid(self) -> None:
        assert parse_vmid({"vmid": 100.0}) == 100

    def test_non_numeric_vmid(self) -> None:
        with pytest.raises(ValueError):
            classify({"vmid": "abc", "status": "running"})
