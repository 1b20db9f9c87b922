"""Unit tests for the command line entrypoint."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from workflow_desk.main import main


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    for name in ("LOG_LEVEL", "WORKFLOW_DESK_STORAGE", "WORKFLOW_DESK_SEED_SAMPLES"):
        monkeypatch.delenv(name, raising=False)
    state = tmp_path / "state"
    monkeypatch.setenv("WORKFLOW_DESK_STATE_PATH", str(state))
    monkeypatch.chdir(tmp_path)
    return state


def test_seed_then_list(state_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["seed"]) == 0
    assert "Created 5 sample templates" in capsys.readouterr().out
    assert (state_dir / "workflow_templates.json").exists()

    assert main(["seed"]) == 0
    assert "nothing to seed" in capsys.readouterr().out

    assert main(["templates", "--category", "travel", "--sort-by", "name"]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [line.split(" [")[0] for line in lines] == [
        "#3 Domestic Travel - Internal",
        "#4 International Travel - Internal",
    ]


def test_launch_submit_and_show(state_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["launch", "1", "--data", '{"amount": 50}', "--by", "ana"]) == 0
    out = capsys.readouterr().out
    assert "Launched instance #1 of 'Simple Approval' at step 'Submit Request'" in out

    assert main(["submit", "1", "--by", "ana"]) == 0
    assert "status=in_progress" in capsys.readouterr().out

    assert main(["show-instance", "1"]) == 0
    out = capsys.readouterr().out
    assert '"status": "in_progress"' in out
    assert '"current_step_name": "Manager Approval"' in out
    assert "Available transitions:" in out

    assert main(["instances", "--status", "in_progress"]) == 0
    assert "assignees=manager,admin" in capsys.readouterr().out


def test_refused_actions_exit_3(state_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["launch", "1"]) == 0
    capsys.readouterr()

    assert main(["transition", "1", "bogus"]) == 3
    assert "TRANSITION_NOT_FOUND" in capsys.readouterr().err

    assert main(["show-template", "99"]) == 3
    assert main(["launch", "99"]) == 3
    assert main(["revert", "1", "history-nope"]) == 3


def test_validate_template(state_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["validate-template", "5"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("Validation passed")
    assert "CIRCULAR_DEPENDENCY" in out


def test_analytics_and_tags(state_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["analytics"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["total_templates"] == 5
    assert payload["category_distribution"]["travel"] == 2

    assert main(["tags", "--popular"]) == 0
    first = capsys.readouterr().out.splitlines()[0]
    assert first == "standard\t4"

    assert main(["categories"]) == 0
    assert "travel\tTravel" in capsys.readouterr().out


def test_bad_configuration_exit_2(
    state_dir: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    assert main(["templates"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_state_path_flag_overrides_environment(
    state_dir: Path, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    other = tmp_path / "elsewhere"

    assert main(["--state-path", str(other), "seed"]) == 0

    assert (other / "workflow_templates.json").exists()
    assert not state_dir.exists()
