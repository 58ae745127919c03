import json

import pytest
from typer.testing import CliRunner

from autoflow.cli import app

WORKFLOWS = """
workflows:
  - id: welcome
    name: Welcome series
    trigger:
      type: manual
    steps:
      - id: greet
        type: action
        action_type: set_variable
        parameters:
          value: "{{ user.name }}"
        output_variable: greeting
      - id: note
        type: action
        action_type: log
        parameters:
          message: welcome sent
  - id: broken
    name: Broken flow
    trigger:
      type: manual
    steps:
      - id: explode
        type: action
        action_type: does_not_exist
"""

CONFIG = """
scheduler:
  retry:
    max_attempts: 1
    base_delay: 0
log_level: WARNING
"""


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("AUTOFLOW_CONFIG", raising=False)
    monkeypatch.delenv("AUTOFLOW_MAX_CONCURRENT_EXECUTIONS", raising=False)
    monkeypatch.delenv("AUTOFLOW_LOG_LEVEL", raising=False)


@pytest.fixture
def files(tmp_path):
    workflows = tmp_path / "workflows.yaml"
    workflows.write_text(WORKFLOWS)
    config = tmp_path / "engine.yaml"
    config.write_text(CONFIG)
    return workflows, config


def test_validate_reports_each_definition(files):
    workflows, _ = files
    runner = CliRunner()
    result = runner.invoke(app, ["validate", str(workflows)])
    assert result.exit_code == 0, f"Output: {result.output}"
    assert "OK   Welcome series (welcome)" in result.output
    assert "OK   Broken flow (broken)" in result.output


def test_validate_fails_on_invalid_definition(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(
        "id: tiny\nname: ab\ntrigger:\n  type: manual\nsteps: []\n"
    )
    runner = CliRunner()
    result = runner.invoke(app, ["validate", str(path)])
    assert result.exit_code == 1
    assert "FAIL ab:" in result.output
    assert "Workflow name must be at least 3 characters" in result.output
    assert "Workflow must have at least one step" in result.output


def test_validate_missing_file(tmp_path):
    runner = CliRunner()
    result = runner.invoke(app, ["validate", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 1
    assert "Specified path does not exist" in result.output


def test_run_prints_completed_execution(files):
    workflows, config = files
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "run",
            str(workflows),
            "--workflow",
            "welcome",
            "--context",
            json.dumps({"user": {"name": "Ada"}}),
            "--config",
            str(config),
            "--timeout",
            "5",
        ],
    )
    assert result.exit_code == 0, f"Output: {result.output}"
    assert ": completed" in result.output
    assert "- [0] greet (action): completed" in result.output
    assert "- [0] note (action): completed" in result.output


def test_run_failing_workflow_exits_non_zero(files):
    workflows, config = files
    runner = CliRunner()
    result = runner.invoke(
        app,
        ["run", str(workflows), "--workflow", "Broken flow", "--config", str(config)],
    )
    assert result.exit_code == 1
    assert ": failed" in result.output
    assert "Action not found: does_not_exist" in result.output


def test_run_unknown_workflow_reference(files):
    workflows, config = files
    runner = CliRunner()
    result = runner.invoke(
        app, ["run", str(workflows), "--workflow", "ghost", "--config", str(config)]
    )
    assert result.exit_code == 1
    assert "Workflow not found: ghost" in result.output


def test_run_rejects_invalid_context_json(files):
    workflows, config = files
    runner = CliRunner()
    result = runner.invoke(
        app, ["run", str(workflows), "--context", "{not json", "--config", str(config)]
    )
    assert result.exit_code == 1
    assert "Invalid context JSON" in result.output


def test_components_lists_builtin_types():
    runner = CliRunner()
    result = runner.invoke(app, ["components"])
    assert result.exit_code == 0
    assert "Triggers: event, manual, time_based" in result.output
    assert "Actions: delay, log, set_variable" in result.output
    assert "Conditions: compare, equals, time_range" in result.output


def test_run_reports_rejected_trigger_parameters(tmp_path, files):
    _, config = files
    path = tmp_path / "event.yaml"
    path.write_text(
        "id: listener\nname: Signup listener\ntrigger:\n  type: event\n"
        "steps:\n  - id: greet\n    type: action\n    action_type: log\n"
    )
    runner = CliRunner()
    result = runner.invoke(app, ["run", str(path), "--config", str(config)])
    assert result.exit_code == 1
    assert "Trigger setup failed for event" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
