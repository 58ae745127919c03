"""Helpers for reading workflow definition files and printing executions."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml

from autoflow.contracts import Execution


def _load_definitions(path: Path) -> List[Dict[str, Any]]:
    """Read workflow definitions from a YAML file.

    The file holds either a ``workflows:`` list or a single workflow mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if isinstance(data, dict) and "workflows" in data:
        definitions = data["workflows"] or []
    elif isinstance(data, dict):
        definitions = [data]
    else:
        definitions = data
    if not isinstance(definitions, list) or not all(
        isinstance(item, dict) for item in definitions
    ):
        raise ValueError(f"{path} does not contain workflow definitions")
    return definitions


def _format_execution(execution: Execution) -> List[str]:
    lines = [f"Execution {execution.id}: {execution.status.value}"]
    if execution.retry_attempt:
        lines.append(f"Retries: {execution.retry_attempt}")
    if execution.error:
        lines.append(f"Error: {execution.error}")
    for record in execution.steps:
        line = f"- [{record.attempt}] {record.step_id} ({record.step_type.value}): {record.status}"
        if record.error:
            line += f" - {record.error}"
        lines.append(line)
    return lines
