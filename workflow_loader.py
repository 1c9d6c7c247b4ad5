"""
Workflow loader for saved recordings.

Loads workflow documents from YAML files (plain JSON exports work too)
and checks them for things that tend to make a replay misbehave.
"""

from pathlib import Path
from typing import List

import yaml

from replay_errors import InvalidWorkflow
from workflow_models import ClickStep, TypeTextStep, Workflow

# Recorded gaps longer than this usually mean the user walked away
LONG_DELAY_MS = 60_000
MAX_SENSIBLE_SPEED = 10


def load_workflow(file_path: str) -> Workflow:
    """
    Load a workflow from a YAML or JSON file.

    Args:
        file_path: Path to the workflow file

    Returns:
        Workflow instance

    Raises:
        FileNotFoundError: If file doesn't exist
        InvalidWorkflow: If the file is not a valid workflow document
    """
    path = Path(file_path)

    if not path.exists():
        raise FileNotFoundError(f"Workflow file not found: {file_path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise InvalidWorkflow(f"Could not parse {file_path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidWorkflow("Workflow file must contain a mapping with a 'steps' list")

    return Workflow.from_payload(data)


def validate_workflow(workflow: Workflow) -> List[str]:
    """
    Validate a workflow and return a list of warnings (not errors).

    Args:
        workflow: Workflow to validate

    Returns:
        List of warning messages (empty if no warnings)
    """
    warnings = []

    if not workflow.url.startswith('http://') and not workflow.url.startswith('https://'):
        warnings.append(f"URL may be invalid (missing http/https): {workflow.url}")

    if workflow.speed > MAX_SENSIBLE_SPEED:
        warnings.append(f"speed is very high ({workflow.speed:g}x); pages may not keep up")

    for index, step in enumerate(workflow.steps):
        if isinstance(step, TypeTextStep):
            if not step.selector:
                warnings.append(f"Step {index}: type step has no selector and will be skipped")
            elif step.value is None:
                warnings.append(f"Step {index}: type step has no value and will be skipped")
        elif isinstance(step, ClickStep) and not step.selector:
            warnings.append(f"Step {index}: click by coordinates depends on the viewport size")

        if step.delay > LONG_DELAY_MS:
            warnings.append(f"Step {index}: delay is very long ({step.delay / 1000:.0f}s)")

    return warnings
