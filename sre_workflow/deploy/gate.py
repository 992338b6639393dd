"""Trigger gating for the deploy pipeline.

The deploy pipeline is started by the completion of the publish
workflow. It proceeds only when that run succeeded on the trunk branch;
anything else is a no-op.
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class TriggerEvent:
    """The parts of a ``workflow_run`` event that gate a deploy."""

    conclusion: str | None
    head_branch: str | None
    head_sha: str | None = None
    workflow_name: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "TriggerEvent":
        run = payload.get("workflow_run") or {}
        return cls(
            conclusion=run.get("conclusion"),
            head_branch=run.get("head_branch"),
            head_sha=run.get("head_sha"),
            workflow_name=run.get("name"),
        )


@dataclass(frozen=True)
class GateDecision:
    proceed: bool
    reason: str


def load_event(event_path: str | None = None) -> TriggerEvent | None:
    """Load the triggering event from a GitHub event payload file.

    Args:
        event_path: Payload path, defaults to ``GITHUB_EVENT_PATH``

    Returns:
        TriggerEvent, or None for manual runs and non-workflow_run events
    """
    event_path = event_path or os.environ.get("GITHUB_EVENT_PATH")
    if not event_path:
        return None

    payload = json.loads(Path(event_path).read_text())
    if "workflow_run" not in payload:
        return None
    return TriggerEvent.from_payload(payload)


def evaluate_gate(event: TriggerEvent | None, trunk_branch: str = "main") -> GateDecision:
    """Decide whether a deploy should run for the given trigger.

    Args:
        event: Triggering event; None means a manual invocation
        trunk_branch: Branch that is allowed to deploy

    Returns:
        GateDecision
    """
    if event is None:
        return GateDecision(True, "manual invocation")
    if event.conclusion != "success":
        return GateDecision(False, f"upstream run concluded '{event.conclusion}'")
    if event.head_branch != trunk_branch:
        return GateDecision(
            False, f"branch '{event.head_branch}' is not trunk '{trunk_branch}'"
        )
    return GateDecision(True, f"upstream run succeeded on {trunk_branch}")
