"""
LangGraph state definition for triage workflows.
The state is shared across all step nodes in a workflow.
"""

from typing import Annotated, TypedDict

from fraud_triage.schemas import StepResult, WorkflowRequest


def merge_trace(
    left: dict[str, StepResult], right: dict[str, StepResult]
) -> dict[str, StepResult]:
    """
    Reducer for step results.

    Parallel nodes each return their own entry; entries are merged and a
    key can never be written twice.
    """
    merged = dict(left or {})
    for key, result in (right or {}).items():
        if key in merged:
            raise ValueError(f"Step '{key}' recorded twice")
        merged[key] = result
    return merged


class TriageState(TypedDict):
    """
    Shared state for a triage run.

    ``request`` is read-only for nodes; each node returns
    ``{"trace": {step_key: StepResult}}``.
    """

    request: WorkflowRequest
    trace: Annotated[dict[str, StepResult], merge_trace]
