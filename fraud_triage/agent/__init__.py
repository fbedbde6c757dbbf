"""
Agent module for triage workflow selection, execution and decisions.
"""

from fraud_triage.agent.graph import TriageOrchestrator, build_workflow_graph
from fraud_triage.agent.workflows import WorkflowDefinition, select_workflow

__all__ = [
    "TriageOrchestrator",
    "WorkflowDefinition",
    "build_workflow_graph",
    "select_workflow",
]
