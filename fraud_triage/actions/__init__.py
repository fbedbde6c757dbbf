"""
Actions module for compliance-checked remediation.
"""

from fraud_triage.actions.service import (
    ActionError,
    ActionResult,
    ActionService,
    ActionStatus,
)

__all__ = ["ActionError", "ActionResult", "ActionService", "ActionStatus"]
