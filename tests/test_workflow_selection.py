"""
Tests for workflow selection and graph compilation.
"""

import pytest

from fraud_triage.agent.graph import build_workflow_graph
from fraud_triage.agent.nodes import extract_merchant_name
from fraud_triage.agent.workflows import (
    OutcomeRule,
    WorkflowKind,
    all_workflows,
    select_workflow,
)
from fraud_triage.schemas import WorkflowRequest


def _request(alert_type=None, message=None) -> WorkflowRequest:
    return WorkflowRequest(
        customer_id="cust_001",
        suspect_txn_id="txn_001",
        alert_type=alert_type,
        user_message=message,
    )


@pytest.mark.parametrize(
    "alert_type, kind",
    [
        ("card_lost", WorkflowKind.CARD_LOST),
        ("duplicate_charge", WorkflowKind.DUPLICATE_CHARGE),
        ("unauthorized_charge", WorkflowKind.UNAUTHORIZED_CHARGE),
        ("geo_velocity", WorkflowKind.GEO_VELOCITY),
        ("chargeback_history", WorkflowKind.CHARGEBACK_HISTORY),
        ("kb_faq", WorkflowKind.KB_FAQ),
        ("merchant_disambiguation", WorkflowKind.MERCHANT_DISAMBIGUATION),
        ("CARD_LOST", WorkflowKind.CARD_LOST),
    ],
)
def test_tagged_workflows(alert_type, kind):
    assert select_workflow(_request(alert_type)).kind == kind


def test_untagged_request_runs_standard_workflow():
    definition = select_workflow(_request(message="Please check my account"))

    assert definition.kind == WorkflowKind.STANDARD
    assert definition.outcome == OutcomeRule.DERIVED


def test_unknown_tag_falls_back_to_standard():
    assert select_workflow(_request("weird_alert")).kind == WorkflowKind.STANDARD


def test_unrecognized_charge_message_selects_merchant_workflow():
    for message in (
        "I don't recognize this charge at Gaming Store",
        "I don’t recognize the charge at QuickStop Market",
    ):
        definition = select_workflow(_request(message=message))
        assert definition.kind == WorkflowKind.MERCHANT_DISAMBIGUATION


def test_tag_wins_over_message_heuristic():
    message = "I don't recognize this charge at Gaming Store"

    assert select_workflow(_request("card_lost", message)).kind == WorkflowKind.CARD_LOST
    assert (
        select_workflow(_request("unauthorized_charge", message)).kind
        == WorkflowKind.UNAUTHORIZED_CHARGE
    )


def test_extract_merchant_name():
    assert extract_merchant_name("I don't recognize this charge at Gaming Store") == "Gaming Store"
    assert extract_merchant_name("Who is AT Gaming Store charge from yesterday") == "Gaming Store"
    assert extract_merchant_name("no merchant here") == "Unknown"
    assert extract_merchant_name(None) == "Unknown"


def test_step_keys_are_unique_and_stable():
    for definition in all_workflows():
        keys = definition.keys
        assert len(keys) == len(set(keys))
        assert all(key.startswith("step_") for key in keys)


def test_every_workflow_compiles():
    async def noop(state):
        return {"trace": {}}

    for definition in all_workflows():
        assert build_workflow_graph(definition, lambda step: noop) is not None
