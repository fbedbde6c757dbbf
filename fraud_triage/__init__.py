"""
Fraud Triage Orchestrator

Runs card-fraud triage requests through workflow variants of profile,
transaction, risk, knowledge-base and merchant steps, each protected by
timeouts and circuit breakers, and reduces the trace to a decision.

IMPORTANT: This is a DEMO project. All data is synthetic.
"""

__version__ = "1.0.0"
