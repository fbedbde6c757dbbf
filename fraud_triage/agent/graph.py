"""
LangGraph workflow compilation and triage orchestration.
Builds one graph per workflow kind and reduces its trace into a response.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Callable, Optional
from uuid import uuid4

from langgraph.graph import END, START, StateGraph

from fraud_triage.agent.decision import (
    guidance_decision,
    payload_of,
    reduce_merchant_analysis,
    system_error_decision,
    unavailable_decision,
)
from fraud_triage.agent.nodes import WorkflowContext
from fraud_triage.agent.state import TriageState
from fraud_triage.agent.workflows import (
    OutcomeRule,
    StepSpec,
    WorkflowDefinition,
    WorkflowKind,
    select_workflow,
)
from fraud_triage.audit.trace import Trace
from fraud_triage.guardrails.enforcement import PiiDetector, mask_customer_id
from fraud_triage.schemas import (
    Action,
    Decision,
    StepResult,
    TriageEvent,
    TriageResponse,
    WorkflowRequest,
)
from fraud_triage.tools.executor import StepExecutor

logger = logging.getLogger(__name__)

NodeFactory = Callable[[StepSpec], Callable]


def _stages(steps: list[StepSpec]) -> list[list[StepSpec]]:
    """Group consecutive steps that share a parallel group."""
    stages: list[list[StepSpec]] = []
    for step in steps:
        if (
            stages
            and step.parallel_group is not None
            and stages[-1][0].parallel_group == step.parallel_group
        ):
            stages[-1].append(step)
        else:
            stages.append([step])
    return stages


def _connect(graph: StateGraph, sources: list[str], targets: list[str]) -> None:
    for target in targets:
        if len(sources) > 1:
            # Join: target waits for every source
            graph.add_edge(list(sources), target)
        else:
            graph.add_edge(sources[0], target)


def _branch_router(predicate) -> Callable[[TriageState], str]:
    def route(state: TriageState) -> str:
        return "run" if predicate(state["trace"]) else "skip"

    return route


def build_workflow_graph(definition: WorkflowDefinition, make_node: NodeFactory):
    """
    Create and compile the LangGraph graph for a workflow.

    Parallel stages fan out and are joined before the next stage.
    Conditional steps hang off a single preceding step: the router
    either enters them or jumps straight to the step after them.

    Args:
        definition: Workflow to compile
        make_node: Builds the node callable for a step

    Returns:
        Compiled graph ready for execution
    """
    graph = StateGraph(TriageState)

    for step in definition.steps:
        graph.add_node(step.key, make_node(step))

    stages = _stages(definition.steps)
    sources = [START]
    i = 0

    while i < len(stages):
        stage = stages[i]
        predicate = stage[0].when

        if predicate is None:
            targets = [step.key for step in stage]
            _connect(graph, sources, targets)
            sources = targets
            i += 1
            continue

        block: list[str] = []
        while i < len(stages) and stages[i][0].when is predicate:
            if len(stages[i]) > 1:
                raise ValueError("Conditional steps cannot run in parallel")
            block.append(stages[i][0].key)
            i += 1

        if len(sources) != 1:
            raise ValueError("Conditional steps must follow a single step")
        if i < len(stages) and len(stages[i]) > 1:
            raise ValueError("Conditional steps must rejoin a single step")

        after = stages[i][0].key if i < len(stages) else END
        graph.add_conditional_edges(
            sources[0],
            _branch_router(predicate),
            {"run": block[0], "skip": after},
        )
        for current, following in zip(block, block[1:]):
            graph.add_edge(current, following)
        sources = [block[-1]]

    _connect(graph, sources, [END])

    workflow = graph.compile()
    logger.info(f"Workflow graph '{definition.kind.value}' compiled successfully")
    return workflow


def extract_outcome(
    definition: WorkflowDefinition, entries: dict[str, StepResult]
) -> tuple[Decision, Action]:
    """Reduce a finished trace into the final decision and action."""
    if definition.outcome == OutcomeRule.MERCHANT:
        decision = reduce_merchant_analysis(entries.get(definition.analysis_key))
    elif definition.outcome == OutcomeRule.GUIDANCE:
        decision = guidance_decision()
    else:
        decision = payload_of(entries, definition.decision_key, Decision) or unavailable_decision()

    action = payload_of(entries, definition.action_key, Action) or Action(action="contact_customer")
    return decision, action


class TriageOrchestrator:
    """
    Runs triage requests end to end.

    - Redacts PII from the message before any step sees it
    - Selects a workflow and runs it as a LangGraph graph, every step
      through the StepExecutor
    - Records results in definition order and reduces them to a response

    A failure outside the steps themselves yields a ``system_error``
    response instead of an exception.
    """

    def __init__(
        self,
        context: WorkflowContext,
        executor: StepExecutor,
        pii_detector: PiiDetector,
    ):
        self.context = context
        self.executor = executor
        self.pii_detector = pii_detector
        self._graphs: dict[WorkflowKind, Any] = {}

    def graph_for(self, definition: WorkflowDefinition):
        """Compiled graph for a workflow, built on first use."""
        graph = self._graphs.get(definition.kind)
        if graph is None:
            graph = build_workflow_graph(definition, self._step_node)
            self._graphs[definition.kind] = graph
        return graph

    def _step_node(self, step: StepSpec):
        context = self.context
        executor = self.executor

        async def node(state: TriageState) -> dict:
            request = state["request"]
            recorded = state["trace"]
            result = await executor.execute(
                step.name,
                lambda: step.run(context, request, recorded),
                timeout_ms=step.timeout_ms,
            )
            return {"trace": {step.key: result}}

        return node

    async def run_triage(self, request: WorkflowRequest) -> TriageResponse:
        """
        Execute triage for a request.

        Args:
            request: Triage request; the caller's copy is not modified

        Returns:
            TriageResponse with decision, action and ordered trace
        """
        response: Optional[TriageResponse] = None
        async for event in self.stream_triage(request):
            if event.response is not None:
                response = event.response
        return response

    async def stream_triage(self, request: WorkflowRequest) -> AsyncIterator[TriageEvent]:
        """
        Execute triage for a request, yielding progress as it happens.

        Emits ``plan_built`` once the workflow is chosen, one ``tool_update``
        per trace entry in definition order, ``fallback_triggered`` when any
        step degraded, and ``decision_finalized`` carrying the response last.
        """
        request_id = str(uuid4())
        request = request.model_copy()
        trace = Trace(request_id)
        recorded: dict[str, StepResult] = {}
        definition: Optional[WorkflowDefinition] = None
        pii_detected = False
        system_error = False
        start_time = time.perf_counter()

        logger.info(
            f"Starting triage {request_id} for customer {mask_customer_id(request.customer_id)}"
        )

        try:
            if self.pii_detector.contains(request.user_message):
                pii_detected = True
                trace.annotate("pii_detection")
                request.user_message = self.pii_detector.redact(request.user_message)
                trace.annotate("redaction_applied")

            definition = select_workflow(request)
            graph = self.graph_for(definition)

            yield TriageEvent(
                event="plan_built",
                data={
                    "request_id": request_id,
                    "workflow": definition.kind.value,
                    "steps": list(definition.keys),
                },
            )

            initial_state: TriageState = {"request": request, "trace": {}}
            async for update in graph.astream(initial_state, stream_mode="updates"):
                for delta in update.values():
                    recorded.update((delta or {}).get("trace", {}))
                # Parallel steps may finish out of order; hold them until the prefix is done
                for key in _assemble(trace, definition, recorded, contiguous=True):
                    yield _tool_update(request_id, key, trace)

            for key in _assemble(trace, definition, recorded):
                yield _tool_update(request_id, key, trace)
            decision, action = extract_outcome(definition, trace.entries())

        except Exception as e:
            logger.error(f"Error in triage workflow {request_id}: {e}")
            system_error = True
            if definition is not None:
                for key in _assemble(trace, definition, recorded):
                    yield _tool_update(request_id, key, trace)
            decision = system_error_decision()
            action = Action(action="contact_customer")

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            f"Triage {request_id} completed in {duration_ms}ms, "
            f"risk={decision.risk_score}, action={action.action}"
        )
        logger.debug(f"Trace for {request_id}: {trace.summary()}")

        response = TriageResponse(
            request_id=request_id,
            customer_id=request.customer_id,
            suspect_txn_id=request.suspect_txn_id,
            workflow=definition.kind.value if definition else None,
            risk_score=decision.risk_score,
            recommended_action=action.action,
            reasons=list(decision.reasons),
            requires_otp=action.requires_otp,
            fallback_used=decision.fallback_used or trace.fallback_used,
            pii_detected=pii_detected,
            trace=trace.entries(),
            trace_steps=trace.annotations,
            completed_at=datetime.now(timezone.utc),
        )

        if response.fallback_used:
            yield TriageEvent(
                event="fallback_triggered",
                data={
                    "request_id": request_id,
                    "steps": [key for key, result in response.trace.items() if result.fallback_used],
                    "reason": "Unexpected workflow error" if system_error else "Service timeout or error",
                },
            )

        yield TriageEvent(
            event="decision_finalized",
            data={
                "request_id": request_id,
                "risk_score": response.risk_score,
                "recommended_action": response.recommended_action,
                "reasons": response.reasons,
                "requires_otp": response.requires_otp,
            },
            response=response,
        )


def _tool_update(request_id: str, key: str, trace: Trace) -> TriageEvent:
    return TriageEvent(
        event="tool_update",
        data={"request_id": request_id, "step": key, "result": trace.get(key)},
    )


def _assemble(
    trace: Trace,
    definition: WorkflowDefinition,
    recorded: dict[str, StepResult],
    contiguous: bool = False,
) -> list[str]:
    """
    Record step results in definition order, whatever order they finished in.

    With ``contiguous`` set, stops at the first step that has not finished.
    Returns the keys newly added to the trace.
    """
    added = []
    for key in definition.keys:
        if key in trace:
            continue
        if key not in recorded:
            if contiguous:
                break
            continue
        trace.record(key, recorded[key])
        added.append(key)
    return added
