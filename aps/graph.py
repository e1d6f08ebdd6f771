"""LangGraph StateGraph definition for the closed-loop build pipeline."""

from langgraph.graph import END, StateGraph

from aps.agents.phases import PhaseRunner
from aps.state import APSState

TERMINAL_NODES = ("ready", "fatal", "timeout", "escalate")


def route_after_validation(state: APSState) -> str:
    """Conditional edge: decide next step after the validate node.

    Priority order:
    1. build passed → ready
    2. fatal signature in stderr → fatal (no patch attempt, whatever the budget)
    3. iteration >= max_iterations → timeout
    4. otherwise → patch (via increment)
    """
    result = state["last_validation"] or {}
    if result.get("success"):
        return "ready"
    if not result.get("recoverable", False):
        return "fatal"
    if state["iteration"] >= state["max_iterations"]:
        return "timeout"
    return "patch"


def route_after_patch(state: APSState) -> str:
    """Conditional edge after the patch node: escalate on a help request, else re-validate."""
    if state["help_requested"]:
        return "escalate"
    return "validate"


def node_table(runner: PhaseRunner) -> dict:
    """Node name → node callable for the compiled graph."""
    return {
        "planner": runner.plan_node,
        "designer": runner.design_node,
        "architect": runner.architect_node,
        "coder": runner.code_node,
        "validate": runner.validate_node,
        "increment": runner.increment_node,
        "patcher": runner.patch_node,
        "ready": runner.ready_node,
        "fatal": runner.fatal_node,
        "timeout": runner.timeout_node,
        "escalate": runner.escalate_node,
    }


def build_graph(runner: PhaseRunner):
    """Compile the pipeline graph around one run's PhaseRunner."""
    workflow = StateGraph(APSState)

    for name, node_fn in node_table(runner).items():
        workflow.add_node(name, node_fn)

    workflow.set_entry_point("planner")

    workflow.add_edge("planner", "designer")
    workflow.add_edge("designer", "architect")
    workflow.add_edge("architect", "coder")
    workflow.add_edge("coder", "validate")

    workflow.add_conditional_edges(
        "validate",
        route_after_validation,
        {
            "ready": "ready",
            "fatal": "fatal",
            "timeout": "timeout",
            "patch": "increment",
        },
    )
    workflow.add_edge("increment", "patcher")
    workflow.add_conditional_edges(
        "patcher",
        route_after_patch,
        {
            "escalate": "escalate",
            "validate": "validate",
        },
    )

    for name in TERMINAL_NODES:
        workflow.add_edge(name, END)

    return workflow.compile()


def recursion_limit(max_iterations: int) -> int:
    """Graph step budget: 5 linear steps + 3 per patch round + 1 terminal, plus headroom."""
    return 10 + 3 * max_iterations
