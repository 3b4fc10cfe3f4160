from langgraph.graph import END, StateGraph

from .types import LoopExit, PipelineState, QuestionKind


def route_after_classify(state: PipelineState) -> str:
    if state.get("question_kind") == QuestionKind.GENERAL:
        return "answer_general"
    return "extract"


def route_after_extract(state: PipelineState) -> str:
    if state.get("statement") is not None:
        return "verify"
    if state.get("loop_exit") == LoopExit.EXTRACTION_EXHAUSTED:
        return "abort"
    return "extract"


def route_after_verify(state: PipelineState) -> str:
    loop_exit = state.get("loop_exit")
    if loop_exit == LoopExit.VERIFIED:
        return "generate"
    if loop_exit == LoopExit.VERIFICATION_EXHAUSTED:
        return "abort"
    return "extract"


def build_graph(pipeline):
    """
    Wire the pro-mode pipeline. `pipeline` supplies one async node per step:
    classify, extract, verify, generate, select, answer_general, abort.
    """
    graph = StateGraph(PipelineState)
    graph.add_node("classify", pipeline.classify)
    graph.add_node("extract", pipeline.extract)
    graph.add_node("verify", pipeline.verify)
    graph.add_node("generate", pipeline.generate)
    graph.add_node("select", pipeline.select)
    graph.add_node("answer_general", pipeline.answer_general)
    graph.add_node("abort", pipeline.abort)

    graph.set_entry_point("classify")
    graph.add_conditional_edges(
        "classify",
        route_after_classify,
        {"extract": "extract", "answer_general": "answer_general"},
    )
    graph.add_conditional_edges(
        "extract",
        route_after_extract,
        {"verify": "verify", "extract": "extract", "abort": "abort"},
    )
    graph.add_conditional_edges(
        "verify",
        route_after_verify,
        {"generate": "generate", "extract": "extract", "abort": "abort"},
    )
    graph.add_edge("generate", "select")
    graph.add_edge("select", END)
    graph.add_edge("answer_general", END)
    graph.add_edge("abort", END)

    return graph.compile()
