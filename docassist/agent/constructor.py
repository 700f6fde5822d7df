from typing import Any, AsyncIterator

from langchain_core.language_models import BaseChatModel
from langchain_core.runnables import Runnable
from langgraph.graph import END, START, StateGraph

from docassist.agent.nodes.generation import make_generate_node
from docassist.agent.nodes.retrieval import make_retrieve_node
from docassist.agent.state import ChatState
from docassist.services.retrieval import RetrievalEngine

GENERATE_NODE = "generate"


def build_chat_graph(retrieval: RetrievalEngine, llm: BaseChatModel) -> Runnable:
    """Compile the retrieve -> generate graph."""
    graph = StateGraph(ChatState)
    graph.add_node("retrieve", make_retrieve_node(retrieval))
    graph.add_node(GENERATE_NODE, make_generate_node(llm))

    graph.add_edge(START, "retrieve")
    graph.add_edge("retrieve", GENERATE_NODE)
    graph.add_edge(GENERATE_NODE, END)
    return graph.compile()


def _chunk_text(content: Any) -> str:
    # Some providers stream a list of content parts instead of a string.
    if isinstance(content, str):
        return content
    return "".join(
        part.get("text", "") if isinstance(part, dict) else str(part) for part in content
    )


async def stream_tokens(
    runnable: Runnable, question: str, tenant_id: str
) -> AsyncIterator[str]:
    """
    Run the graph and yield the generate node's text fragments in order.

    Errors from retrieval or the model propagate to the caller. Closing
    this generator closes the underlying event stream.
    """
    initial_state: ChatState = {
        "question": question,
        "tenant_id": str(tenant_id),
        "context": "",
        "answer": "",
    }
    events = runnable.astream_events(initial_state, version="v2")
    try:
        async for event in events:
            if event["event"] != "on_chat_model_stream":
                continue
            if event.get("metadata", {}).get("langgraph_node") != GENERATE_NODE:
                continue
            text = _chunk_text(event["data"]["chunk"].content)
            if text:
                yield text
    finally:
        await events.aclose()
