"""Node for retrieving the tenant's relevant chunks as a context string."""

from typing import Awaitable, Callable

from docassist.agent.state import ChatState
from docassist.services.retrieval import RetrievalEngine
from docassist.utils.logging_config import logger


def make_retrieve_node(
    retrieval: RetrievalEngine,
) -> Callable[[ChatState], Awaitable[dict]]:
    async def retrieve_context(state: ChatState) -> dict:
        """
        Look up context for the user's question, restricted to the tenant
        carried in the state.
        """
        logger.debug("---NODE: RETRIEVE CONTEXT---")
        context = await retrieval.build_context(state["question"], state["tenant_id"])
        return {"context": context}

    return retrieve_context
