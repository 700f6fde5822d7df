"""Node for generating an answer grounded in the retrieved context."""

from typing import Awaitable, Callable

from langchain_core.language_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from docassist.agent.state import ChatState
from docassist.settings import settings
from docassist.utils.logging_config import logger

prompt = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "You are a helpful assistant for an organization. "
            "Use the provided context to answer the user's question. "
            "If the answer is not in the context, say you don't know.\n\n"
            "Context:\n{context}",
        ),
        ("human", "{question}"),
    ]
)


def create_chat_model() -> BaseChatModel:
    return ChatGoogleGenerativeAI(
        model=settings.CHAT_MODEL,
        temperature=settings.CHAT_TEMPERATURE,
        google_api_key=settings.GOOGLE_API_KEY,
    )


def make_generate_node(llm: BaseChatModel) -> Callable[[ChatState], Awaitable[dict]]:
    chain = prompt | llm

    async def generate_answer(state: ChatState) -> dict:
        """
        Answer the question from the context. Under astream_events the
        model streams, so callers see tokens before this node returns.
        """
        logger.debug("---NODE: GENERATE ANSWER---")
        response = await chain.ainvoke(
            {"context": state["context"], "question": state["question"]}
        )
        return {"answer": response.content}

    return generate_answer
