"""Wires the services together for one process."""

from dataclasses import dataclass

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from docassist.agent.constructor import build_chat_graph
from docassist.services.analytics import AnalyticsAggregator
from docassist.services.audit import AuditTrail
from docassist.services.chat import ChatStreamingService
from docassist.services.conversations import ConversationStore
from docassist.services.documents import DocumentService
from docassist.services.ingestion import IngestionPipeline
from docassist.services.metrics import MetricsCollector
from docassist.services.retrieval import RetrievalEngine
from docassist.services.vector_store import VectorStoreAdapter, build_vector_store
from docassist.settings import Settings


@dataclass
class Services:
    vector_store: VectorStoreAdapter
    retrieval: RetrievalEngine
    conversations: ConversationStore
    analytics: AnalyticsAggregator
    audit: AuditTrail
    documents: DocumentService
    ingestion: IngestionPipeline
    chat: ChatStreamingService


def build_services(
    config: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    embeddings: Embeddings,
    llm: BaseChatModel,
    metrics: MetricsCollector,
) -> Services:
    vector_store = build_vector_store(config.VECTOR_BACKEND, session_factory, embeddings)
    retrieval = RetrievalEngine(vector_store, top_k=config.RETRIEVAL_TOP_K)
    conversations = ConversationStore(session_factory)
    analytics = AnalyticsAggregator(
        session_factory, max_attempts=config.ANALYTICS_MAX_UPDATE_ATTEMPTS
    )
    audit = AuditTrail(session_factory)
    documents = DocumentService(session_factory, vector_store, analytics)
    ingestion = IngestionPipeline(documents, vector_store, analytics)
    chat = ChatStreamingService(
        build_chat_graph(retrieval, llm),
        conversations,
        analytics,
        metrics,
        audit,
        generation_timeout=config.GENERATION_TIMEOUT_SECONDS,
    )
    return Services(
        vector_store=vector_store,
        retrieval=retrieval,
        conversations=conversations,
        analytics=analytics,
        audit=audit,
        documents=documents,
        ingestion=ingestion,
        chat=chat,
    )
