"""adding RLS policies and hnsw index on chunks

Revision ID: d0a036ac143c
Revises: a3f1c9e07b24
Create Date: 2026-09-02 11:02:13.957585

"""

from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "d0a036ac143c"
down_revision: Union[str, Sequence[str], None] = "a3f1c9e07b24"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_TABLES = (
    "documents",
    "chunks",
    "conversations",
    "messages",
    "analytics_snapshots",
    "audit_logs",
)


def upgrade() -> None:
    """Enable Row Level Security, create isolation policies and the vector index"""
    for table in TENANT_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(f"""
            CREATE POLICY tenant_isolation ON {table}
            FOR ALL
            USING (tenant_id = current_setting('app.current_tenant')::uuid)
        """)

    op.execute("""
        CREATE INDEX idx_chunks_embedding_hnsw
        ON chunks
        USING hnsw (embedding vector_cosine_ops)
        WITH (m = 16, ef_construction = 64)
    """)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("idx_chunks_embedding_hnsw", table_name="chunks")
    for table in reversed(TENANT_TABLES):
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")
