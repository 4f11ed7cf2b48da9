"""
Migration script adding a native pgvector column to component_embeddings.

This script:
1. Creates the `vector` extension (requires privileges)
2. Adds `embedding vector(N)` with N = EMBEDDING_DIMENSION
3. Backfills it from the JSON `embedding_text` column
4. Builds an ivfflat cosine index

Without this migration the index ranks vectors in-process from the JSON
column; with it, nearest-neighbour queries run in PostgreSQL.

Run with:
    python -m migrations.migrate_vector_column_v1
"""
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import create_engine, inspect, text

from design_intel.config import get_settings
from design_intel.models.base import init_db

settings = get_settings()


def migrate_vector_column_v1():
    engine = create_engine(settings.database_url, echo=True)
    if engine.dialect.name != "postgresql":
        print("Skipping: native vector column needs PostgreSQL with pgvector")
        return

    init_db(engine)
    dimension = int(settings.embedding_dimension)
    with engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        cols = {c["name"] for c in inspect(conn).get_columns("component_embeddings")}
        if "embedding" not in cols:
            print(f"Adding component_embeddings.embedding vector({dimension})")
            conn.execute(text(f"ALTER TABLE component_embeddings ADD COLUMN embedding vector({dimension})"))

        result = conn.execute(
            text(
                """
                UPDATE component_embeddings
                SET embedding = CAST(embedding_text AS vector)
                WHERE embedding IS NULL
                  AND embedding_text IS NOT NULL
                  AND dimension = :dimension
                """
            ),
            {"dimension": dimension},
        )
        print(f"Backfilled {result.rowcount} embeddings")

        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS idx_component_embeddings_vector
                ON component_embeddings USING ivfflat (embedding vector_cosine_ops)
                WITH (lists = 100)
                """
            )
        )
    print("Vector column migration complete")


if __name__ == "__main__":
    migrate_vector_column_v1()
