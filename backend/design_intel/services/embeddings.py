"""Embedding index: one vector per component plus nearest-neighbour and text search.

Vectors are written as a JSON float array in ``component_embeddings.embedding_text``.
When the database is PostgreSQL and the ``embedding`` vector column exists
(see ``migrations/migrate_vector_column_v1.py``) the same vector is also written
there and nearest-neighbour queries use the pgvector ``<=>`` operator. Otherwise
cosine similarity is computed in-process over the JSON arrays. If the vector
path fails, results fall back to metadata overlap and the degrade is logged.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
import hashlib
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

import numpy as np
from sqlalchemy import func, inspect, or_, select, text
from sqlalchemy.exc import ProgrammingError
from sqlalchemy.orm import Session

from design_intel.config import Settings, get_settings
from design_intel.errors import InvalidInputError
from design_intel.models import Component, ComponentEmbedding, ComponentTag, utcnow
from design_intel.services.catalog import CatalogStore, SearchFilters, parse_input
from design_intel.services.llm.types import LLMProviderError
from design_intel.services.similarity import cosine_scores, metadata_similarity, normalize

try:
    from openai import OpenAI
except Exception:  # pragma: no cover - import guard
    OpenAI = None

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"[a-z0-9][a-z0-9:_\-]*")


def component_text(component: Component) -> str:
    return " ".join(
        [
            component.name or "",
            component.description or "",
            component.type or "",
            component.style or "",
            " ".join(component.tags or []),
            f"complexity:{component.complexity}",
            f"aesthetic:{component.aesthetic_score}",
            " ".join(component.industries or []),
        ]
    )


def component_metadata(component: Component) -> Dict[str, Any]:
    return {
        "type": component.type,
        "style": component.style,
        "tags": list(component.tags or []),
        "aesthetic_score": component.aesthetic_score,
    }


def content_hash(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class Embedder(Protocol):
    dimension: int

    def embed(self, value: str) -> List[float]:
        ...


class HashEmbedder:
    """Feature-hashing embedder: identical text always yields a bit-identical unit vector."""

    def __init__(self, dimension: int = 1536) -> None:
        if dimension < 1:
            raise InvalidInputError("embedding dimension must be positive")
        self.dimension = dimension

    def embed(self, value: str) -> List[float]:
        vector = np.zeros(self.dimension)
        for token in _TOKEN_RE.findall(str(value or "").lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self.dimension
            vector[index] += 1.0 if digest[4] & 1 else -1.0
        return normalize(vector)


class OpenAIEmbedder:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        settings = settings or get_settings()
        if not settings.openai_api_key:
            raise LLMProviderError("OPENAI_API_KEY not configured", retryable=False)
        if OpenAI is None:
            raise LLMProviderError("openai SDK unavailable", retryable=False)
        self._client = OpenAI(api_key=settings.openai_api_key)
        self._model = settings.embedding_model
        self.dimension = settings.embedding_dimension

    def embed(self, value: str) -> List[float]:
        try:
            response = self._client.embeddings.create(
                model=self._model,
                input=value,
                dimensions=self.dimension,
            )
            return [float(x) for x in response.data[0].embedding]
        except Exception as exc:
            raise LLMProviderError(str(exc), retryable=True) from exc


def build_embedder(settings: Optional[Settings] = None) -> Embedder:
    settings = settings or get_settings()
    if settings.embedding_backend == "openai":
        return OpenAIEmbedder(settings)
    return HashEmbedder(settings.embedding_dimension)


@dataclass
class VectorHit:
    component: Component
    similarity: float
    mode: str  # "vector" | "metadata"

    @property
    def distance(self) -> float:
        return 1.0 - self.similarity


class EmbeddingIndex:
    def __init__(
        self,
        session: Session,
        embedder: Optional[Embedder] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = session
        self._settings = settings or get_settings()
        self._embedder = embedder or build_embedder(self._settings)
        self._catalog = CatalogStore(session, self._settings)
        self._native_vector: Optional[bool] = None

    @property
    def dimension(self) -> int:
        return self._embedder.dimension

    def generate_embedding(self, component: Component) -> List[float]:
        return self._embedder.embed(component_text(component))

    def _native_vector_available(self) -> bool:
        if self._native_vector is None:
            bind = self._db.get_bind()
            if bind.dialect.name != "postgresql":
                self._native_vector = False
            else:
                columns = {c["name"] for c in inspect(bind).get_columns("component_embeddings")}
                self._native_vector = "embedding" in columns
        return self._native_vector

    def upsert_embedding(
        self,
        component_id: str,
        vector: Sequence[float],
        metadata: Dict[str, Any],
        source_hash: Optional[str] = None,
    ) -> ComponentEmbedding:
        self._catalog.get(component_id)
        values = [float(x) for x in vector]
        if len(values) != self.dimension:
            raise InvalidInputError(f"expected {self.dimension} dimensions, got {len(values)}")
        serialized = json.dumps(values)

        row = self._db.get(ComponentEmbedding, component_id)
        if row is None:
            row = ComponentEmbedding(component_id=component_id)
            self._db.add(row)
        row.embedding_text = serialized
        row.dimension = len(values)
        row.content_hash = source_hash or content_hash(serialized)
        row.metadata_json = dict(metadata or {})
        row.updated_at = utcnow()
        self._db.flush()

        if self._native_vector_available():
            self._db.execute(
                text(
                    "UPDATE component_embeddings SET embedding = CAST(:embedding AS vector) "
                    "WHERE component_id = :component_id"
                ),
                {"embedding": "[" + ",".join(str(x) for x in values) + "]", "component_id": component_id},
            )
        self._db.commit()
        return row

    def index_component(self, component: Component, force: bool = False) -> ComponentEmbedding:
        """Embed a component unless its content is unchanged since the last upsert."""
        source = component_text(component)
        source_hash = content_hash(source)
        existing = self._db.get(ComponentEmbedding, component.id)
        if existing is not None and existing.content_hash == source_hash and not force:
            return existing
        return self.upsert_embedding(
            component.id,
            self._embedder.embed(source),
            component_metadata(component),
            source_hash=source_hash,
        )

    def nearest_neighbors(
        self,
        query_vector: Sequence[float],
        k: int = 10,
        min_similarity: float = 0.7,
        query_metadata: Optional[Dict[str, Any]] = None,
        exclude_ids: Iterable[str] = (),
    ) -> List[VectorHit]:
        if int(k) < 1:
            raise InvalidInputError(f"k must be positive, got {k}")
        if not -1.0 <= float(min_similarity) <= 1.0:
            raise InvalidInputError("min_similarity must be within [-1, 1]")
        excluded = set(exclude_ids or ())

        if not self._settings.vector_search_enabled:
            logger.info("Vector search disabled; ranking neighbours by metadata overlap")
            return self._metadata_neighbors(query_metadata, k, min_similarity, excluded)

        try:
            if self._native_vector_available():
                ranked = self._native_ranked(query_vector, k + len(excluded), min_similarity)
            else:
                ranked = self._json_ranked(query_vector, min_similarity)
        except ProgrammingError as exc:
            self._db.rollback()
            logger.warning("Vector operator unavailable (%s); falling back to metadata ranking", exc)
            return self._metadata_neighbors(query_metadata, k, min_similarity, excluded)
        except ValueError as exc:
            logger.warning("Stored vectors unusable (%s); falling back to metadata ranking", exc)
            return self._metadata_neighbors(query_metadata, k, min_similarity, excluded)

        ranked = [(cid, sim) for cid, sim in ranked if cid not in excluded][: int(k)]
        return self._hydrate(ranked, mode="vector")

    def _native_ranked(self, query_vector: Sequence[float], limit: int, threshold: float):
        params = {
            "embedding": "[" + ",".join(str(float(x)) for x in query_vector) + "]",
            "threshold": float(threshold),
            "limit": int(limit),
        }
        rows = self._db.execute(
            text(
                """
                SELECT component_id, 1 - (embedding <=> CAST(:embedding AS vector)) AS similarity
                FROM component_embeddings
                WHERE embedding IS NOT NULL
                  AND 1 - (embedding <=> CAST(:embedding AS vector)) >= :threshold
                ORDER BY similarity DESC, component_id ASC
                LIMIT :limit
                """
            ),
            params,
        ).all()
        return [(row.component_id, float(row.similarity)) for row in rows]

    def _json_ranked(self, query_vector: Sequence[float], threshold: float):
        ids, vectors = [], []
        for component_id, raw in self._db.execute(
            select(ComponentEmbedding.component_id, ComponentEmbedding.embedding_text)
        ):
            try:
                vectors.append(json.loads(raw))
            except (TypeError, json.JSONDecodeError) as exc:
                raise ValueError(f"malformed embedding for {component_id}") from exc
            ids.append(component_id)
        if not ids:
            return []
        if len({len(vector) for vector in vectors}) != 1:
            raise ValueError("stored embeddings have mixed dimensions")

        scores = cosine_scores(np.array(vectors, dtype=float), query_vector)
        scored = [
            (component_id, float(score))
            for component_id, score in zip(ids, scores)
            if score >= threshold
        ]
        scored.sort(key=lambda item: (-item[1], item[0]))
        return scored

    def _metadata_neighbors(
        self,
        query_metadata: Optional[Dict[str, Any]],
        k: int,
        threshold: float,
        excluded: set,
    ) -> List[VectorHit]:
        scored = []
        for component_id, metadata in self._db.execute(
            select(ComponentEmbedding.component_id, ComponentEmbedding.metadata_json)
        ):
            if component_id in excluded:
                continue
            similarity = metadata_similarity(query_metadata, metadata or {})
            if similarity >= threshold:
                scored.append((component_id, similarity))
        scored.sort(key=lambda item: (-item[1], item[0]))
        return self._hydrate(scored[: int(k)], mode="metadata")

    def _hydrate(self, ranked, mode: str) -> List[VectorHit]:
        if not ranked:
            return []
        ids = [component_id for component_id, _ in ranked]
        components = {
            c.id: c for c in self._db.scalars(select(Component).where(Component.id.in_(ids)))
        }
        return [
            VectorHit(component=components[cid], similarity=sim, mode=mode)
            for cid, sim in ranked
            if cid in components
        ]

    def find_similar(self, component_id: str, k: int = 5, min_similarity: float = 0.7) -> List[VectorHit]:
        component = self._catalog.get(component_id)
        return self.nearest_neighbors(
            self.generate_embedding(component),
            k=k,
            min_similarity=min_similarity,
            query_metadata=component_metadata(component),
            exclude_ids=[component.id],
        )

    def search_by_text(
        self,
        query: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = 20,
    ) -> List[Component]:
        term = str(query or "").strip()
        if not term:
            raise InvalidInputError("search text must not be empty")
        parsed = parse_input(SearchFilters, filters or {})
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        stmt = select(Component).where(
            or_(
                Component.name.ilike(pattern, escape="\\"),
                Component.description.ilike(pattern, escape="\\"),
                Component.id.in_(
                    select(ComponentTag.component_id).where(ComponentTag.tag == term.lower())
                ),
            )
        )
        stmt = self._catalog.apply_filters(stmt, parsed)
        stmt = stmt.order_by(
            Component.aesthetic_score.desc(),
            Component.usage_count.desc(),
            Component.id.asc(),
        ).limit(self._catalog.resolve_limit(limit, default=20))
        return list(self._db.scalars(stmt))

    def components_by_style(self, style: str, limit: int = 15) -> List[Component]:
        return self._catalog.search({"style": style}, limit=limit)

    def trending_components(self, days: int = 7, limit: int = 20) -> List[Component]:
        since = utcnow() - timedelta(days=days)
        stmt = (
            select(Component)
            .join(ComponentEmbedding, ComponentEmbedding.component_id == Component.id)
            .where(Component.created_at >= since)
            .order_by(Component.usage_count.desc(), Component.aesthetic_score.desc(), Component.id.asc())
            .limit(self._catalog.resolve_limit(limit, default=20))
        )
        return list(self._db.scalars(stmt))

    def stats(self) -> Dict[str, Any]:
        total = self._db.scalar(select(func.count(ComponentEmbedding.component_id))) or 0
        by_type = self._db.execute(
            select(Component.type, func.count(ComponentEmbedding.component_id))
            .join(Component, Component.id == ComponentEmbedding.component_id)
            .group_by(Component.type)
            .order_by(func.count(ComponentEmbedding.component_id).desc(), Component.type)
            .limit(10)
        ).all()
        return {
            "total_embeddings": int(total),
            "top_types": [{"type": type_, "count": int(count)} for type_, count in by_type],
        }
