import numpy as np
import pytest
from sqlalchemy.exc import ProgrammingError

from design_intel.errors import InvalidInputError, NotFoundError
from design_intel.models import ComponentEmbedding
from design_intel.services.catalog import CatalogStore
from design_intel.services.embeddings import EmbeddingIndex, HashEmbedder
from design_intel.services.ingestion import ComponentIngestor
from design_intel.services.similarity import cosine_scores, cosine_similarity, normalize


def _ingest(db, settings, *payloads):
    catalog = CatalogStore(db, settings)
    index = EmbeddingIndex(db, settings=settings)
    ingestor = ComponentIngestor(catalog, index)
    return index, [ingestor.ingest(payload) for payload in payloads]


def test_generate_embedding_is_pure(db, settings, component_data):
    index, (component,) = _ingest(db, settings, component_data(id="comp_a"))

    first = index.generate_embedding(component)
    second = index.generate_embedding(component)
    fresh = EmbeddingIndex(db, embedder=HashEmbedder(settings.embedding_dimension), settings=settings)

    assert first == second == fresh.generate_embedding(component)
    assert len(first) == settings.embedding_dimension


def test_ingest_stores_one_embedding_per_component(db, settings, component_data):
    index, _ = _ingest(db, settings, component_data(id="comp_a"), component_data(id="comp_a", name="Renamed"))

    rows = db.query(ComponentEmbedding).all()
    assert len(rows) == 1
    assert rows[0].dimension == settings.embedding_dimension
    assert index.stats()["total_embeddings"] == 1


def test_nearest_neighbors_respects_k_and_threshold(db, settings, component_data):
    index, components = _ingest(
        db,
        settings,
        component_data(id="comp_a", name="Glass Hero", tags=["glass", "hero"]),
        component_data(id="comp_b", name="Glass Hero Dark", tags=["glass", "hero", "dark"]),
        component_data(id="comp_c", name="Pricing Table", type="pricing", category="display", style="minimal", tags=["pricing"]),
        component_data(id="comp_d", name="Glass Hero Light", tags=["glass", "hero", "light"]),
    )
    query = index.generate_embedding(components[0])

    for k, threshold in [(1, 0.0), (2, 0.5), (10, 0.9), (3, -1.0)]:
        hits = index.nearest_neighbors(query, k=k, min_similarity=threshold)
        assert len(hits) <= k
        assert all(hit.similarity >= threshold for hit in hits)
        sims = [hit.similarity for hit in hits]
        assert sims == sorted(sims, reverse=True)

    top = index.nearest_neighbors(query, k=1, min_similarity=0.0)
    assert top[0].component.id == "comp_a"
    assert top[0].similarity == pytest.approx(1.0)
    assert top[0].mode == "vector"


def test_find_similar_excludes_the_component_itself(db, settings, component_data):
    index, _ = _ingest(
        db,
        settings,
        component_data(id="comp_a", tags=["glass", "hero"]),
        component_data(id="comp_b", tags=["glass", "hero"], name="Glass Hero Two"),
    )

    hits = index.find_similar("comp_a", k=5, min_similarity=0.0)

    assert "comp_a" not in {hit.component.id for hit in hits}
    assert [hit.component.id for hit in hits] == ["comp_b"]
    with pytest.raises(NotFoundError):
        index.find_similar("missing")


def test_nearest_neighbors_degrades_to_metadata_when_operator_missing(db, settings, component_data, monkeypatch, caplog):
    index, components = _ingest(
        db,
        settings,
        component_data(id="comp_a", tags=["glass", "hero"], aesthetic_score=90),
        component_data(id="comp_b", tags=["glass"], aesthetic_score=60),
        component_data(id="comp_c", tags=["flat"], style="minimal", aesthetic_score=30),
    )

    def _broken(*_args, **_kwargs):
        raise ProgrammingError("SELECT ...", {}, Exception("operator does not exist: vector <=> vector"))

    monkeypatch.setattr(index, "_json_ranked", _broken)
    query_metadata = {"type": "hero", "style": "glassmorphism", "tags": ["glass", "hero"], "aesthetic_score": 90}

    with caplog.at_level("WARNING"):
        first = index.nearest_neighbors([0.0] * settings.embedding_dimension, k=2, min_similarity=0.1, query_metadata=query_metadata)
    second = index.nearest_neighbors([0.0] * settings.embedding_dimension, k=2, min_similarity=0.1, query_metadata=query_metadata)

    assert [hit.component.id for hit in first] == ["comp_a", "comp_b"]
    assert [hit.component.id for hit in first] == [hit.component.id for hit in second]
    assert all(hit.mode == "metadata" for hit in first)
    assert "falling back to metadata" in caplog.text


def test_nearest_neighbors_uses_metadata_when_vector_search_disabled(db, settings, component_data):
    settings.vector_search_enabled = False
    index, _ = _ingest(
        db,
        settings,
        component_data(id="comp_a", aesthetic_score=90),
        component_data(id="comp_b", aesthetic_score=50),
    )

    hits = index.nearest_neighbors([1.0], k=5, min_similarity=0.0)

    assert [hit.component.id for hit in hits] == ["comp_a", "comp_b"]
    assert hits[0].similarity == pytest.approx(0.45)


def test_dimension_mismatch_falls_back_instead_of_raising(db, settings, component_data):
    index, _ = _ingest(db, settings, component_data(id="comp_a"))

    hits = index.nearest_neighbors([1.0, 0.0], k=3, min_similarity=0.0)

    assert all(hit.mode == "metadata" for hit in hits)


def test_nearest_neighbors_rejects_bad_arguments(db, settings):
    index = EmbeddingIndex(db, settings=settings)
    with pytest.raises(InvalidInputError):
        index.nearest_neighbors([0.0] * settings.embedding_dimension, k=0)
    with pytest.raises(InvalidInputError):
        index.nearest_neighbors([0.0] * settings.embedding_dimension, min_similarity=1.5)


def test_upsert_embedding_validates_dimension_and_component(db, settings, component_data):
    index, _ = _ingest(db, settings, component_data(id="comp_a"))
    with pytest.raises(InvalidInputError):
        index.upsert_embedding("comp_a", [0.1, 0.2], {})
    with pytest.raises(NotFoundError):
        index.upsert_embedding("missing", [0.0] * settings.embedding_dimension, {})


def test_search_by_text_matches_name_description_and_tags(db, settings, component_data):
    index, _ = _ingest(
        db,
        settings,
        component_data(id="comp_a", name="Aurora Hero", description="northern lights", tags=["glow"], aesthetic_score=70),
        component_data(id="comp_b", name="Plain Card", type="card", category="display", description="simple", tags=["aurora"], aesthetic_score=90),
        component_data(id="comp_c", name="Footer", type="footer", description="links 100%", tags=[], aesthetic_score=50),
    )

    assert [c.id for c in index.search_by_text("aurora")] == ["comp_b", "comp_a"]
    assert [c.id for c in index.search_by_text("aurora", {"type": "hero"})] == ["comp_a"]
    assert [c.id for c in index.search_by_text("100%")] == ["comp_c"]
    with pytest.raises(InvalidInputError):
        index.search_by_text("   ")


def test_cosine_scores_against_a_matrix():
    scores = cosine_scores(np.array([[1.0, 0.0], [0.0, 2.0], [0.0, 0.0]]), [1.0, 1.0])

    assert scores.tolist() == pytest.approx([0.70710678, 0.70710678, 0.0])
    assert cosine_similarity([1, 2, 3], [2, 4, 6]) == pytest.approx(1.0)
    with pytest.raises(ValueError):
        cosine_scores(np.ones((2, 3)), [1.0, 1.0])
    with pytest.raises(ValueError):
        cosine_similarity([1.0], [1.0, 0.0])


def test_hash_embeddings_are_unit_length(settings):
    vector = HashEmbedder(settings.embedding_dimension).embed("glass hero gradient")

    assert np.linalg.norm(vector) == pytest.approx(1.0)
    assert normalize([0.0, 0.0]) == [0.0, 0.0]
