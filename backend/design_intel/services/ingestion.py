"""Write entry point for scraping and generation workers."""
from __future__ import annotations

from typing import Any, Dict, Union

from design_intel.models import Component
from design_intel.services.catalog import CatalogStore, ComponentInput
from design_intel.services.embeddings import EmbeddingIndex


class ComponentIngestor:
    def __init__(self, catalog: CatalogStore, index: EmbeddingIndex) -> None:
        self._catalog = catalog
        self._index = index

    def ingest(self, data: Union[ComponentInput, Dict[str, Any]]) -> Component:
        component = self._catalog.insert_or_update(data)
        self._index.index_component(component)
        return component
