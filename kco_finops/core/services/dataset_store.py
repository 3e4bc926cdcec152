"""
Dataset Store

Server-side home of uploaded billing datasets. Each upload is kept as a
StoredDataset holding the sampled raw records, the processing summary and
the upload metadata, plus the explorer views saved against it.

Backed by the shared LRU cache, so datasets expire after the configured TTL
and the least recently used ones are evicted first.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import polars as pl

from kco_finops.app.config import settings
from kco_finops.core.exceptions import DatasetNotFoundError, SavedViewNotFoundError
from kco_finops.core.services._shared import LRUCache, create_cache, validate_dataset_id
from kco_finops.lib.costs.frames import records_to_frame

logger = logging.getLogger(__name__)


@dataclass
class CsvMetadata:
    """Upload metadata (the dashboard's csvMetadata)."""
    filename: str
    total_rows: int
    sample_size: int
    column_mapping: Dict[str, str]
    uploaded_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "uploadedAt": self.uploaded_at,
            "totalRows": self.total_rows,
            "sampleSize": self.sample_size,
            "columnMapping": self.column_mapping,
        }


@dataclass
class SavedView:
    """A named explorer configuration (filters, sort, hidden columns, grouping, search)."""
    id: str
    name: str
    config: Dict[str, Any]
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "config": self.config, "createdAt": self.created_at}


@dataclass
class StoredDataset:
    """One uploaded billing dataset."""
    dataset_id: str
    raw_records: List[Dict[str, Any]]
    finops_data: Dict[str, Any]
    csv_metadata: CsvMetadata
    saved_views: Dict[str, SavedView] = field(default_factory=dict)
    _frame: Optional[pl.DataFrame] = field(default=None, repr=False)

    @property
    def frame(self) -> pl.DataFrame:
        """Raw records as a string-typed Polars frame, built on first use."""
        if self._frame is None:
            self._frame = records_to_frame(self.raw_records)
        return self._frame

    def summary(self) -> Dict[str, Any]:
        return {
            "datasetId": self.dataset_id,
            "csvMetadata": self.csv_metadata.to_dict(),
            "recordCount": len(self.raw_records),
            "totalSpend": self.finops_data.get("totalSpend"),
            "savedViews": len(self.saved_views),
        }


class DatasetStore:
    """
    In-memory store of uploaded datasets.

    Thread-safe: the cache serialises access to datasets and a store lock
    guards saved-view updates.
    """

    def __init__(self, cache: Optional[LRUCache] = None):
        self._cache = cache if cache is not None else create_cache(
            "DATASET",
            max_size=settings.dataset_cache_max_size,
            default_ttl=settings.dataset_cache_ttl_seconds,
        )
        self._lock = threading.RLock()

    def save(
        self,
        raw_records: List[Dict[str, Any]],
        finops_data: Dict[str, Any],
        csv_metadata: CsvMetadata,
        dataset_id: Optional[str] = None,
    ) -> StoredDataset:
        """Store an upload and return it with its generated id."""
        dataset = StoredDataset(
            dataset_id=dataset_id or uuid.uuid4().hex,
            raw_records=raw_records,
            finops_data=finops_data,
            csv_metadata=csv_metadata,
        )
        self._cache.set(dataset.dataset_id, dataset)
        logger.info(
            "Dataset stored",
            extra={
                "dataset_id": dataset.dataset_id,
                "upload_filename": csv_metadata.filename,
                "record_count": len(raw_records),
            }
        )
        return dataset

    def get(self, dataset_id: str) -> StoredDataset:
        """
        Fetch a dataset.

        Raises:
            InvalidParameterError: If the id format is invalid
            DatasetNotFoundError: If the dataset is unknown, expired or evicted
        """
        validate_dataset_id(dataset_id)
        dataset = self._cache.get(dataset_id)
        if dataset is None:
            raise DatasetNotFoundError(dataset_id)
        return dataset

    def delete(self, dataset_id: str) -> None:
        """
        Remove a dataset.

        Raises:
            DatasetNotFoundError: If the dataset is unknown
        """
        validate_dataset_id(dataset_id)
        if not self._cache.invalidate(dataset_id):
            raise DatasetNotFoundError(dataset_id)
        logger.info("Dataset deleted", extra={"dataset_id": dataset_id})

    def list(self) -> List[Dict[str, Any]]:
        """Summaries of all live datasets, most recently used first."""
        return [dataset.summary() for _, dataset in reversed(self._cache.items())]

    def stats(self) -> Dict[str, Any]:
        return self._cache.stats

    def clear(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------
    # Saved explorer views
    # ------------------------------------------------------------------

    def save_view(self, dataset_id: str, name: str, config: Dict[str, Any]) -> SavedView:
        """Save a named explorer view against a dataset."""
        dataset = self.get(dataset_id)
        view = SavedView(id=str(int(time.time() * 1000)) + uuid.uuid4().hex[:6], name=name, config=config)
        with self._lock:
            dataset.saved_views[view.id] = view
        return view

    def list_views(self, dataset_id: str) -> List[SavedView]:
        dataset = self.get(dataset_id)
        with self._lock:
            return list(dataset.saved_views.values())

    def delete_view(self, dataset_id: str, view_id: str) -> None:
        """
        Delete a saved view.

        Raises:
            SavedViewNotFoundError: If the view does not exist
        """
        dataset = self.get(dataset_id)
        with self._lock:
            if view_id not in dataset.saved_views:
                raise SavedViewNotFoundError(dataset_id, view_id)
            del dataset.saved_views[view_id]


_dataset_store: Optional[DatasetStore] = None


def get_dataset_store() -> DatasetStore:
    """Get singleton dataset store instance."""
    global _dataset_store
    if _dataset_store is None:
        _dataset_store = DatasetStore()
    return _dataset_store
