"""Dataset cache - holds the immutable base FeatureCollection.

The dataset is fetched once per session from a static location:
- Local path: read from disk
- http(s) URL: downloaded with requests

Fixed-asset markers come from a small JSON list (read_markers).

Reads run in a worker thread so the event loop stays responsive. Concurrent
fetch() calls share one in-flight load.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import requests

from globeview.constants import DataConfig
from globeview.model.errors import DatasetFetchError
from globeview.model.feature import FeatureCollection
from globeview.model.marker import MarkerRecord, MarkerStatus

logger = logging.getLogger(__name__)


def read_geojson(location: str | Path, timeout_s: float = DataConfig.FETCH_TIMEOUT_S) -> dict:
    """Load a GeoJSON document from a path or URL (blocking).

    Raises:
        requests.RequestException: If the download fails.
        OSError: If the file cannot be read.
        ValueError: If the content is not valid JSON.
    """
    text = str(location)
    if text.startswith(("http://", "https://")):
        response = requests.get(text, timeout=timeout_s)
        response.raise_for_status()
        return response.json()

    with open(Path(location), "r", encoding="utf-8") as fh:
        return json.load(fh)


def read_markers(location: str | Path = DataConfig.ASSETS_PATH) -> list[MarkerRecord]:
    """Load fixed-asset marker records from a JSON list.

    Raises:
        DatasetFetchError: If the file is missing, unreadable or malformed.
    """
    try:
        with open(Path(location), "r", encoding="utf-8") as fh:
            items = json.load(fh)
        return [
            MarkerRecord(
                id=item["id"],
                coordinates=(float(item["coordinates"][0]), float(item["coordinates"][1])),
                status=MarkerStatus(item.get("status", MarkerStatus.ACTIVE.value)),
                name=item.get("name", ""),
            )
            for item in items
        ]
    except (OSError, ValueError, KeyError, IndexError, TypeError) as e:
        raise DatasetFetchError(f"Failed to load markers from {location}: {e}") from e


class DatasetCache:
    """Session-scoped holder of the base collection.

    Example:
        cache = DatasetCache()
        base = await cache.fetch()
    """

    def __init__(
        self,
        location: str | Path = DataConfig.DATASET_PATH,
        timeout_s: float = DataConfig.FETCH_TIMEOUT_S,
    ) -> None:
        self.location = location
        self.timeout_s = timeout_s
        self._collection: Optional[FeatureCollection] = None
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_loaded(self) -> bool:
        return self._collection is not None

    @property
    def collection(self) -> FeatureCollection:
        """Base collection, empty until fetch() succeeds."""
        return self._collection if self._collection is not None else FeatureCollection()

    async def fetch(self) -> FeatureCollection:
        """Fetch and parse the dataset once; later calls return the cached collection.

        Raises:
            DatasetFetchError: If the dataset cannot be read or parsed.
        """
        if self._collection is not None:
            return self._collection

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._load())
        pending = self._pending
        try:
            return await pending
        finally:
            if self._pending is pending and pending.done():
                self._pending = None

    async def _load(self) -> FeatureCollection:
        logger.info(f"Fetching dataset from {self.location}")
        try:
            data = await asyncio.to_thread(read_geojson, self.location, self.timeout_s)
            collection = FeatureCollection.from_geojson(data)
        except (requests.RequestException, OSError, ValueError) as e:
            raise DatasetFetchError(f"Failed to load dataset from {self.location}: {e}") from e

        self._collection = collection
        logger.info(f"Dataset loaded: {len(collection)} features")
        return collection

    def load_collection(self, collection: FeatureCollection) -> None:
        """Install an already-parsed collection (skips fetching)."""
        self._collection = collection
