"""Concurrent catalog capture."""
import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import CaptureFailed
from .models import CatalogKind, SchemaObject

logger = logging.getLogger(__name__)


class CatalogReader(ABC):
    """Source of per-kind catalog batches from one consistent snapshot."""

    #: Kinds this reader can capture
    kinds: Sequence[CatalogKind] = tuple(CatalogKind)

    @abstractmethod
    def fetch_batch(self, kind: CatalogKind, schemas: Sequence[str]) -> List[Mapping[str, Any]]:
        """Return the records of one kind for the requested schemas.

        Each record is ``{identity, kind, payload, dependencies}``.
        Implementations must be safe to call from several threads at once.
        """


def capture_batches(reader: CatalogReader, schemas: Sequence[str],
                    kinds: Optional[Iterable[CatalogKind]] = None,
                    max_workers: int = 4) -> Dict[CatalogKind, List[SchemaObject]]:
    """Fetch every batch concurrently.

    Args:
        reader: Catalog reader bound to one snapshot
        schemas: Schema names to capture
        kinds: Kinds to capture, defaults to ``reader.kinds``
        max_workers: Number of concurrent fetches

    Returns:
        Objects per kind; either every batch or none

    Raises:
        CaptureFailed: if any fetch fails; pending fetches are cancelled
    """
    kinds = list(reader.kinds if kinds is None else kinds)
    batches: Dict[CatalogKind, List[SchemaObject]] = {}
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="catalog") as pool:
        futures = {pool.submit(reader.fetch_batch, kind, list(schemas)): kind for kind in kinds}
        try:
            for future in as_completed(futures):
                kind = futures[future]
                try:
                    records = future.result()
                except Exception as exc:
                    raise CaptureFailed(kind) from exc
                batches[kind] = [SchemaObject.from_record(record) for record in records]
                logger.debug(f"Captured {len(batches[kind])} {kind.value} objects")
        except BaseException:
            for future in futures:
                future.cancel()
            raise
    logger.info(f"Captured {sum(map(len, batches.values()))} objects from {len(schemas)} schemas")
    return batches
