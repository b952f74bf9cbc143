"""
Vector Index Client backed by FAISS

Named collections of (id, vector, payload) points with exact
inner-product search. Cosine collections L2-normalize vectors on write
and on query, so scores are cosine similarities (higher = closer).

Aliases let a caller build a new collection off to the side and then
repoint a stable name at it in one step; every operation that takes a
collection name resolves aliases first.
"""

import os
import json
import pickle
import logging
import threading
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Sequence

import faiss
import numpy as np

from ..exceptions import VectorIndexError
from ..models import IndexedPoint, SearchHit

logger = logging.getLogger(__name__)

COSINE = 'cosine'
DOT = 'dot'
SUPPORTED_METRICS = (COSINE, DOT)

_ALIASES_FILE = 'aliases.json'
_MANIFEST_FILE = 'collections.json'


@dataclass
class _Collection:
    """A FAISS index plus the payloads of its points, keyed by id."""
    name: str
    dimension: int
    metric: str
    index: faiss.IndexIDMap2
    payloads: Dict[int, Dict] = field(default_factory=dict)


def _new_index(dimension: int) -> faiss.IndexIDMap2:
    return faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))


class FaissIndexClient:
    """
    In-process vector index with collection, alias and persistence support.

    Thread-safe: a single re-entrant lock guards all FAISS structures.
    No operation is retried; failures raise VectorIndexError.
    """

    def __init__(self, persist_dir: Optional[str] = None):
        """
        Initialize the client.

        Args:
            persist_dir: Directory used by save()/load() when no path is given
        """
        self.persist_dir = persist_dir
        self._collections: Dict[str, _Collection] = {}
        self._aliases: Dict[str, str] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Collections
    # ------------------------------------------------------------------

    def _resolve(self, name: str) -> str:
        return self._aliases.get(name, name)

    def _get_collection(self, name: str) -> _Collection:
        resolved = self._resolve(name)
        collection = self._collections.get(resolved)
        if collection is None:
            raise VectorIndexError(f"Collection '{name}' does not exist")
        return collection

    def ensure_collection(self, name: str, dimension: int, metric: str = COSINE) -> None:
        """
        Drop any collection called `name` and create an empty one.

        Args:
            name: Collection name (must not be an alias)
            dimension: Vector dimensionality
            metric: 'cosine' or 'dot'

        Raises:
            VectorIndexError: On invalid dimension/metric or alias name clash
        """
        if dimension <= 0:
            raise VectorIndexError(f"dimension must be positive, got {dimension}")
        if metric not in SUPPORTED_METRICS:
            raise VectorIndexError(
                f"Unsupported metric '{metric}', expected one of {SUPPORTED_METRICS}"
            )

        with self._lock:
            if name in self._aliases:
                raise VectorIndexError(f"'{name}' is an alias, not a collection")

            if name in self._collections:
                del self._collections[name]
                logger.info(f"Deleted existing collection '{name}'")
            else:
                logger.debug(f"No existing collection '{name}' to delete")

            self._collections[name] = _Collection(
                name=name,
                dimension=dimension,
                metric=metric,
                index=_new_index(dimension),
            )
            logger.info(f"✓ Created collection '{name}' (dimension={dimension}, metric={metric})")

    def delete_collection(self, name: str) -> bool:
        """
        Delete a collection and any aliases pointing at it.

        Returns:
            True if a collection was deleted
        """
        with self._lock:
            if self._collections.pop(name, None) is None:
                return False

            for alias in [a for a, target in self._aliases.items() if target == name]:
                del self._aliases[alias]
            logger.info(f"Deleted collection '{name}'")
            return True

    def collection_exists(self, name: str) -> bool:
        with self._lock:
            return self._resolve(name) in self._collections

    def list_collections(self) -> List[str]:
        with self._lock:
            return sorted(self._collections)

    def count(self, name: str) -> int:
        """Number of points in a collection."""
        with self._lock:
            return int(self._get_collection(name).index.ntotal)

    # ------------------------------------------------------------------
    # Aliases
    # ------------------------------------------------------------------

    def set_alias(self, alias: str, collection: str) -> Optional[str]:
        """
        Atomically point `alias` at `collection`.

        Returns:
            The collection the alias pointed at before, if any

        Raises:
            VectorIndexError: If the target is missing or the alias names a collection
        """
        with self._lock:
            if collection not in self._collections:
                raise VectorIndexError(f"Collection '{collection}' does not exist")
            if alias in self._collections:
                raise VectorIndexError(f"'{alias}' is already a collection name")

            previous = self._aliases.get(alias)
            self._aliases[alias] = collection
            logger.info(f"Alias '{alias}' -> '{collection}'")
            return previous

    def get_alias_target(self, alias: str) -> Optional[str]:
        with self._lock:
            return self._aliases.get(alias)

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    def _prepare(self, collection: _Collection, vectors) -> np.ndarray:
        array = np.array(vectors, dtype=np.float32)
        if array.ndim != 2 or array.shape[1] != collection.dimension:
            got = array.shape[-1] if array.ndim else 0
            raise VectorIndexError(
                f"Vector dimension ({got}) must match collection "
                f"'{collection.name}' dimension ({collection.dimension})"
            )
        if collection.metric == COSINE:
            faiss.normalize_L2(array)
        return array

    def upsert(self, name: str, points: Sequence[IndexedPoint]) -> None:
        """
        Insert points, overwriting any existing points with the same id.

        Raises:
            VectorIndexError: If the collection is missing or a vector has the wrong dimension
        """
        if not points:
            return

        ids = [int(point.id) for point in points]
        if len(set(ids)) != len(ids):
            raise VectorIndexError("Duplicate point ids in a single upsert batch")

        with self._lock:
            collection = self._get_collection(name)
            vectors = self._prepare(collection, [point.vector for point in points])
            id_array = np.array(ids, dtype=np.int64)

            try:
                existing = [i for i in ids if i in collection.payloads]
                if existing:
                    collection.index.remove_ids(np.array(existing, dtype=np.int64))
                collection.index.add_with_ids(vectors, id_array)
            except RuntimeError as e:
                raise VectorIndexError(f"FAISS upsert into '{collection.name}' failed: {e}") from e

            for point in points:
                collection.payloads[int(point.id)] = dict(point.payload)

            # Payloads and vectors must stay in step
            if collection.index.ntotal != len(collection.payloads):
                raise VectorIndexError(
                    f"Collection '{collection.name}' out of sync: "
                    f"{collection.index.ntotal} vectors, {len(collection.payloads)} payloads"
                )

    def search(self, name: str, query_vector: Sequence[float], k: int) -> List[SearchHit]:
        """
        Return up to k nearest points by descending score.

        Raises:
            ValueError: If k is not positive
            VectorIndexError: If the collection is missing or the dimension is wrong
        """
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")

        with self._lock:
            collection = self._get_collection(name)
            query = self._prepare(collection, [query_vector])

            total = int(collection.index.ntotal)
            if total == 0:
                return []

            try:
                scores, labels = collection.index.search(query, min(k, total))
            except RuntimeError as e:
                raise VectorIndexError(f"FAISS search in '{collection.name}' failed: {e}") from e

            hits = []
            for score, label in zip(scores[0], labels[0]):
                if label < 0:
                    continue
                hits.append(SearchHit(
                    id=int(label),
                    score=float(score),
                    payload=dict(collection.payloads.get(int(label), {})),
                ))
            return hits

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: Optional[str] = None) -> str:
        """
        Write every collection and the alias table to `directory`.

        Each file is written to a temp path first and renamed into place.

        Returns:
            The directory written to

        Raises:
            VectorIndexError: If there is no target directory or a write fails
        """
        target = directory or self.persist_dir
        if not target:
            raise VectorIndexError("No directory given and no persist_dir configured")

        try:
            manifest = self._write_snapshot(target)
        except (RuntimeError, OSError) as e:
            raise VectorIndexError(f"Failed to save index to {target}: {e}") from e

        logger.info(f"Saved {len(manifest)} collection(s) to {target}")
        return target

    def _write_snapshot(self, target: str) -> Dict:
        os.makedirs(target, exist_ok=True)

        with self._lock:
            manifest = {}
            for name, collection in self._collections.items():
                index_path = os.path.join(target, f"{name}.index")
                payload_path = os.path.join(target, f"{name}.payloads")

                faiss.write_index(collection.index, index_path + '.tmp')
                os.replace(index_path + '.tmp', index_path)
                self._atomic_write(
                    payload_path,
                    pickle.dumps(collection.payloads, protocol=pickle.HIGHEST_PROTOCOL)
                )
                manifest[name] = {
                    'dimension': collection.dimension,
                    'metric': collection.metric,
                }

            self._atomic_write(
                os.path.join(target, _MANIFEST_FILE),
                json.dumps(manifest, indent=2).encode('utf-8')
            )
            self._atomic_write(
                os.path.join(target, _ALIASES_FILE),
                json.dumps(self._aliases, indent=2).encode('utf-8')
            )

            # Remove files of collections that no longer exist
            for filename in os.listdir(target):
                stem, ext = os.path.splitext(filename)
                if ext in ('.index', '.payloads') and stem not in manifest:
                    os.remove(os.path.join(target, filename))

        return manifest

    def load(self, directory: Optional[str] = None) -> bool:
        """
        Replace in-memory state with what save() wrote to `directory`.

        Returns:
            True if state was loaded, False if nothing was saved there

        Raises:
            VectorIndexError: If the saved files are inconsistent
        """
        source = directory or self.persist_dir
        if not source:
            raise VectorIndexError("No directory given and no persist_dir configured")

        manifest_path = os.path.join(source, _MANIFEST_FILE)
        if not os.path.exists(manifest_path):
            return False

        try:
            with open(manifest_path, 'r') as f:
                manifest = json.load(f)

            collections = {}
            for name, info in manifest.items():
                index = faiss.read_index(os.path.join(source, f"{name}.index"))
                with open(os.path.join(source, f"{name}.payloads"), 'rb') as f:
                    payloads = pickle.load(f)

                if index.ntotal != len(payloads):
                    raise VectorIndexError(
                        f"Collection '{name}' has {index.ntotal} vectors but "
                        f"{len(payloads)} payloads"
                    )
                if index.d != info['dimension']:
                    raise VectorIndexError(
                        f"Collection '{name}' dimension {index.d} does not match "
                        f"manifest ({info['dimension']})"
                    )

                collections[name] = _Collection(
                    name=name,
                    dimension=info['dimension'],
                    metric=info['metric'],
                    index=faiss.downcast_index(index),
                    payloads=payloads,
                )

            aliases = {}
            aliases_path = os.path.join(source, _ALIASES_FILE)
            if os.path.exists(aliases_path):
                with open(aliases_path, 'r') as f:
                    aliases = {k: v for k, v in json.load(f).items() if v in collections}

        except VectorIndexError:
            raise
        except (OSError, RuntimeError, ValueError, KeyError, pickle.UnpicklingError) as e:
            raise VectorIndexError(f"Failed to load index from {source}: {e}") from e

        with self._lock:
            self._collections = collections
            self._aliases = aliases

        logger.info(f"Loaded {len(collections)} collection(s) from {source}")
        return True

    @staticmethod
    def _atomic_write(path: str, data: bytes) -> None:
        temp_path = path + '.tmp'
        try:
            with open(temp_path, 'wb') as f:
                f.write(data)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def get_stats(self) -> Dict:
        """Point counts per collection plus the alias table."""
        with self._lock:
            return {
                'collections': {
                    name: {
                        'points': int(collection.index.ntotal),
                        'dimension': collection.dimension,
                        'metric': collection.metric,
                    }
                    for name, collection in self._collections.items()
                },
                'aliases': dict(self._aliases),
            }

    def __repr__(self) -> str:
        with self._lock:
            return (
                f"FaissIndexClient(collections={len(self._collections)}, "
                f"aliases={len(self._aliases)})"
            )
