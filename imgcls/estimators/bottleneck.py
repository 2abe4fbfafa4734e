"""Bottleneck value cache keyed by sample identity."""

from __future__ import annotations

import hashlib
import io
import logging
import pickle
from pathlib import Path
from typing import Any

import torch

from imgcls.core.io import atomic_write_bytes
from imgcls.data.contracts import Payload

LOGGER = logging.getLogger(__name__)


def payload_digest(payload: Payload) -> str:
    """Content fingerprint used to invalidate stale cached bottlenecks."""
    if isinstance(payload, bytes):
        return hashlib.sha1(payload).hexdigest()
    path = Path(payload)
    stat = path.stat()
    return hashlib.sha1(
        f"{path.resolve()}:{stat.st_size}:{stat.st_mtime_ns}".encode()
    ).hexdigest()


class BottleneckCache:
    """Bottleneck vectors of one dataset split, keyed by sample identifier.

    With `reuse=True` every vector is computed once and served from memory on
    later passes; when `directory` is set the cache is also loaded from and
    flushed to `<directory>/<dataset>_<arch>_<size>.pt` so later runs reuse it.
    With `reuse=False` each pass starts empty and recomputes every vector.
    Rows that failed to decode are remembered for the lifetime of the cache
    object so they are neither decoded nor reported again; they are never
    written to disk.
    """

    def __init__(
        self,
        *,
        dataset: str,
        arch: str,
        image_size: int,
        reuse: bool,
        directory: Path | None = None,
    ) -> None:
        self.dataset = dataset
        self.arch = arch
        self.image_size = image_size
        self.reuse = reuse
        self.directory = directory
        self._entries: dict[str, tuple[str, torch.Tensor]] = {}
        self._undecodable: set[tuple[str, str]] = set()
        self._dirty = False
        self.computed = 0
        self.reused = 0

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def path(self) -> Path | None:
        if self.directory is None or not self.reuse:
            return None
        return self.directory / f"{self.dataset}_{self.arch}_{self.image_size}.pt"

    def load(self) -> None:
        """Populate from disk when a compatible cache file exists."""
        path = self.path
        if path is None or not path.is_file():
            return
        try:
            payload: Any = torch.load(path, map_location="cpu", weights_only=True)
            if payload.get("arch") != self.arch or payload.get(
                "image_size"
            ) != self.image_size:
                LOGGER.warning(
                    "bottleneck_cache_ignored path=%s reason=incompatible_backbone",
                    path,
                )
                return
            entries = {
                identifier: (str(entry["digest"]), entry["vector"])
                for identifier, entry in payload["entries"].items()
            }
        except (
            OSError,
            RuntimeError,
            KeyError,
            TypeError,
            AttributeError,
            pickle.UnpicklingError,
        ) as exc:
            LOGGER.warning(
                "bottleneck_cache_ignored path=%s reason=%s", path, exc
            )
            return
        self._entries = entries
        LOGGER.info(
            "bottleneck_cache_loaded dataset=%s path=%s entries=%d",
            self.dataset,
            path,
            len(entries),
        )

    def flush(self) -> None:
        """Persist new entries when disk caching is enabled."""
        path = self.path
        if path is None or not self._dirty:
            return
        payload = {
            "arch": self.arch,
            "image_size": self.image_size,
            "entries": {
                identifier: {"digest": digest, "vector": vector}
                for identifier, (digest, vector) in sorted(self._entries.items())
            },
        }
        buffer = io.BytesIO()
        torch.save(payload, buffer)
        atomic_write_bytes(path, buffer.getvalue())
        self._dirty = False
        LOGGER.info(
            "bottleneck_cache_saved dataset=%s path=%s entries=%d",
            self.dataset,
            path,
            len(self._entries),
        )

    def begin_pass(self) -> None:
        """Reset pass counters; drops all entries when reuse is disabled."""
        if not self.reuse:
            self._entries.clear()
        self.computed = 0
        self.reused = 0

    def lookup(self, identifier: str, digest: str) -> torch.Tensor | None:
        entry = self._entries.get(identifier)
        if entry is None or entry[0] != digest:
            return None
        self.reused += 1
        return entry[1]

    def store(self, identifier: str, digest: str, vector: torch.Tensor) -> None:
        self._entries[identifier] = (digest, vector.detach().cpu().clone())
        self._dirty = True
        self.computed += 1

    def mark_undecodable(self, identifier: str, digest: str) -> None:
        self._undecodable.add((identifier, digest))

    def is_undecodable(self, identifier: str, digest: str) -> bool:
        return (identifier, digest) in self._undecodable
