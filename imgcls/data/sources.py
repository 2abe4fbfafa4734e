"""Directory-backed sample enumeration."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

from imgcls.core.exceptions import DatasetNotFoundError
from imgcls.data.contracts import Payload, PayloadKind, Sample

_ALLOWED_EXTENSIONS: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".bmp",
    ".gif",
    ".tif",
    ".tiff",
    ".webp",
)
LOGGER = logging.getLogger(__name__)


def _require_directory(root: Path) -> None:
    if not root.exists() or not root.is_dir():
        raise DatasetNotFoundError(f"Dataset directory does not exist: {root}")


def _is_image(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in _ALLOWED_EXTENSIONS


def _read_payload(path: Path, payload_kind: PayloadKind) -> Payload:
    if payload_kind == "path":
        return path
    try:
        return path.read_bytes()
    except OSError as exc:
        raise DatasetNotFoundError(f"Unable to read image file {path}: {exc}") from exc


class LabeledSampleSource:
    """Enumerate `<root>/<label>/**/<image>` into labeled samples."""

    def __init__(self, root: Path, *, payload_kind: PayloadKind = "path") -> None:
        self.root = Path(root)
        self.payload_kind = payload_kind

    def _iter_files(self) -> Iterator[tuple[str, Path]]:
        _require_directory(self.root)
        for path in sorted(self.root.rglob("*")):
            if not _is_image(path):
                continue
            relative = path.relative_to(self.root)
            if len(relative.parts) < 2:
                LOGGER.warning(
                    "unlabeled_file_skipped path=%s reason=no_class_folder", path
                )
                continue
            yield relative.parts[0], path

    def samples(self) -> list[Sample]:
        """Enumerate every image below the root, labeled by its class folder."""
        samples = [
            Sample(
                identifier=str(path),
                label=label,
                payload=_read_payload(path, self.payload_kind),
            )
            for label, path in self._iter_files()
        ]
        labels = sorted({sample.label for sample in samples if sample.label})
        LOGGER.info(
            "samples_enumerated root=%s count=%d classes=%s payload=%s",
            self.root,
            len(samples),
            ",".join(labels),
            self.payload_kind,
        )
        return samples


def enumerate_unlabeled(folder: Path, *, payload_kind: PayloadKind) -> list[Sample]:
    """Enumerate a flat folder of images for inference, without labels."""
    root = Path(folder)
    _require_directory(root)
    samples = [
        Sample(
            identifier=path.name,
            label=None,
            payload=_read_payload(path, payload_kind),
        )
        for path in sorted(root.iterdir())
        if _is_image(path)
    ]
    LOGGER.info("test_samples_enumerated root=%s count=%d", root, len(samples))
    return samples
