"""Image decoding, resizing and pixel extraction stages."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Literal

import numpy as np
from PIL import Image

from imgcls.core.exceptions import ImageDecodeError
from imgcls.data.contracts import (
    IDENTIFIER_COLUMN,
    IMAGE_COLUMN,
    IMAGE_PATH_COLUMN,
    PIXELS_COLUMN,
    Payload,
)
from imgcls.data.frame import Frame
from imgcls.estimators.base import StageState, StatelessStage

LOGGER = logging.getLogger(__name__)

DecodePolicy = Literal["skip", "abort"]

_RESAMPLING: dict[str, Image.Resampling] = {
    "nearest": Image.Resampling.NEAREST,
    "bilinear": Image.Resampling.BILINEAR,
    "bicubic": Image.Resampling.BICUBIC,
}


def decode_image(payload: Payload, identifier: str) -> Image.Image:
    """Decode a path or raw bytes into an RGB image."""
    source = io.BytesIO(payload) if isinstance(payload, bytes) else Path(payload)
    try:
        with Image.open(source) as handle:
            return handle.convert("RGB")
    except (OSError, SyntaxError, ValueError, Image.DecompressionBombError) as exc:
        raise ImageDecodeError(identifier, str(exc)) from exc


def row_identifiers(frame: Frame, fallback_column: str) -> list[str]:
    """Identifiers used in decode warnings; falls back to the payload column."""
    if frame.has_column(IDENTIFIER_COLUMN):
        return [str(value) for value in frame.column(IDENTIFIER_COLUMN)]
    return [
        f"<bytes row {index}>" if isinstance(value, bytes) else str(value)
        for index, value in enumerate(frame.column(fallback_column))
    ]


def decode_rows(
    payloads: list[Payload],
    identifiers: list[str],
    policy: DecodePolicy,
) -> tuple[list[Image.Image], list[int]]:
    """Decode every payload, returning images and the indices that survived."""
    images: list[Image.Image] = []
    kept: list[int] = []
    for index, (payload, identifier) in enumerate(zip(payloads, identifiers)):
        try:
            images.append(decode_image(payload, identifier))
        except ImageDecodeError as exc:
            if policy == "abort":
                raise
            LOGGER.warning(
                "image_decode_skipped identifier=%s reason=%s",
                identifier,
                exc.reason,
            )
            continue
        kept.append(index)
    skipped = len(payloads) - len(kept)
    if skipped:
        LOGGER.warning("image_decode_summary skipped=%d total=%d", skipped, len(payloads))
    return images, kept


class LoadImages(StatelessStage):
    """Decode path or byte payloads into RGB images."""

    kind = "load_images"

    def __init__(
        self,
        *,
        input_column: str = IMAGE_PATH_COLUMN,
        output_column: str = IMAGE_COLUMN,
        image_folder: Path | None = None,
        on_decode_error: DecodePolicy = "skip",
    ) -> None:
        self.input_column = input_column
        self.output_column = output_column
        self.image_folder = image_folder
        self.on_decode_error = on_decode_error

    def _resolve(self, payload: Payload) -> Payload:
        if isinstance(payload, bytes) or self.image_folder is None:
            return payload
        # Absolute paths win over the folder prefix.
        return self.image_folder / payload

    def transform(self, frame: Frame) -> Frame:
        payloads = [self._resolve(value) for value in frame.column(self.input_column)]
        identifiers = row_identifiers(frame, self.input_column)
        images, kept = decode_rows(payloads, identifiers, self.on_decode_error)
        if len(kept) != len(frame):
            frame = frame.take(kept)
        return frame.with_column(self.output_column, images)

    def state_dict(self) -> StageState:
        return {
            "input_column": self.input_column,
            "output_column": self.output_column,
            "image_folder": None if self.image_folder is None else str(self.image_folder),
            "on_decode_error": self.on_decode_error,
        }

    @classmethod
    def from_state(cls, state: StageState) -> LoadImages:
        folder = state["image_folder"]
        return cls(
            input_column=state["input_column"],
            output_column=state["output_column"],
            image_folder=None if folder is None else Path(folder),
            on_decode_error=state["on_decode_error"],
        )


class ResizeImages(StatelessStage):
    """Resize decoded images to a fixed spatial resolution."""

    kind = "resize_images"

    def __init__(
        self,
        *,
        width: int,
        height: int,
        column: str = IMAGE_COLUMN,
        resampling: str = "bilinear",
    ) -> None:
        if resampling not in _RESAMPLING:
            raise ValueError(f"Unsupported resampling mode: {resampling}")
        self.width = width
        self.height = height
        self.column = column
        self.resampling = resampling

    def transform(self, frame: Frame) -> Frame:
        method = _RESAMPLING[self.resampling]
        resized = [
            image.resize((self.width, self.height), method)
            for image in frame.column(self.column)
        ]
        return frame.with_column(self.column, resized)

    def state_dict(self) -> StageState:
        return {
            "width": self.width,
            "height": self.height,
            "column": self.column,
            "resampling": self.resampling,
        }

    @classmethod
    def from_state(cls, state: StageState) -> ResizeImages:
        return cls(**state)


class ExtractPixels(StatelessStage):
    """Convert images to a float32 pixel tensor: `(pixel - offset) * scale`.

    `channels_last=True` yields `(n, H, W, C)`, otherwise `(n, C, H, W)`.
    """

    kind = "extract_pixels"

    def __init__(
        self,
        *,
        input_column: str = IMAGE_COLUMN,
        output_column: str = PIXELS_COLUMN,
        channels_last: bool = False,
        offset: float = 0.0,
        scale: float = 1.0,
    ) -> None:
        self.input_column = input_column
        self.output_column = output_column
        self.channels_last = channels_last
        self.offset = offset
        self.scale = scale

    def _pixels(self, image: Image.Image) -> np.ndarray:
        array = np.asarray(image, dtype=np.float32)
        array = (array - self.offset) * self.scale
        if not self.channels_last:
            array = np.transpose(array, (2, 0, 1))
        return array

    def transform(self, frame: Frame) -> Frame:
        images = frame.column(self.input_column)
        if len(images) == 0:
            return frame.with_column(
                self.output_column, np.empty((0,), dtype=np.float32)
            )
        pixels = np.stack([self._pixels(image) for image in images]).astype(
            np.float32, copy=False
        )
        return frame.with_column(self.output_column, pixels)

    def state_dict(self) -> StageState:
        return {
            "input_column": self.input_column,
            "output_column": self.output_column,
            "channels_last": self.channels_last,
            "offset": float(self.offset),
            "scale": float(self.scale),
        }

    @classmethod
    def from_state(cls, state: StageState) -> ExtractPixels:
        return cls(**state)
