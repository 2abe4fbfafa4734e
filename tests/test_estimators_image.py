from pathlib import Path

import numpy as np
import pytest

from conftest import BLUE, RED, write_image
from imgcls.core.exceptions import ImageDecodeError
from imgcls.data.contracts import Sample
from imgcls.data.frame import Frame
from imgcls.estimators.image import (
    ExtractPixels,
    LoadImages,
    ResizeImages,
    decode_image,
)


def _frame(tmp_path: Path, *, broken: bool = False) -> Frame:
    samples = [
        Sample("red", "r", write_image(tmp_path / "red.png", RED, size=10)),
        Sample("blue", "b", write_image(tmp_path / "blue.png", BLUE, size=12)),
    ]
    if broken:
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        samples.insert(1, Sample("broken", "r", path))
    return Frame.from_samples(samples)


def test_decode_image_wraps_errors_with_identifier() -> None:
    with pytest.raises(ImageDecodeError, match="img-7") as excinfo:
        _ = decode_image(b"garbage", "img-7")
    assert excinfo.value.identifier == "img-7"


def test_load_resize_extract_produces_nchw_pixels(tmp_path: Path) -> None:
    frame = _frame(tmp_path)
    frame = LoadImages().transform(frame)
    frame = ResizeImages(width=6, height=4).transform(frame)
    frame = ExtractPixels(offset=117.0, scale=0.5).transform(frame)

    pixels = frame.column("pixels")
    assert pixels.shape == (2, 3, 4, 6)
    assert pixels.dtype == np.float32
    assert pixels[0, 0, 0, 0] == pytest.approx((RED[0] - 117.0) * 0.5)


def test_extract_pixels_channels_last(tmp_path: Path) -> None:
    frame = ResizeImages(width=5, height=5).transform(
        LoadImages().transform(_frame(tmp_path))
    )
    pixels = ExtractPixels(channels_last=True).transform(frame).column("pixels")
    assert pixels.shape == (2, 5, 5, 3)
    assert pixels[1, 2, 2, 2] == pytest.approx(BLUE[2])


def test_load_images_skips_undecodable_rows(tmp_path: Path, caplog) -> None:
    with caplog.at_level("WARNING"):
        loaded = LoadImages().transform(_frame(tmp_path, broken=True))
    assert loaded.column("identifier") == ["red", "blue"]
    assert "image_decode_skipped identifier=broken" in caplog.text


def test_load_images_abort_policy_raises(tmp_path: Path) -> None:
    with pytest.raises(ImageDecodeError, match="broken"):
        _ = LoadImages(on_decode_error="abort").transform(_frame(tmp_path, broken=True))


def test_stateless_stage_fit_is_identity_and_state_roundtrips() -> None:
    stage = ExtractPixels(channels_last=True, offset=117.0)
    assert stage.fit(Frame({})) is stage
    rebuilt = ExtractPixels.from_state(stage.state_dict())
    assert rebuilt.state_dict() == stage.state_dict()
