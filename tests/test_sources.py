from pathlib import Path

import pytest

from conftest import RED, write_image
from imgcls.core.exceptions import DatasetNotFoundError
from imgcls.data.sources import LabeledSampleSource, enumerate_unlabeled


def test_labeled_source_uses_first_folder_as_label(tmp_path: Path) -> None:
    write_image(tmp_path / "trout" / "a.png", RED)
    write_image(tmp_path / "salmon" / "nested" / "b.JPG", RED)
    (tmp_path / "salmon" / "notes.txt").write_text("x", encoding="utf-8")

    samples = LabeledSampleSource(tmp_path).samples()

    assert [(sample.label, Path(sample.identifier).name) for sample in samples] == [
        ("salmon", "b.JPG"),
        ("trout", "a.png"),
    ]
    assert all(sample.payload_kind == "path" for sample in samples)


def test_labeled_source_skips_files_without_class_folder(tmp_path: Path, caplog) -> None:
    write_image(tmp_path / "loose.png", RED)
    write_image(tmp_path / "trout" / "a.png", RED)

    with caplog.at_level("WARNING"):
        samples = LabeledSampleSource(tmp_path).samples()

    assert [sample.label for sample in samples] == ["trout"]
    assert "unlabeled_file_skipped" in caplog.text


def test_labeled_source_reads_bytes_eagerly(tmp_path: Path) -> None:
    path = write_image(tmp_path / "trout" / "a.png", RED)
    samples = LabeledSampleSource(tmp_path, payload_kind="bytes").samples()
    assert samples[0].payload == path.read_bytes()


def test_missing_root_raises_io_error(tmp_path: Path) -> None:
    with pytest.raises(DatasetNotFoundError):
        _ = LabeledSampleSource(tmp_path / "missing").samples()
    with pytest.raises(OSError):
        _ = enumerate_unlabeled(tmp_path / "missing", payload_kind="path")


def test_enumerate_unlabeled_is_flat_and_sorted(tmp_path: Path) -> None:
    write_image(tmp_path / "b.png", RED)
    write_image(tmp_path / "a.png", RED)
    write_image(tmp_path / "sub" / "c.png", RED)

    samples = enumerate_unlabeled(tmp_path, payload_kind="path")

    assert [sample.identifier for sample in samples] == ["a.png", "b.png"]
    assert all(sample.label is None for sample in samples)
