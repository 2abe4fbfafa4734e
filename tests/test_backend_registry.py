from types import SimpleNamespace

import pytest

from imgcls.backends.end_to_end import EndToEndBackend
from imgcls.backends.pretrained_graph import PretrainedGraphBackend
from imgcls.backends.registry import available_backends, create_backend
from imgcls.config.loader import load_experiment_config
from imgcls.core.exceptions import BackendNotAvailableError


def test_registry_lists_closed_backend_set() -> None:
    assert available_backends() == ("pretrained_graph", "end_to_end")


def test_unknown_backend_name_raises() -> None:
    cfg = load_experiment_config("configs/pretrained_graph.yaml")
    cfg.backend.name = "unknown_backend"  # type: ignore[assignment]

    with pytest.raises(BackendNotAvailableError):
        _ = create_backend(cfg)


@pytest.mark.parametrize(
    ("config", "expected", "payload_kind"),
    [
        ("configs/pretrained_graph.yaml", PretrainedGraphBackend, "path"),
        ("configs/end_to_end.yaml", EndToEndBackend, "bytes"),
    ],
)
def test_profiles_create_their_backend(config: str, expected, payload_kind: str) -> None:
    cfg = load_experiment_config(config)
    cfg.backend.device = "cpu"
    backend = create_backend(cfg)
    assert isinstance(backend, expected)
    assert backend.payload_kind == payload_kind


def test_registry_imports_only_requested_backend(monkeypatch) -> None:
    calls: list[str] = []

    class _FakeBackend:
        def __init__(self, cfg, *, metrics_callback=None) -> None:
            self.cfg = cfg
            self.metrics_callback = metrics_callback

    def _fake_import(name: str):
        calls.append(name)
        if name == "imgcls.backends.end_to_end":
            return SimpleNamespace(EndToEndBackend=_FakeBackend)
        raise AssertionError(f"Unexpected import: {name}")

    monkeypatch.setattr("imgcls.backends.registry.import_module", _fake_import)

    cfg = load_experiment_config("configs/end_to_end.yaml")
    callback = object()
    backend = create_backend(cfg, metrics_callback=callback)  # type: ignore[arg-type]

    assert isinstance(backend, _FakeBackend)
    assert backend.metrics_callback is callback
    assert calls == ["imgcls.backends.end_to_end"]
