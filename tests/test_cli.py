import logging

import pytest

from imgcls.cli import main
from imgcls.core.exceptions import CheckpointError


@pytest.mark.parametrize(
    ("argv", "target", "expected_args", "expected"),
    [
        (["validate-config", "-c", "a.yaml"], "run_validate_config", ("a.yaml",), 11),
        (["train", "-c", "a.yaml"], "run_train", ("a.yaml", None), 12),
        (["train", "-c", "a.yaml", "--no-cache"], "run_train", ("a.yaml", False), 13),
        (["infer", "-c", "a.yaml"], "run_infer", ("a.yaml",), 14),
        (["run", "-c", "a.yaml"], "run_classify", ("a.yaml", None), 15),
        (["run", "-c", "a.yaml", "--no-cache"], "run_classify", ("a.yaml", False), 16),
    ],
)
def test_cli_dispatches_commands(
    monkeypatch, argv, target: str, expected_args: tuple, expected: int
) -> None:
    received: list[tuple] = []

    def _fake(*args):
        received.append(args)
        return expected

    monkeypatch.setattr(f"imgcls.cli.{target}", _fake)
    assert main(argv) == expected
    assert received == [expected_args]


def test_cli_returns_one_on_package_errors(monkeypatch, caplog) -> None:
    def _fail(_config: str) -> int:
        raise CheckpointError("no model")

    monkeypatch.setattr("imgcls.cli.run_infer", _fail)
    with caplog.at_level(logging.ERROR):
        assert main(["infer", "-c", "a.yaml"]) == 1
    assert "error=CheckpointError" in caplog.text


def test_cli_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        _ = main([])


def test_cli_reports_missing_config_file(tmp_path) -> None:
    assert main(["validate-config", "-c", str(tmp_path / "missing.yaml")]) == 1
