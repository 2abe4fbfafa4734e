"""Command line interface for imgcls."""

from __future__ import annotations

import argparse
import logging

from imgcls.core.exceptions import ImageClassifierError

LOGGER = logging.getLogger(__name__)


def run_validate_config(config_path: str) -> int:
    """Lazily dispatch validate-config command."""
    from imgcls.pipeline.runner import run_validate_config as _run_validate_config

    return _run_validate_config(config_path)


def run_train(config_path: str, use_cache: bool | None) -> int:
    """Lazily dispatch train command."""
    from imgcls.pipeline.runner import run_train as _run_train

    return _run_train(config_path, use_cache)


def run_infer(config_path: str) -> int:
    """Lazily dispatch infer command."""
    from imgcls.pipeline.runner import run_infer as _run_infer

    return _run_infer(config_path)


def run_classify(config_path: str, use_cache: bool | None) -> int:
    """Lazily dispatch run command."""
    from imgcls.pipeline.runner import run_classify as _run_classify

    return _run_classify(config_path, use_cache)


def _add_no_cache(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-cache",
        dest="use_cache",
        action="store_const",
        const=False,
        default=None,
        help="Retrain and do not read or write the model artifact",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="imgcls")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate = subparsers.add_parser("validate-config", help="Validate YAML config")
    validate.add_argument("-c", "--config", required=True, help="Path to YAML config")

    train = subparsers.add_parser("train", help="Train or load the cached model")
    train.add_argument("-c", "--config", required=True, help="Path to YAML config")
    _add_no_cache(train)

    infer = subparsers.add_parser(
        "infer",
        help="Classify the test folder with the cached model",
    )
    infer.add_argument("-c", "--config", required=True, help="Path to YAML config")

    run = subparsers.add_parser(
        "run",
        help="Train or load the model, then classify the test folder",
    )
    run.add_argument("-c", "--config", required=True, help="Path to YAML config")
    _add_no_cache(run)

    return parser


def _dispatch(args: argparse.Namespace) -> int | None:
    if args.command == "validate-config":
        return run_validate_config(args.config)
    if args.command == "train":
        return run_train(args.config, args.use_cache)
    if args.command == "infer":
        return run_infer(args.config)
    if args.command == "run":
        return run_classify(args.config, args.use_cache)
    return None


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and dispatch the selected command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        status = _dispatch(args)
    except ImageClassifierError as exc:
        LOGGER.error(
            "command=%s failed error=%s message=%s",
            args.command,
            type(exc).__name__,
            exc,
        )
        return 1
    if status is None:
        parser.error(f"Unsupported command: {args.command}")
        return 2
    return status
