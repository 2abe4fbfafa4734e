"""Custom exception hierarchy for imgcls."""


class ImageClassifierError(Exception):
    """Base exception for all package-specific failures."""


class ConfigurationError(ImageClassifierError):
    """Raised when configuration or training preconditions are invalid."""


class BackendNotAvailableError(ImageClassifierError):
    """Raised when an unavailable backend is requested."""


class DatasetNotFoundError(ImageClassifierError, OSError):
    """Raised when a dataset root or external graph file cannot be read."""


class DatasetContractError(ImageClassifierError):
    """Raised when a frame or dataset does not satisfy the expected contract."""


class ImageDecodeError(ImageClassifierError):
    """Raised when one image payload cannot be decoded."""

    def __init__(self, identifier: str, reason: str) -> None:
        super().__init__(f"Unable to decode image {identifier}: {reason}")
        self.identifier = identifier
        self.reason = reason


class CheckpointError(ImageClassifierError):
    """Raised when model artifact save/load contract validation fails."""


class CorruptArtifactError(CheckpointError):
    """Raised when a persisted model artifact exists but cannot be restored."""
