"""Scoring through a frozen, pretrained TorchScript feature-extraction graph."""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

import numpy as np
import torch
from torch.utils.data import DataLoader, TensorDataset
from tqdm.auto import tqdm

from imgcls.core.exceptions import ConfigurationError, DatasetNotFoundError
from imgcls.data.contracts import FEATURES_COLUMN, PIXELS_COLUMN
from imgcls.data.frame import Frame
from imgcls.estimators.base import (
    StageState,
    StatelessStage,
    bytes_to_tensor,
    tensor_to_bytes,
)

LOGGER = logging.getLogger(__name__)


def _load_graph(graph_bytes: bytes) -> torch.jit.ScriptModule:
    graph = torch.jit.load(io.BytesIO(graph_bytes), map_location="cpu")
    graph.eval()
    for parameter in graph.parameters():
        parameter.requires_grad_(False)
    return graph


class ScoreFrozenGraph(StatelessStage):
    """Forward pixels through a frozen graph and read one output as embedding.

    The graph has no trainable parameters in this pipeline, so fitting is the
    identity and the same graph bytes are embedded in persisted models.
    """

    kind = "score_frozen_graph"

    def __init__(
        self,
        graph_bytes: bytes,
        *,
        input_column: str = PIXELS_COLUMN,
        output_column: str = FEATURES_COLUMN,
        output_name: str | None = None,
        batch_size: int = 32,
        device: torch.device | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.graph_bytes = graph_bytes
        self.input_column = input_column
        self.output_column = output_column
        self.output_name = output_name
        self.batch_size = batch_size
        self.device = device or torch.device("cpu")
        self._graph = _load_graph(graph_bytes).to(self.device)

    @classmethod
    def from_file(cls, path: Path, **kwargs: Any) -> ScoreFrozenGraph:
        """Read a TorchScript graph file, failing fast when it is unusable."""
        graph_path = Path(path)
        if not graph_path.is_file():
            raise DatasetNotFoundError(f"Pretrained graph file not found: {graph_path}")
        try:
            graph_bytes = graph_path.read_bytes()
            stage = cls(graph_bytes, **kwargs)
        except OSError as exc:
            raise DatasetNotFoundError(
                f"Unable to read pretrained graph {graph_path}: {exc}"
            ) from exc
        except (RuntimeError, ValueError) as exc:
            raise DatasetNotFoundError(
                f"Pretrained graph {graph_path} is not a TorchScript archive: {exc}"
            ) from exc
        LOGGER.info(
            "frozen_graph_loaded path=%s bytes=%d output=%s",
            graph_path,
            len(graph_bytes),
            stage.output_name or "<default>",
        )
        return stage

    def describe(self) -> str:
        return f"{self.kind}({self.output_name or 'default'})"

    def _select(self, output: Any) -> torch.Tensor:
        if isinstance(output, torch.Tensor):
            return output
        if isinstance(output, dict):
            if self.output_name is None:
                if len(output) == 1:
                    return next(iter(output.values()))
                raise ConfigurationError(
                    "Frozen graph returns several outputs "
                    f"({', '.join(sorted(output))}); set pretrained_graph.output_name."
                )
            if self.output_name not in output:
                raise ConfigurationError(
                    f"Frozen graph has no output '{self.output_name}'. "
                    f"Available: {', '.join(sorted(output))}"
                )
            return output[self.output_name]
        if isinstance(output, tuple | list):
            if self.output_name is None:
                return output[0]
            if not self.output_name.isdigit() or int(self.output_name) >= len(output):
                raise ConfigurationError(
                    f"Frozen graph returns {len(output)} positional outputs; "
                    f"output_name '{self.output_name}' is not a valid index."
                )
            return output[int(self.output_name)]
        raise ConfigurationError(
            f"Unsupported frozen graph output type: {type(output).__name__}"
        )

    def transform(self, frame: Frame) -> Frame:
        pixels = np.asarray(frame.column(self.input_column), dtype=np.float32)
        if len(pixels) == 0:
            return frame.with_column(
                self.output_column, np.empty((0, 0), dtype=np.float32)
            )

        chunks: list[np.ndarray] = []
        loader = DataLoader(
            TensorDataset(torch.from_numpy(pixels)),
            batch_size=self.batch_size,
            shuffle=False,
        )
        with torch.inference_mode():
            for (batch,) in tqdm(
                loader, desc="frozen_graph", leave=False, dynamic_ncols=True
            ):
                output = self._select(self._graph(batch.to(self.device)))
                chunks.append(
                    output.reshape(batch.shape[0], -1).float().cpu().numpy()
                )
        return frame.with_column(self.output_column, np.concatenate(chunks, axis=0))

    def state_dict(self) -> StageState:
        return {
            "graph": bytes_to_tensor(self.graph_bytes),
            "input_column": self.input_column,
            "output_column": self.output_column,
            "output_name": self.output_name,
            "batch_size": self.batch_size,
        }

    @classmethod
    def from_state(cls, state: StageState) -> ScoreFrozenGraph:
        return cls(
            tensor_to_bytes(state["graph"]),
            input_column=state["input_column"],
            output_column=state["output_column"],
            output_name=state["output_name"],
            batch_size=state["batch_size"],
        )
