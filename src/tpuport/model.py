"""Demo model integration.

The CLI and the integration tests need a host model that touches every node
kind the mappers treat specially:
- a `Chain` (becomes an `ImmutableChain`)
- `BatchNorm` layers (lose their training flag on device)
- a `Recur` wrapper (only its cell goes to the device)
- an absent field (`recurrent=None` when disabled)

`SequenceClassifier` is that model. It runs unchanged on host and device
trees: it threads recurrent state explicitly and never mutates itself.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from tpuport.config import Config
from tpuport.layers import (
    ACTIVATIONS,
    BatchNorm,
    Chain,
    Dense,
    LSTMCell,
    Recur,
    RNNCell,
)
from tpuport.utils.tree import param_count

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SequenceClassifier:
    """encoder per step -> optional recurrence over steps -> head on the last output."""

    encoder: Any
    recurrent: Any
    head: Any

    def _recurrence(self) -> tuple[Any, Any]:
        if self.recurrent is None:
            return None, None
        if isinstance(self.recurrent, Recur):
            return self.recurrent.cell, self.recurrent.state
        # Device trees carry the bare cell.
        return self.recurrent, self.recurrent.initial_state()

    def __call__(self, xs: Sequence[Any]) -> Any:
        """Classify a sequence of [in_dim, batch] inputs.

        :param xs: Non-empty sequence of per-step inputs.
        :raises ValueError: If xs is empty.
        :return Any: Logits of shape [out_dim, batch].
        """
        if len(xs) == 0:
            raise ValueError("SequenceClassifier needs at least one step")
        cell, state = self._recurrence()
        h = None
        for x in xs:
            z = self.encoder(x)
            if cell is None:
                h = z
            else:
                state, h = cell(state, z)
        return self.head(h)


def build_model(cfg: Config) -> SequenceClassifier:
    """Build the demo host model described by cfg.model.

    :param Config cfg: Configuration.
    :return SequenceClassifier: Host model with float32 numpy parameters.
    """
    m = cfg.model
    rng = np.random.default_rng(m.seed)
    act = ACTIVATIONS[m.activation]

    layers: list[Any] = []
    width = m.in_dim
    for hidden in m.hidden_dims:
        if m.batchnorm:
            layers.append(Dense.init(width, hidden, rng=rng))
            layers.append(BatchNorm.init(hidden, act))
        else:
            layers.append(Dense.init(width, hidden, rng=rng, activation=act))
        width = hidden

    recurrent: Recur | None = None
    if m.recurrent == "lstm":
        recurrent = Recur(LSTMCell.init(width, width, rng=rng))
    elif m.recurrent == "rnn":
        recurrent = Recur(RNNCell.init(width, width, rng=rng))

    model = SequenceClassifier(
        encoder=Chain(*layers),
        recurrent=recurrent,
        head=Dense.init(width, m.out_dim, rng=rng),
    )
    logger.info(
        "Built demo model: %d encoder layers, recurrent=%s, %d parameters.",
        len(layers),
        m.recurrent,
        param_count(model),
    )
    return model


def sample_inputs(cfg: Config) -> list[np.ndarray]:
    """Random float32 input sequence matching cfg.model.

    :param Config cfg: Configuration.
    :return list[np.ndarray]: seq_len arrays of shape [in_dim, batch_size].
    """
    m = cfg.model
    rng = np.random.default_rng(m.seed + 1)
    return [
        rng.standard_normal((m.in_dim, m.batch_size)).astype(np.float32)
        for _ in range(m.seq_len)
    ]
