"""State noise compensation (process noise).

An :class:`SNC` is a diagonal acceleration noise specification that the
Kalman filter maps into the state covariance during measurement updates.
Entries can start at a given epoch, decay exponentially since the filter
started, and are suppressed when the time since the previous filter step
exceeds their disable time.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.epoch import Epoch


@dataclass(eq=False)
class SNC:
    """Diagonal process noise on the acceleration components.

    Attributes:
        diag: Diagonal of the noise matrix. Units: *km^2/s^4*
        disable_time: No noise is applied when the previous filter step is
            older than this many seconds.
        start_time: Epoch from which the entry applies, if any.
        decay: Exponential decay constant of each diagonal term, per second
            elapsed since ``init_epoch``.
        init_epoch: Epoch of the first filter estimate, set by the filter.
        prev_epoch: Epoch of the previous filter step, set by the filter.

    Examples:
        ```python
        from cosmojax.od import SNC
        snc = SNC.from_diagonal(120.0, [1e-12, 1e-12, 1e-12])
        ```
    """

    diag: Array
    disable_time: float
    start_time: Epoch | None = None
    decay: Array | None = None
    init_epoch: Epoch | None = None
    prev_epoch: Epoch | None = None

    def __post_init__(self):
        self.diag = jnp.asarray(self.diag, dtype=get_dtype())
        if self.diag.ndim != 1 or self.diag.shape[0] % 3 != 0:
            raise ValueError(f"SNC applies to accelerations in blocks of 3, got {self.diag.shape[0]} values")
        if self.decay is not None:
            self.decay = jnp.asarray(self.decay, dtype=get_dtype())
            if self.decay.shape != self.diag.shape:
                raise ValueError("one decay constant is needed per diagonal value")

    @classmethod
    def from_diagonal(cls, disable_time: float, values: Sequence[float] | ArrayLike) -> SNC:
        """Noise with the given diagonal, always applicable."""
        return cls(diag=values, disable_time=disable_time)

    @classmethod
    def with_start_time(
        cls,
        disable_time: float,
        values: Sequence[float] | ArrayLike,
        start_time: Epoch,
    ) -> SNC:
        """Noise applicable from *start_time* onward."""
        return cls(diag=values, disable_time=disable_time, start_time=start_time)

    @classmethod
    def with_decay(
        cls,
        disable_time: float,
        initial_snc: Sequence[float] | ArrayLike,
        decay_constants: Sequence[float] | ArrayLike,
    ) -> SNC:
        """Noise decaying as ``diag * exp(-decay * t)``, *t* in seconds since the filter start."""
        return cls(diag=initial_snc, disable_time=disable_time, decay=decay_constants)

    @property
    def dim(self) -> int:
        return int(self.diag.shape[0])

    def to_matrix(self, epoch: Epoch) -> Array | None:
        """Noise matrix at *epoch*, excluding the Gamma mapping.

        Returns:
            The ``(dim, dim)`` noise matrix, or ``None`` if the entry has not
            started yet or the previous filter step is older than the
            disable time.
        """
        if self.start_time is not None and self.start_time > epoch:
            return None

        if self.prev_epoch is not None and epoch - self.prev_epoch > self.disable_time:
            return None

        diag = self.diag
        if self.decay is not None:
            init_epoch = self.init_epoch if self.init_epoch is not None else epoch
            diag = diag * jnp.exp(-self.decay * (epoch - init_epoch))
        return jnp.diag(diag)

    def __str__(self) -> str:
        if self.decay is not None:
            terms = [f"{d:.1e} x exp(- {k:.1e} x t)" for d, k in zip(self.diag.tolist(), self.decay.tolist())]
        else:
            terms = [f"{d:.1e}" for d in self.diag.tolist()]
        start = f" starting at {self.start_time}" if self.start_time is not None else ""
        return f"SNC: diag({', '.join(terms)}){start}"
