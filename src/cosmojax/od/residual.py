"""Measurement residuals produced by filter updates."""

from __future__ import annotations

from dataclasses import dataclass

import jax.numpy as jnp
from jax import Array

from cosmojax.config import get_dtype
from cosmojax.epoch import Epoch
from cosmojax.od.estimate import EpochFormat


@dataclass(eq=False)
class Residual:
    """Prefit and postfit residuals of one measurement update.

    Attributes:
        epoch: Epoch of the measurement.
        prefit: Real minus computed observation before the update.
        postfit: Residual remaining after the update.
        epoch_fmt: Display format of the epoch.
    """

    epoch: Epoch
    prefit: Array
    postfit: Array
    epoch_fmt: EpochFormat = EpochFormat.GREGORIAN_TAI

    @classmethod
    def zeros(cls, epoch: Epoch, size: int = 2) -> Residual:
        """Zero residual, as recorded for a pure time update."""
        zeros = jnp.zeros(size, dtype=get_dtype())
        return cls(epoch, zeros, zeros)

    def header(self) -> list[str]:
        size = self.prefit.shape[0]
        return ([str(self.epoch_fmt)] + [f"prefit_{i}" for i in range(size)]
                + [f"postfit_{i}" for i in range(size)])

    def to_record(self) -> list:
        return [self.epoch_fmt.format(self.epoch), *self.prefit.tolist(), *self.postfit.tolist()]

    def __str__(self) -> str:
        return f"Prefit {self.prefit.tolist()} Postfit {self.postfit.tolist()}"
