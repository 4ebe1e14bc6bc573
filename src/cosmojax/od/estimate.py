"""Filter estimates.

An :class:`Estimate` records the output of a Kalman filter step: the
nominal (reference) state, the estimated deviation from it, the updated
and the predicted covariance, and the state transition matrix used to
reach it from the previous estimate.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.epoch import Epoch
from cosmojax.orbit import State


class EpochFormat(Enum):
    """Display format of estimate and residual epochs."""

    GREGORIAN_TAI = "Gregorian TAI"
    MJD_TAI = "MJD TAI"
    JDE_TAI = "JDE TAI"
    JDE_TT = "JDE TT"
    JDE_TDB = "JDE TDB"

    def format(self, epoch: Epoch) -> str | float:
        if self is EpochFormat.GREGORIAN_TAI:
            return str(epoch)
        if self is EpochFormat.MJD_TAI:
            return epoch.mjd()
        if self is EpochFormat.JDE_TAI:
            return epoch.jd()
        if self is EpochFormat.JDE_TT:
            return epoch.jde_tt()
        return epoch.jde_tdb()

    def __str__(self) -> str:
        return self.value


class CovarFormat(Enum):
    """Display format of covariance diagonals.

    Attributes:
        SQRT: Standard deviation of each element.
        SIGMA1: Covariance as computed (one sigma).
        SIGMA3: Three times the covariance.
    """

    SQRT = "exptd_val_"
    SIGMA1 = "covar_"
    SIGMA3 = "3sig_covar"

    def apply(self, covar: ArrayLike) -> Array:
        diag = jnp.diag(jnp.asarray(covar))
        if self is CovarFormat.SQRT:
            return jnp.sqrt(diag)
        if self is CovarFormat.SIGMA3:
            return 3.0 * diag
        return diag

    def __str__(self) -> str:
        return self.value


@dataclass(eq=False)
class Estimate:
    """Output of a Kalman filter step.

    Attributes:
        nominal_state: Reference state the deviation applies to.
        state_deviation: Estimated deviation from the nominal state.
        covar: Covariance after the step.
        covar_bar: Covariance predicted by the time update, before any
            measurement was incorporated.
        stm: State transition matrix from the previous estimate.
        predicted: ``True`` for a time update, ``False`` for a measurement
            update.
        epoch_fmt: Display format of the epoch.
        covar_fmt: Display format of the covariance.
    """

    nominal_state: State
    state_deviation: Array
    covar: Array
    covar_bar: Array
    stm: Array
    predicted: bool = True
    epoch_fmt: EpochFormat = EpochFormat.GREGORIAN_TAI
    covar_fmt: CovarFormat = CovarFormat.SQRT

    def __post_init__(self):
        n = self.nominal_state.size
        dtype = get_dtype()
        self.state_deviation = jnp.asarray(self.state_deviation, dtype=dtype)
        self.covar = jnp.asarray(self.covar, dtype=dtype)
        self.covar_bar = jnp.asarray(self.covar_bar, dtype=dtype)
        self.stm = jnp.asarray(self.stm, dtype=dtype)
        if self.state_deviation.shape != (n,):
            raise ValueError(f"state deviation must have shape ({n},), got {self.state_deviation.shape}")
        for name in ("covar", "covar_bar", "stm"):
            if getattr(self, name).shape != (n, n):
                raise ValueError(f"{name} must have shape ({n}, {n}), got {getattr(self, name).shape}")

    @classmethod
    def zeros(cls, nominal_state: State) -> Estimate:
        """Estimate with zero deviation and zero covariance."""
        n = nominal_state.size
        zeros = jnp.zeros((n, n), dtype=get_dtype())
        return cls(nominal_state, jnp.zeros(n), zeros, zeros, jnp.eye(n), predicted=True)

    @classmethod
    def from_covar(cls, nominal_state: State, covar: ArrayLike) -> Estimate:
        """A priori estimate: zero deviation with the given covariance."""
        n = nominal_state.size
        return cls(nominal_state, jnp.zeros(n), covar, covar, jnp.eye(n), predicted=True)

    @property
    def epoch(self) -> Epoch:
        return self.nominal_state.epoch

    @property
    def state(self) -> State:
        """Nominal state corrected by the estimated deviation."""
        return self.nominal_state + self.state_deviation

    def with_deviation(self, state_deviation: ArrayLike) -> Estimate:
        return dataclasses.replace(self, state_deviation=state_deviation)

    def with_covar(self, covar: ArrayLike) -> Estimate:
        return dataclasses.replace(self, covar=covar)

    def within_sigma(self, sigma: float) -> bool:
        """Whether every deviation component is within *sigma* standard deviations."""
        bound = sigma * jnp.sqrt(jnp.abs(jnp.diag(self.covar)))
        return bool(jnp.all(jnp.abs(self.state_deviation) <= bound))

    def within_3sigma(self) -> bool:
        return self.within_sigma(3.0)

    def header(self) -> list[str]:
        n = self.nominal_state.size
        return ([str(self.epoch_fmt)] + [f"state_{i}" for i in range(n)]
                + [f"{self.covar_fmt}{i}" for i in range(n)])

    def to_record(self) -> list:
        """Epoch, deviation and formatted covariance diagonal as one row."""
        return [self.epoch_fmt.format(self.epoch), *self.state_deviation.tolist(),
                *self.covar_fmt.apply(self.covar).tolist()]

    def __str__(self) -> str:
        kind = "predicted" if self.predicted else "updated"
        return (f"=== {kind.upper()} @ {self.epoch} ===\n"
                f"deviation: {self.state_deviation.tolist()}\n"
                f"{self.covar_fmt}: {self.covar_fmt.apply(self.covar).tolist()}")
