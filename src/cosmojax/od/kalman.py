"""Classical and extended Kalman filter.

:class:`KF` performs the sequential updates of orbit determination given
state transition matrices and measurement sensitivities supplied by the
caller.  The same instance acts as a classical filter (CKF), which keeps
propagating the state deviation, or as an extended filter (EKF), which
re-centers the nominal trajectory after every update so the predicted
deviation is always zero.

The caller must provide a fresh STM with :meth:`KF.update_stm` before
every update, and a fresh sensitivity matrix with :meth:`KF.update_h_tilde`
before every measurement update.  Both are consumed by the update.

The covariance update uses the Joseph form
``(I - K H) P_bar (I - K H)^T + K R K^T``, which keeps the covariance
symmetric positive semi-definite under roundoff.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence

import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype
from cosmojax.errors import (
    SensitivityNotUpdated,
    SingularKalmanGain,
    StateTransitionMatrixNotUpdated,
)
from cosmojax.od.estimate import Estimate
from cosmojax.od.residual import Residual
from cosmojax.od.snc import SNC
from cosmojax.orbit import State

logger = logging.getLogger(__name__)


def try_inverse(matrix: ArrayLike) -> Array | None:
    """Invert a square matrix, or return ``None`` if it is singular.

    A matrix is singular when it is rank deficient or when its computed
    inverse is not finite.
    """
    matrix = jnp.asarray(matrix, dtype=get_dtype())
    if int(jnp.linalg.matrix_rank(matrix)) < matrix.shape[0]:
        return None
    inverse = jnp.linalg.inv(matrix)
    if not bool(jnp.all(jnp.isfinite(inverse))):
        return None
    return inverse


def snc_gamma(size: int, acc_dim: int, delta_t: float) -> Array:
    """Map acceleration noise into the state covariance.

    Each block of three acceleration components drives three position
    rows with ``dt^2 / 2`` and the three following velocity rows with ``dt``.

    Args:
        size: Size of the estimated state.
        acc_dim: Number of acceleration noise components (multiple of 3).
        delta_t: Time since the previous estimate [s].

    Returns:
        Gamma matrix of shape ``(size, acc_dim)``.
    """
    gamma = jnp.zeros((size, acc_dim), dtype=get_dtype())
    for blk in range(acc_dim // 3):
        for i in range(3):
            gamma = gamma.at[i + 6 * blk, i + 3 * blk].set(delta_t**2 / 2.0)
            gamma = gamma.at[i + 3 + 6 * blk, i + 3 * blk].set(delta_t)
    return gamma


class KF:
    """Kalman filter with optional state noise compensation.

    Args:
        initial_estimate: A priori estimate.
        measurement_noise: Measurement noise covariance ``R``, ``(m, m)``.
        process_noise: SNC entries, in chronological order of definition.

    Examples:
        ```python
        import jax.numpy as jnp
        from cosmojax.od import KF, Estimate
        kf = KF.no_snc(Estimate.from_covar(orbit, jnp.eye(6) * 1e-2), jnp.eye(2) * 1e-6)
        kf.update_stm(stm)
        estimate = kf.time_update(nominal_orbit)
        ```
    """

    def __init__(
        self,
        initial_estimate: Estimate,
        measurement_noise: ArrayLike,
        process_noise: Sequence[SNC] = (),
    ) -> None:
        n = initial_estimate.nominal_state.size
        self.prev_estimate = initial_estimate
        self.measurement_noise = jnp.asarray(measurement_noise, dtype=get_dtype())
        if self.measurement_noise.ndim != 2 or self.measurement_noise.shape[0] != self.measurement_noise.shape[1]:
            raise ValueError(f"measurement noise must be square, got {self.measurement_noise.shape}")

        self.process_noise: list[SNC] = []
        for snc in process_noise:
            self._check_snc(snc, n)
            self.process_noise.append(dataclasses.replace(snc, init_epoch=initial_estimate.epoch))

        self.ekf = False
        self._stm = jnp.eye(n, dtype=get_dtype())
        self._h_tilde = jnp.zeros((self.measurement_noise.shape[0], n), dtype=get_dtype())
        self._stm_updated = False
        self._h_tilde_updated = False
        self._prev_used_snc = 0

    @classmethod
    def with_sncs(cls, initial_estimate: Estimate, process_noises: Sequence[SNC], measurement_noise: ArrayLike) -> KF:
        """Filter with several SNC entries; later entries take precedence."""
        return cls(initial_estimate, measurement_noise, process_noises)

    @classmethod
    def no_snc(cls, initial_estimate: Estimate, measurement_noise: ArrayLike) -> KF:
        """Filter without process noise."""
        return cls(initial_estimate, measurement_noise)

    @staticmethod
    def _check_snc(snc: SNC, size: int) -> None:
        if 2 * snc.dim > size:
            raise ValueError(f"{snc.dim} acceleration noise components do not fit a state of size {size}")

    @property
    def state_size(self) -> int:
        return self.prev_estimate.nominal_state.size

    @property
    def previous_estimate(self) -> Estimate:
        return self.prev_estimate

    def set_previous_estimate(self, estimate: Estimate) -> None:
        self.prev_estimate = estimate

    def update_stm(self, stm: ArrayLike) -> None:
        """Provide the STM from the previous estimate to the next update."""
        stm = jnp.asarray(stm, dtype=get_dtype())
        n = self.state_size
        if stm.shape != (n, n):
            raise ValueError(f"STM must have shape ({n}, {n}), got {stm.shape}")
        self._stm = stm
        self._stm_updated = True

    def update_h_tilde(self, h_tilde: ArrayLike) -> None:
        """Provide the measurement sensitivity matrix of the next measurement update."""
        h_tilde = jnp.asarray(h_tilde, dtype=get_dtype())
        if h_tilde.shape != self._h_tilde.shape:
            raise ValueError(f"sensitivity must have shape {self._h_tilde.shape}, got {h_tilde.shape}")
        self._h_tilde = h_tilde
        self._h_tilde_updated = True

    def is_extended(self) -> bool:
        return self.ekf

    def set_extended(self, status: bool) -> None:
        self.ekf = bool(status)

    def set_process_noise(self, snc: SNC) -> None:
        """Replace all SNC entries with *snc*."""
        self._check_snc(snc, self.state_size)
        init_epoch = snc.init_epoch if snc.init_epoch is not None else self.prev_estimate.epoch
        self.process_noise = [dataclasses.replace(snc, init_epoch=init_epoch)]
        self._prev_used_snc = 0

    def _mark_step(self) -> None:
        for snc in self.process_noise:
            snc.prev_epoch = self.prev_estimate.epoch

    def time_update(self, nominal_state: State) -> Estimate:
        """Propagate the previous estimate to the epoch of *nominal_state*.

        Returns:
            Estimate: The predicted estimate, which becomes the previous one.

        Raises:
            StateTransitionMatrixNotUpdated: If no fresh STM was provided.
        """
        if not self._stm_updated:
            raise StateTransitionMatrixNotUpdated()

        stm = self._stm
        covar_bar = stm @ self.prev_estimate.covar @ stm.T
        if self.ekf:
            state_bar = jnp.zeros(self.state_size, dtype=get_dtype())
        else:
            state_bar = stm @ self.prev_estimate.state_deviation

        estimate = Estimate(
            nominal_state=nominal_state,
            state_deviation=state_bar,
            covar=covar_bar,
            covar_bar=covar_bar,
            stm=stm,
            predicted=True,
            epoch_fmt=self.prev_estimate.epoch_fmt,
            covar_fmt=self.prev_estimate.covar_fmt,
        )
        self._stm_updated = False
        self.prev_estimate = estimate
        self._mark_step()
        return estimate

    def _process_noise(self, nominal_state: State) -> Array | None:
        """Gamma Q Gamma^T of the most recently defined applicable SNC entry."""
        epoch = nominal_state.epoch
        for idx in range(len(self.process_noise) - 1, -1, -1):
            snc = self.process_noise[idx]
            snc_matrix = snc.to_matrix(epoch)
            if snc_matrix is None:
                continue
            if idx != self._prev_used_snc:
                logger.info("SNC index switch: now using #%d %s", idx, snc)
                self._prev_used_snc = idx

            delta_t = epoch - self.prev_estimate.epoch
            gamma = snc_gamma(self.state_size, snc.dim, delta_t)
            return gamma @ snc_matrix @ gamma.T
        return None

    def measurement_update(
        self,
        nominal_state: State,
        real_obs: ArrayLike,
        computed_obs: ArrayLike,
    ) -> tuple[Estimate, Residual]:
        """Incorporate an observation.

        Args:
            nominal_state: Reference state at the measurement epoch.
            real_obs: Observed measurement vector.
            computed_obs: Measurement computed from the nominal state.

        Returns:
            tuple: The updated estimate, which becomes the previous one, and
                the measurement residual.

        Raises:
            StateTransitionMatrixNotUpdated: If no fresh STM was provided.
            SensitivityNotUpdated: If no fresh sensitivity matrix was provided.
            SingularKalmanGain: If ``H P_bar H^T + R`` cannot be inverted.
        """
        if not self._stm_updated:
            raise StateTransitionMatrixNotUpdated()
        if not self._h_tilde_updated:
            raise SensitivityNotUpdated()

        dtype = get_dtype()
        stm = self._stm
        h_tilde = self._h_tilde
        covar_bar = stm @ self.prev_estimate.covar @ stm.T
        noise = self._process_noise(nominal_state)
        if noise is not None:
            covar_bar = covar_bar + noise

        innovation_inv = try_inverse(h_tilde @ covar_bar @ h_tilde.T + self.measurement_noise)
        if innovation_inv is None:
            raise SingularKalmanGain()
        gain = covar_bar @ h_tilde.T @ innovation_inv

        prefit = jnp.asarray(real_obs, dtype=dtype) - jnp.asarray(computed_obs, dtype=dtype)
        if self.ekf:
            state_hat = gain @ prefit
            postfit = prefit - h_tilde @ state_hat
        else:
            state_bar = stm @ self.prev_estimate.state_deviation
            postfit = prefit - h_tilde @ state_bar
            state_hat = state_bar + gain @ postfit

        first_term = jnp.eye(self.state_size, dtype=dtype) - gain @ h_tilde
        covar = first_term @ covar_bar @ first_term.T + gain @ self.measurement_noise @ gain.T

        estimate = Estimate(
            nominal_state=nominal_state,
            state_deviation=state_hat,
            covar=covar,
            covar_bar=covar_bar,
            stm=stm,
            predicted=False,
            epoch_fmt=self.prev_estimate.epoch_fmt,
            covar_fmt=self.prev_estimate.covar_fmt,
        )
        residual = Residual(nominal_state.epoch, prefit, postfit, estimate.epoch_fmt)

        self._stm_updated = False
        self._h_tilde_updated = False
        self.prev_estimate = estimate
        self._mark_step()
        return estimate, residual
