"""Orbit determination process.

:class:`ODProcess` drives a :class:`~cosmojax.propagators.Propagator`
through a chronologically sorted list of measurements.  For each
measurement the propagator runs on a worker thread and publishes every
step on a channel.  The process consumes the steps in order: steps before
the measurement epoch become filter time updates, and the step at the
measurement epoch becomes a measurement update against the configured
tracking devices.

The filter may switch between classical and extended modes during a pass,
as decided by an EKF trigger (:class:`CkfTrigger`, :class:`StdEkfTrigger`).
Once a pass is complete the estimates can be smoothed with the
Rauch-Tung-Striebel fixed-interval smoother (:meth:`ODProcess.smooth`) and
the pass repeated around the smoothed initial state
(:meth:`ODProcess.iterate`).
"""

from __future__ import annotations

import logging
import queue
from collections.abc import Sequence
from typing import Protocol

import jax.numpy as jnp

from cosmojax.config import get_dtype
from cosmojax.epoch import Epoch
from cosmojax.errors import CovarianceMatrixSingular, StateTransitionMatrixSingular
from cosmojax.od.estimate import Estimate
from cosmojax.od.kalman import KF, try_inverse
from cosmojax.od.ranging import StdMeasurement
from cosmojax.od.residual import Residual
from cosmojax.orbit import State
from cosmojax.propagators import END_OF_CHANNEL, Propagator

logger = logging.getLogger(__name__)

MAX_CHANNEL_STEPS = 1_000_000
"""Maximum number of propagator steps consumed between two measurements."""

CHANNEL_TIMEOUT = 600.0
"""Seconds to wait for the next propagator step before giving up."""


class MeasurementDevice(Protocol):
    """A tracking device computing observations of a state."""

    name: str

    def measure(self, state: State) -> StdMeasurement | None: ...


class CkfTrigger:
    """Trigger that keeps the filter classical."""

    def enable_ekf(self, estimate: Estimate) -> bool:
        return False

    def disable_ekf(self, epoch: Epoch) -> bool:
        return False

    def reset(self) -> None:
        pass


class StdEkfTrigger:
    """Switch to the extended filter after a number of measurements.

    Args:
        num_msrs: Number of measurement updates before enabling the EKF.
        disable_time: Revert to the classical filter when the gap since the
            previous measurement update exceeds this many seconds.
        within_sigma: If set, also require every deviation component to be
            within this many standard deviations (cf. the 68-95-99.7 rule).
    """

    def __init__(self, num_msrs: int, disable_time: float, within_sigma: float | None = None) -> None:
        self.num_msrs = num_msrs
        self.disable_time = disable_time
        self.within_sigma = within_sigma
        self.prev_msr_dt: Epoch | None = None
        self.cur_msrs = 0

    def enable_ekf(self, estimate: Estimate) -> bool:
        if not estimate.predicted:
            self.prev_msr_dt = estimate.epoch
        self.cur_msrs += 1
        if self.cur_msrs < self.num_msrs:
            return False
        if self.within_sigma is not None and self.within_sigma > 0.0:
            return estimate.within_sigma(self.within_sigma)
        return True

    def disable_ekf(self, epoch: Epoch) -> bool:
        if self.prev_msr_dt is None:
            return False
        if abs(epoch - self.prev_msr_dt) > self.disable_time:
            self.cur_msrs = 0
            return True
        return False

    def reset(self) -> None:
        self.prev_msr_dt = None
        self.cur_msrs = 0


class ODProcess:
    """Sequential orbit determination.

    Args:
        propagator: Propagator of the nominal trajectory, with STM tracking.
        kf: Filter seeded with the a priori estimate.
        devices: Tracking devices able to compute observations.
        simultaneous_msr: Whether several devices may observe at the same
            epoch. When ``False`` only the first visible device is used.
        num_expected_msr: Expected number of measurements (progress reports).
        trigger: EKF trigger; defaults to :class:`CkfTrigger`.

    Attributes:
        estimates: Estimates of the current pass, starting with the a priori.
        residuals: Residuals of the measurement updates of the current pass.
    """

    def __init__(
        self,
        propagator: Propagator,
        kf: KF,
        devices: Sequence[MeasurementDevice],
        simultaneous_msr: bool = False,
        num_expected_msr: int = 10_000,
        trigger: CkfTrigger | StdEkfTrigger | None = None,
    ) -> None:
        self.propagator = propagator
        self.kf = kf
        self.devices = list(devices)
        self.simultaneous_msr = simultaneous_msr
        self.num_expected_msr = num_expected_msr
        self.ekf_trigger = trigger if trigger is not None else CkfTrigger()
        self.estimates: list[Estimate] = [kf.previous_estimate]
        self.residuals: list[Residual] = []

    @classmethod
    def ckf(cls, propagator: Propagator, kf: KF, devices: Sequence[MeasurementDevice],
            simultaneous_msr: bool = False, num_expected_msr: int = 10_000) -> ODProcess:
        """Process that never switches to the extended filter."""
        return cls(propagator, kf, devices, simultaneous_msr, num_expected_msr, CkfTrigger())

    # Channel handling

    def _drain(self, seconds: float):
        """Propagate for *seconds* on a worker thread and yield every step."""
        channel: queue.Queue = queue.Queue()
        worker = self.propagator.spawn(seconds, channel)
        try:
            for _ in range(MAX_CHANNEL_STEPS):
                try:
                    message = channel.get(timeout=CHANNEL_TIMEOUT)
                except queue.Empty as err:
                    raise RuntimeError(f"no propagator step received in {CHANNEL_TIMEOUT} s") from err
                if message is END_OF_CHANNEL:
                    return
                if isinstance(message, Exception):
                    raise message
                yield message
            raise RuntimeError(f"more than {MAX_CHANNEL_STEPS} propagator steps between measurements")
        finally:
            worker.join()

    def _recenter(self, nominal_state: State, estimate: Estimate) -> State:
        """Nominal state corrected by the estimate deviation."""
        return nominal_state.with_vector(
            nominal_state.epoch,
            nominal_state.to_vector() + estimate.state_deviation,
            nominal_state.stm,
        )

    # Filter steps

    def _time_update(self, nominal_state: State) -> None:
        self.kf.update_stm(nominal_state.stm)
        estimate = self.kf.time_update(nominal_state)
        self.estimates.append(estimate)

    def _measurement_update(self, nominal_state: State, msr: StdMeasurement, msr_cnt: int) -> State | None:
        """Update the filter with every usable device; return the re-centered nominal state in EKF mode."""
        epoch = nominal_state.epoch
        recentered = None
        stm = nominal_state.stm
        for device in self.devices:
            if msr.device is not None and getattr(device, "name", None) != msr.device:
                continue
            computed = device.measure(nominal_state)
            if computed is None or not computed.visible:
                continue

            self.kf.update_stm(stm)
            self.kf.update_h_tilde(computed.sensitivity())
            if self.kf.is_extended() and self.ekf_trigger.disable_ekf(epoch):
                self.kf.set_extended(False)
                logger.info("EKF disabled @ %s", epoch)

            estimate, residual = self.kf.measurement_update(nominal_state, msr.observation(), computed.observation())
            logger.debug("Measurement update #%d @ %s", msr_cnt, epoch)

            # The trigger must see every estimate so it can record measurement epochs
            if self.ekf_trigger.enable_ekf(estimate) and not self.kf.is_extended():
                self.kf.set_extended(True)
                if not estimate.within_3sigma():
                    logger.warning("EKF enabled @ %s but filter DIVERGING", epoch)
                else:
                    logger.info("EKF enabled @ %s", epoch)

            if self.kf.is_extended():
                recentered = self._recenter(nominal_state, estimate)
                nominal_state = recentered

            self.estimates.append(estimate)
            self.residuals.append(residual)
            # Any further update at this epoch starts from the updated estimate
            stm = jnp.eye(nominal_state.size, dtype=get_dtype())

            if not self.simultaneous_msr:
                break

        if self.kf.previous_estimate.epoch != epoch:
            # Nothing observed the state, keep the estimate on the nominal trajectory
            logger.debug("No visible device @ %s", epoch)
            self._time_update(nominal_state)
        return recentered

    def process_measurements(self, measurements: Sequence[StdMeasurement]) -> None:
        """Run the filter over chronologically sorted measurements.

        Raises:
            ValueError: If *measurements* is empty, out of chronological order,
                or starts before the current nominal state.
            FilterError: If a filter update fails; the pass is aborted.
        """
        if len(measurements) == 0:
            raise ValueError("must have at least one measurement")
        for prev, msr in zip(measurements, measurements[1:]):
            if msr.epoch < prev.epoch:
                raise ValueError(f"measurements out of order: {msr.epoch} follows {prev.epoch}")

        num_msrs = len(measurements)
        start_epoch = self.propagator.state.epoch
        prop_time = measurements[-1].epoch - start_epoch
        logger.info("Navigation propagating for a total of %.3f s (~ %.3f days)", prop_time, prop_time / 86_400.0)
        logger.info("Processing %d measurements with covariance mapping", num_msrs)

        reported = [False] * 11
        arc_warned = False
        for msr_cnt, msr in enumerate(measurements):
            next_msr_epoch = msr.epoch
            # Measured from the propagator so rounding does not accumulate between intervals
            delta_t = next_msr_epoch - self.propagator.state.epoch

            if next_msr_epoch < self.propagator.state.epoch:
                raise ValueError(
                    f"measurement at {next_msr_epoch} precedes the nominal state at {self.propagator.state.epoch}"
                )
            if next_msr_epoch == self.propagator.state.epoch:
                # Another measurement at the epoch of the current nominal state
                nominal = self.propagator.state.with_stm(jnp.eye(self.propagator.state.size, dtype=get_dtype()))
                recentered = self._measurement_update(nominal, msr, msr_cnt)
                if recentered is not None:
                    self.propagator.state = recentered
            else:
                recentered = None
                for nominal_state in self._drain(delta_t):
                    if next_msr_epoch != nominal_state.epoch:
                        if msr_cnt == 0 and not arc_warned:
                            logger.warning("OD arc starts prior to first measurement")
                            arc_warned = True
                        logger.debug("Time update @ %s", nominal_state.epoch)
                        self._time_update(nominal_state)
                    else:
                        recentered = self._measurement_update(nominal_state, msr, msr_cnt)
                # Re-centering happens once the producer is done with the interval
                if recentered is not None:
                    self.propagator.state = recentered

            msr_prct = min(10, int(10.0 * msr_cnt / num_msrs))
            if not reported[msr_prct]:
                logger.info("%3d%% done (%d measurements processed)", 10 * msr_prct, msr_cnt)
                reported[msr_prct] = True

        if not reported[10]:
            logger.info("%3d%% done (%d measurements processed)", 100, num_msrs)

    def map_covar(self, end_epoch: Epoch) -> None:
        """Propagate the estimate and its covariance to *end_epoch* without measurements."""
        prop_time = end_epoch - self.propagator.state.epoch
        logger.info("Mapping covariance for %.3f s", prop_time)
        for nominal_state in self._drain(prop_time):
            self._time_update(nominal_state)

    def smooth(self) -> list[Estimate]:
        """Smooth the estimates of the last pass (Rauch-Tung-Striebel).

        Walks backward from the last estimate, which is kept as is:
        ``S_k = P_k Phi^T P_bar_{k+1}^-1``, ``x_k = x_k + S_k (x_{k+1}^s - Phi x_k)``
        and ``P_k = P_k + S_k (P_{k+1}^s - P_bar_{k+1}) S_k^T``, where ``Phi``
        is the STM of estimate ``k + 1``.

        Returns:
            list[Estimate]: Smoothed estimates in chronological order.

        Raises:
            StateTransitionMatrixSingular: If an STM is not invertible.
            CovarianceMatrixSingular: If a predicted covariance is not invertible.
        """
        num = len(self.estimates)
        logger.info("Smoothing %d estimates", num)
        smoothed = [self.estimates[-1]]
        for k in range(num - 2, -1, -1):
            sm_kp1 = smoothed[-1]
            est_k = self.estimates[k]
            est_kp1 = self.estimates[k + 1]

            stm = est_kp1.stm
            if try_inverse(stm) is None:
                raise StateTransitionMatrixSingular()
            p_bar_inv = try_inverse(est_kp1.covar_bar)
            if p_bar_inv is None:
                raise CovarianceMatrixSingular()

            gain = est_k.covar @ stm.T @ p_bar_inv
            deviation = est_k.state_deviation + gain @ (sm_kp1.state_deviation - stm @ est_k.state_deviation)
            covar = est_k.covar + gain @ (sm_kp1.covar - est_kp1.covar_bar) @ gain.T
            smoothed.append(est_k.with_deviation(deviation).with_covar(covar))

        smoothed.reverse()
        return smoothed

    def iterate(self, measurements: Sequence[StdMeasurement]) -> None:
        """Smooth, re-center on the smoothed initial state and process again.

        The estimates and residuals of the previous pass are replaced.
        """
        smoothed = self.smooth()
        init_smoothed = smoothed[0]
        logger.info("Iterating from the smoothed estimate @ %s", init_smoothed.epoch)

        self.propagator.reset()
        initial = self.propagator.state
        start = initial.with_vector(initial.epoch, initial.to_vector() + init_smoothed.state_deviation, initial.stm)
        self.propagator.set_state(start)

        prior = Estimate(
            nominal_state=start,
            state_deviation=jnp.zeros(start.size, dtype=get_dtype()),
            covar=init_smoothed.covar,
            covar_bar=init_smoothed.covar_bar,
            stm=jnp.eye(start.size, dtype=get_dtype()),
            predicted=True,
            epoch_fmt=init_smoothed.epoch_fmt,
            covar_fmt=init_smoothed.covar_fmt,
        )
        self.kf.set_previous_estimate(prior)
        self.kf.set_extended(False)
        self.ekf_trigger.reset()
        self.estimates = [prior]
        self.residuals = []
        self.process_measurements(measurements)
