"""Fixed-step propagation of estimated states.

:class:`Propagator` advances a :class:`~cosmojax.orbit.State` with the
RK4 step of :mod:`cosmojax.dynamics`, optionally attaching to every
produced state the state transition matrix of the step.  Each accepted
step can be published on a :class:`queue.Queue` channel, which is how the
orbit determination process consumes the nominal trajectory while the
propagation runs on a worker thread (:meth:`Propagator.spawn`).

Channel protocol: every message is a state, an exception raised by the
producer, or the :data:`END_OF_CHANNEL` sentinel sent once the
propagation is complete.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import NamedTuple

import jax
from jax import Array
from jax.typing import ArrayLike

from cosmojax.dynamics.integrators import rk4_step_with_stm
from cosmojax.orbit import State

logger = logging.getLogger(__name__)

END_OF_CHANNEL = None
"""Sentinel published on the channel when the producer is done."""

# Remainders shorter than this are merged into the previous step [s]
_MIN_STEP = 1e-6


class PropagatorConfig(NamedTuple):
    """Configuration of a :class:`Propagator`.

    Attributes:
        step_size: Fixed integration step [s].
        track_stm: Attach the step state transition matrix to every
            produced state.
        max_steps: Upper bound on the number of steps of one call.
    """

    step_size: float = 10.0
    track_stm: bool = True
    max_steps: int = 10_000_000


class Propagator:
    """Fixed-step RK4 propagator.

    Args:
        dynamics: Equations of motion ``f(t, x) -> dx/dt`` on the vector
            form of the state, *t* in seconds since the initial epoch.
        initial_state: State at the start of propagation.
        config: Step size and STM tracking.

    Examples:
        ```python
        from cosmojax.dynamics import two_body_dynamics
        from cosmojax.propagators import Propagator, PropagatorConfig
        prop = Propagator(two_body_dynamics(orbit.frame.gm), orbit, PropagatorConfig(step_size=10.0))
        final = prop.until_time_elapsed(3600.0)
        ```
    """

    def __init__(
        self,
        dynamics: Callable[[ArrayLike, ArrayLike], Array],
        initial_state: State,
        config: PropagatorConfig = PropagatorConfig(),
    ) -> None:
        if config.step_size <= 0.0:
            raise ValueError(f"step size must be positive, got {config.step_size}")
        self.dynamics = dynamics
        self.config = config
        self.initial_state = initial_state
        self.state = initial_state
        self._step = jax.jit(lambda t, x, dt: rk4_step_with_stm(dynamics, t, x, dt))

    def reset(self) -> None:
        """Return to the initial state."""
        self.state = self.initial_state

    def set_state(self, state: State) -> None:
        """Replace both the current and the initial state."""
        self.initial_state = state
        self.state = state

    def until_time_elapsed(self, seconds: float, channel: queue.Queue | None = None) -> State:
        """Propagate for *seconds* from the current state.

        The last step is shortened so the final state lands exactly on the
        requested epoch.

        Args:
            seconds: Duration to propagate [s]. Must be non-negative.
            channel: Optional queue receiving every produced state.

        Returns:
            State: The state at the end of the propagation.

        Raises:
            ValueError: If *seconds* is negative.
            RuntimeError: If the step budget is exhausted.
        """
        if seconds < 0.0:
            raise ValueError(f"cannot propagate backward ({seconds} s)")

        target = self.state.epoch + seconds
        step = self.config.step_size
        for _ in range(self.config.max_steps):
            remaining = target - self.state.epoch
            if remaining <= 0.0:
                return self.state

            if remaining <= step + _MIN_STEP:
                dt, epoch = remaining, target
            else:
                dt, epoch = step, self.state.epoch + step

            t = self.state.epoch - self.initial_state.epoch
            result = self._step(t, self.state.to_vector(), dt)
            stm = result.stm if self.config.track_stm else None
            self.state = self.state.with_vector(epoch, result.state, stm)
            if channel is not None:
                channel.put(self.state)

        raise RuntimeError(f"propagation exceeded {self.config.max_steps} steps")

    def spawn(self, seconds: float, channel: queue.Queue) -> threading.Thread:
        """Propagate for *seconds* on a worker thread publishing to *channel*.

        The worker always closes the channel with :data:`END_OF_CHANNEL`;
        an exception raised during propagation is published before it.

        Returns:
            threading.Thread: The started worker.
        """

        def produce():
            try:
                self.until_time_elapsed(seconds, channel)
            except Exception as err:
                logger.error("Propagation failed: %s", err)
                channel.put(err)
            finally:
                channel.put(END_OF_CHANNEL)

        worker = threading.Thread(target=produce, name="cosmojax-propagator", daemon=True)
        worker.start()
        return worker
