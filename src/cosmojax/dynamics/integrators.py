"""Classic 4th-order Runge-Kutta integrator (RK4).

Fixed-step, four-stage explicit method with local truncation error
:math:`O(h^5)`.  :func:`rk4_step_with_stm` also returns the state
transition matrix of the step, obtained by forward-mode differentiation
of the step with respect to the initial state.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import NamedTuple

import jax
import jax.numpy as jnp
from jax import Array
from jax.typing import ArrayLike

from cosmojax.config import get_dtype


class StepResult(NamedTuple):
    """Result of a single integrator step.

    Attributes:
        state: State vector at time ``t + dt_used``.
        dt_used: Timestep taken.
        stm: State transition matrix of the step, or ``None`` when it was
            not requested.
    """

    state: Array
    dt_used: Array
    stm: Array | None = None


def rk4_step(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    """Perform a single RK4 integration step.

    Advances the state from time ``t`` to ``t + dt``. Compatible with
    ``jax.jit``, ``jax.vmap`` and ``jax.jacfwd``.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time [s].
        state: Current state vector.
        dt: Timestep to take [s]. May be negative for backward integration.

    Returns:
        StepResult: The new state and the timestep used.

    Examples:
        ```python
        import jax.numpy as jnp
        from cosmojax.dynamics import rk4_step
        def harmonic(t, x):
            return jnp.array([x[1], -x[0]])
        result = rk4_step(harmonic, 0.0, jnp.array([1.0, 0.0]), 0.01)
        result.state  # ~[cos(0.01), -sin(0.01)]
        ```
    """
    dtype = get_dtype()
    t = jnp.asarray(t, dtype=dtype)
    state = jnp.asarray(state, dtype=dtype)
    dt = jnp.asarray(dt, dtype=dtype)

    k1 = dynamics(t, state)
    k2 = dynamics(t + 0.5 * dt, state + 0.5 * dt * k1)
    k3 = dynamics(t + 0.5 * dt, state + 0.5 * dt * k2)
    k4 = dynamics(t + dt, state + dt * k3)

    state_new = state + (dt / 6.0) * (k1 + 2.0 * k2 + 2.0 * k3 + k4)
    return StepResult(state=state_new, dt_used=dt)


def rk4_step_with_stm(
    dynamics: Callable[[ArrayLike, ArrayLike], Array],
    t: ArrayLike,
    state: ArrayLike,
    dt: ArrayLike,
) -> StepResult:
    """RK4 step returning the state transition matrix of the step.

    The STM is the Jacobian ``d x(t + dt) / d x(t)`` of the discrete step,
    so chaining step STMs reproduces the sensitivity of the propagated
    trajectory exactly.

    Args:
        dynamics: ODE right-hand side function ``f(t, x) -> dx/dt``.
        t: Current time [s].
        state: Current state vector.
        dt: Timestep to take [s].

    Returns:
        StepResult: New state, timestep used and step STM.
    """

    def advance(x):
        return rk4_step(dynamics, t, x, dt).state

    state = jnp.asarray(state, dtype=get_dtype())
    state_new = advance(state)
    stm = jax.jacfwd(advance)(state)
    return StepResult(state=state_new, dt_used=jnp.asarray(dt, dtype=get_dtype()), stm=stm)
