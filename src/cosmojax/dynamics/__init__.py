"""Dynamics and integration used to propagate estimated states.

- :func:`accel_point_mass` -- Point-mass gravitational acceleration
- :func:`two_body_dynamics` -- Two-body equations of motion
- :func:`rk4_step` -- Classic 4th-order Runge-Kutta step
- :func:`rk4_step_with_stm` -- RK4 step with its state transition matrix
"""

from cosmojax.dynamics.factory import two_body_dynamics
from cosmojax.dynamics.gravity import accel_point_mass
from cosmojax.dynamics.integrators import StepResult, rk4_step, rk4_step_with_stm

__all__ = [
    "StepResult",
    "accel_point_mass",
    "rk4_step",
    "rk4_step_with_stm",
    "two_body_dynamics",
]
