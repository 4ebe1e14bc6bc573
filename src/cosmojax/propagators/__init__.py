"""Propagation of estimated states.

- :class:`Propagator` -- Fixed-step RK4 propagator with STM tracking
- :class:`PropagatorConfig` -- Step size and tracking options
- :data:`END_OF_CHANNEL` -- Sentinel closing a propagation channel
"""

from cosmojax.propagators.propagator import END_OF_CHANNEL, Propagator, PropagatorConfig

__all__ = [
    "END_OF_CHANNEL",
    "Propagator",
    "PropagatorConfig",
]
