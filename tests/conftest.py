import jax.numpy as jnp
import pytest

from cosmojax import Cosm, Epoch
from cosmojax.config import set_dtype


@pytest.fixture(autouse=True)
def _ensure_float64():
    """Set float64 precision before every test.

    Tests that switch to float32 (test_config.py) restore the package
    default through their own fixture; this one guards every other test.
    """
    set_dtype(jnp.float64)


@pytest.fixture(scope="session")
def cosm():
    """Frame engine over the approximate ephemeris, covering January 2020."""
    set_dtype(jnp.float64)
    return Cosm.approximate(Epoch(2020, 1, 1), Epoch(2020, 1, 31))
