"""Tests for cosmojax.od.ranging."""

import jax.numpy as jnp
import pytest

from cosmojax import Epoch, Orbit, SpacecraftState
from cosmojax.od import GroundStation, StdMeasurement

EPOCH = Epoch(2020, 1, 5, 12, 0, 0)


def _above(station, cosm, scale):
    """Spacecraft at rest along the station radius, scaled from the Earth center."""
    eme2k = cosm.frame("EME2000")
    tx = cosm.frame_chg(station.station_state(EPOCH), eme2k)
    return Orbit(EPOCH, tx.position * scale, jnp.zeros(3), eme2k), tx


class TestStdMeasurement:
    def test_real(self):
        msr = StdMeasurement.real(EPOCH, 12_000.0, 1.5, device="Madrid")
        assert msr.range() == 12_000.0
        assert msr.range_rate() == 1.5
        assert msr.visible
        assert msr.device == "Madrid"
        assert msr.sensitivity().shape == (2, 6)
        assert jnp.array_equal(msr.observation(), jnp.array([12_000.0, 1.5]))


class TestGroundStation:
    def test_dsn_stations(self, cosm):
        for factory in (GroundStation.dss65_madrid, GroundStation.dss34_canberra,
                        GroundStation.dss13_goldstone):
            station = factory(10.0, 0.0, 0.0, cosm)
            assert station.frame.name == "iau earth"
            assert station.station_state(EPOCH).rmag() == pytest.approx(6371.0, abs=25.0)

    def test_negative_noise_rejected(self, cosm):
        with pytest.raises(ValueError, match="non-negative"):
            GroundStation.dss65_madrid(0.0, -1.0, 0.0, cosm)

    def test_overhead_visible(self, cosm):
        station = GroundStation.dss65_madrid(10.0, 0.0, 0.0, cosm)
        rx, tx = _above(station, cosm, 1.5)
        assert station.elevation(rx, tx) > 80.0
        msr = station.measure(rx)
        assert msr.visible
        assert msr.device == "Madrid"
        assert msr.epoch == EPOCH
        assert msr.range() == pytest.approx(0.5 * tx.rmag(), rel=1e-9)
        assert msr.range_rate() == pytest.approx(0.0, abs=1e-12)

    def test_antipode_not_visible(self, cosm):
        station = GroundStation.dss65_madrid(10.0, 0.0, 0.0, cosm)
        rx, _ = _above(station, cosm, -1.5)
        msr = station.measure(rx)
        assert msr is not None
        assert not msr.visible

    def test_sensitivity(self, cosm):
        station = GroundStation.dss34_canberra(0.0, 0.0, 0.0, cosm)
        rx, tx = _above(station, cosm, 2.0)
        rx = Orbit(EPOCH, rx.position, jnp.array([1.0, 2.0, 0.5]), rx.frame)
        h = station.measure(rx).sensitivity()
        rel = rx.position - tx.position
        rho_hat = rel / jnp.linalg.norm(rel)
        assert h.shape == (2, 6)
        assert jnp.allclose(h[0, :3], rho_hat, atol=1e-12)
        assert jnp.allclose(h[0, 3:], 0.0)
        assert jnp.allclose(h[1, 3:], rho_hat, atol=1e-12)

    def test_spacecraft_state_padding(self, cosm):
        station = GroundStation.dss13_goldstone(0.0, 0.0, 0.0, cosm)
        rx, _ = _above(station, cosm, 1.5)
        h = station.measure(SpacecraftState(rx, 500.0, 50.0)).sensitivity()
        assert h.shape == (2, 7)
        assert jnp.all(h[:, 6] == 0.0)

    def test_noise_reproducible(self, cosm):
        first = GroundStation.dss65_madrid(0.0, 1e-3, 1e-6, cosm, seed=7)
        second = GroundStation.dss65_madrid(0.0, 1e-3, 1e-6, cosm, seed=7)
        exact = GroundStation.dss65_madrid(0.0, 0.0, 0.0, cosm)
        rx, _ = _above(first, cosm, 1.5)
        noisy = first.measure(rx).observation()
        assert jnp.array_equal(noisy, second.measure(rx).observation())
        assert not jnp.array_equal(noisy, exact.measure(rx).observation())
        # Subsequent measurements draw fresh noise
        assert not jnp.array_equal(noisy, first.measure(rx).observation())
