import jax.numpy as jnp
import pytest

from cosmojax import GM_EARTH, Epoch, Orbit, SpacecraftState
from cosmojax.constants import WGS84_a, WGS84_f
from cosmojax.errors import FrameMismatch
from cosmojax.frames import Celestial, Geoid

EPOCH = Epoch(2020, 1, 1)
EARTH = Geoid(name="Earth J2000", gm=GM_EARTH, flattening=WGS84_f, equatorial_radius=6378.1363,
              semi_major_radius=WGS84_a, exb_id=399, ephem_path=(3, 0), frame_path=(4,))
MOON = Celestial(name="Moon J2000", gm=4902.8, exb_id=301, ephem_path=(3, 1), frame_path=(5,))


class TestOrbitConstruction:
    def test_cartesian(self):
        orbit = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH, EARTH)
        assert jnp.array_equal(orbit.to_vector(), jnp.array([7000.0, 0.0, 0.0, 0.0, 7.5, 0.0]))
        assert orbit.size == 6
        assert orbit.stm is None
        assert orbit.orbit is orbit
        assert jnp.array_equal(orbit.radius, orbit.position)

    def test_from_vector(self):
        vector = jnp.arange(6.0)
        orbit = Orbit.from_vector(vector, EPOCH, EARTH, jnp.eye(6))
        assert jnp.array_equal(orbit.position, vector[:3])
        assert jnp.array_equal(orbit.stm, jnp.eye(6))

    def test_zeros(self):
        assert jnp.array_equal(Orbit.zeros(EPOCH, MOON).to_vector(), jnp.zeros(6))

    def test_keplerian_circular(self):
        orbit = Orbit.keplerian(7000.0, 0.0, 0.0, 0.0, 0.0, 0.0, EPOCH, EARTH)
        assert orbit.rmag() == pytest.approx(7000.0)
        assert orbit.vmag() == pytest.approx((GM_EARTH / 7000.0) ** 0.5)

    def test_keplerian_elements_recovered(self):
        orbit = Orbit.keplerian(8191.93, 0.024, 12.85, 306.614, 314.19, 99.887, EPOCH, EARTH)
        assert orbit.sma() == pytest.approx(8191.93, rel=1e-10)
        assert orbit.ecc() == pytest.approx(0.024, rel=1e-9)
        assert orbit.inc() == pytest.approx(12.85, rel=1e-10)

    def test_keplerian_hyperbolic_rejected(self):
        with pytest.raises(ValueError, match="eccentricity"):
            Orbit.keplerian(7000.0, 1.2, 0.0, 0.0, 0.0, 0.0, EPOCH, EARTH)

    def test_geodesic_equator(self):
        station = Orbit.from_geodesic(0.0, 0.0, 0.0, EPOCH, EARTH)
        assert station.position[0] == pytest.approx(WGS84_a)
        assert jnp.array_equal(station.velocity, jnp.zeros(3))

    def test_geodesic_pole(self):
        station = Orbit.from_geodesic(90.0, 0.0, 0.0, EPOCH, EARTH)
        assert station.position[2] == pytest.approx(WGS84_a * (1.0 - WGS84_f), rel=1e-12)

    def test_geodesic_needs_geoid(self):
        with pytest.raises(ValueError, match="geoid"):
            Orbit.from_geodesic(0.0, 0.0, 0.0, EPOCH, MOON)


class TestOrbitArithmetic:
    def test_add_deviation(self):
        orbit = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH, EARTH)
        moved = orbit + jnp.array([1.0, 0.0, 0.0, 0.0, 0.01, 0.0])
        assert moved.position[0] == pytest.approx(7001.0)
        assert moved.velocity[1] == pytest.approx(7.51)
        assert orbit.position[0] == pytest.approx(7000.0)

    def test_subtract_orbits(self):
        a = Orbit.cartesian(7000.0, 1.0, 0.0, 0.0, 7.5, 0.0, EPOCH, EARTH)
        b = Orbit.cartesian(6000.0, 1.0, 0.0, 0.0, 7.0, 0.0, EPOCH, EARTH)
        diff = a - b
        assert jnp.allclose(diff.to_vector(), jnp.array([1000.0, 0.0, 0.0, 0.0, 0.5, 0.0]))

    def test_frame_mismatch(self):
        a = Orbit.zeros(EPOCH, EARTH)
        b = Orbit.zeros(EPOCH, MOON)
        with pytest.raises(FrameMismatch):
            a + b

    def test_negation(self):
        orbit = Orbit.cartesian(1.0, 2.0, 3.0, 4.0, 5.0, 6.0, EPOCH, EARTH)
        assert jnp.array_equal((-orbit).to_vector(), -orbit.to_vector())

    def test_with_stm_default_identity(self):
        orbit = Orbit.zeros(EPOCH, EARTH).with_stm()
        assert jnp.array_equal(orbit.stm, jnp.eye(6))

    def test_with_vector_keeps_frame(self):
        orbit = Orbit.zeros(EPOCH, MOON)
        later = orbit.with_vector(EPOCH + 60.0, jnp.ones(6))
        assert later.frame == MOON
        assert later.epoch - EPOCH == pytest.approx(60.0)

    def test_str(self):
        orbit = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH, EARTH)
        assert "[Earth J2000]" in str(orbit)
        assert "7000.000000" in str(orbit)


class TestSpacecraftState:
    def test_vector_includes_fuel(self):
        orbit = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH, EARTH)
        sc = SpacecraftState(orbit, 100.0, 20.0)
        assert sc.size == 7
        assert sc.to_vector()[6] == pytest.approx(20.0)
        assert sc.frame == EARTH
        assert sc.epoch == EPOCH

    def test_with_vector(self):
        orbit = Orbit.zeros(EPOCH, EARTH)
        sc = SpacecraftState(orbit, 100.0, 20.0).with_vector(EPOCH + 1.0, jnp.arange(7.0), jnp.eye(7))
        assert sc.fuel_mass == pytest.approx(6.0)
        assert sc.dry_mass == pytest.approx(100.0)
        assert sc.stm.shape == (7, 7)

    def test_add_deviation(self):
        sc = SpacecraftState(Orbit.zeros(EPOCH, EARTH), 100.0, 20.0)
        moved = sc + jnp.array([1.0, 0.0, 0.0, 0.0, 0.0, 0.0, -0.5])
        assert moved.orbit.position[0] == pytest.approx(1.0)
        assert moved.fuel_mass == pytest.approx(19.5)

    def test_with_stm_identity(self):
        sc = SpacecraftState(Orbit.zeros(EPOCH, EARTH), 100.0, 20.0).with_stm()
        assert jnp.array_equal(sc.stm, jnp.eye(7))
