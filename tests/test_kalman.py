"""Tests for cosmojax.od.kalman, cosmojax.od.snc and cosmojax.od.estimate."""

import logging
import math

import jax.numpy as jnp
import pytest

from cosmojax import GM_EARTH, Epoch, Orbit, SpacecraftState
from cosmojax.errors import (
    SensitivityNotUpdated,
    SingularKalmanGain,
    StateTransitionMatrixNotUpdated,
)
from cosmojax.frames import Geoid
from cosmojax.od import KF, SNC, CovarFormat, EpochFormat, Estimate, Residual, snc_gamma, try_inverse

EPOCH = Epoch(2020, 1, 1)
EARTH = Geoid(name="Earth J2000", gm=GM_EARTH, flattening=0.0033528, equatorial_radius=6378.1363,
              semi_major_radius=6378.137, exb_id=399, ephem_path=(3, 0), frame_path=(4,))
H_POS = jnp.zeros((2, 6)).at[0, 0].set(1.0).at[1, 1].set(1.0)


def _nominal(seconds=0.0):
    return Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH + seconds, EARTH)


def _kf(covar=None, noise=None, sncs=()):
    covar = jnp.eye(6) if covar is None else covar
    noise = jnp.eye(2) if noise is None else noise
    return KF(Estimate.from_covar(_nominal(), covar), noise, sncs)


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────


class TestTryInverse:
    def test_invertible(self):
        m = jnp.array([[2.0, 0.0], [0.0, 4.0]])
        assert jnp.allclose(try_inverse(m), jnp.array([[0.5, 0.0], [0.0, 0.25]]))

    def test_singular(self):
        assert try_inverse(jnp.array([[1.0, 2.0], [2.0, 4.0]])) is None

    def test_zero(self):
        assert try_inverse(jnp.zeros((2, 2))) is None


class TestSncGamma:
    def test_single_block(self):
        gamma = snc_gamma(6, 3, 10.0)
        assert gamma.shape == (6, 3)
        assert jnp.allclose(gamma[:3], 50.0 * jnp.eye(3))
        assert jnp.allclose(gamma[3:], 10.0 * jnp.eye(3))

    def test_mass_row_untouched(self):
        gamma = snc_gamma(7, 3, 2.0)
        assert jnp.all(gamma[6] == 0.0)


# ──────────────────────────────────────────────
# SNC
# ──────────────────────────────────────────────


class TestSNC:
    def test_matrix(self):
        snc = SNC.from_diagonal(120.0, [1e-12, 2e-12, 3e-12])
        assert jnp.allclose(snc.to_matrix(EPOCH), jnp.diag(jnp.array([1e-12, 2e-12, 3e-12])))
        assert snc.dim == 3

    def test_requires_blocks_of_three(self):
        with pytest.raises(ValueError, match="blocks of 3"):
            SNC.from_diagonal(120.0, [1e-12, 1e-12])

    def test_start_time(self):
        snc = SNC.with_start_time(120.0, [1e-12] * 3, EPOCH + 60.0)
        assert snc.to_matrix(EPOCH) is None
        assert snc.to_matrix(EPOCH + 60.0) is not None

    def test_disable_time(self):
        snc = SNC.from_diagonal(120.0, [1e-12] * 3)
        snc.prev_epoch = EPOCH
        assert snc.to_matrix(EPOCH + 100.0) is not None
        assert snc.to_matrix(EPOCH + 121.0) is None

    def test_decay(self):
        snc = SNC.with_decay(1e6, [1e-12] * 3, [0.01] * 3)
        snc.init_epoch = EPOCH
        matrix = snc.to_matrix(EPOCH + 100.0)
        assert float(matrix[0, 0]) == pytest.approx(1e-12 * math.exp(-1.0), rel=1e-12)

    def test_decay_shape_mismatch(self):
        with pytest.raises(ValueError, match="decay"):
            SNC.with_decay(60.0, [1e-12] * 3, [0.01] * 2)

    def test_str(self):
        assert str(SNC.from_diagonal(60.0, [1e-12] * 3)).startswith("SNC: diag(1.0e-12")


# ──────────────────────────────────────────────
# Estimates and residuals
# ──────────────────────────────────────────────


class TestEstimate:
    def test_from_covar(self):
        est = Estimate.from_covar(_nominal(), 2.0 * jnp.eye(6))
        assert jnp.array_equal(est.state_deviation, jnp.zeros(6))
        assert jnp.array_equal(est.covar, est.covar_bar)
        assert jnp.array_equal(est.stm, jnp.eye(6))
        assert est.predicted

    def test_shape_checked(self):
        with pytest.raises(ValueError, match="covar"):
            Estimate.from_covar(_nominal(), jnp.eye(7))

    def test_spacecraft_state_size(self):
        est = Estimate.zeros(SpacecraftState(_nominal(), 500.0, 50.0))
        assert est.covar.shape == (7, 7)

    def test_state_applies_deviation(self):
        est = Estimate.from_covar(_nominal(), jnp.eye(6)).with_deviation(jnp.array([1.0, 0, 0, 0, 0, 0]))
        assert float(est.state.position[0]) == pytest.approx(7001.0)

    def test_within_sigma(self):
        est = Estimate.from_covar(_nominal(), jnp.eye(6)).with_deviation(jnp.full(6, 2.0))
        assert est.within_3sigma()
        assert not est.within_sigma(1.0)

    def test_header_and_record(self):
        est = Estimate.from_covar(_nominal(), 4.0 * jnp.eye(6))
        header = est.header()
        assert header[0] == "Gregorian TAI"
        assert header[1:7] == [f"state_{i}" for i in range(6)]
        assert header[7] == "exptd_val_0"
        record = est.to_record()
        assert len(record) == len(header)
        assert record[7] == pytest.approx(2.0)

    def test_formats(self):
        est = Estimate(_nominal(), jnp.zeros(6), 4.0 * jnp.eye(6), 4.0 * jnp.eye(6), jnp.eye(6),
                       epoch_fmt=EpochFormat.MJD_TAI, covar_fmt=CovarFormat.SIGMA3)
        assert est.to_record()[0] == pytest.approx(EPOCH.mjd())
        assert est.to_record()[7] == pytest.approx(12.0)


class TestResidual:
    def test_header(self):
        res = Residual.zeros(EPOCH)
        assert res.header() == ["Gregorian TAI", "prefit_0", "prefit_1", "postfit_0", "postfit_1"]
        assert res.to_record()[1:] == [0.0, 0.0, 0.0, 0.0]


# ──────────────────────────────────────────────
# Kalman filter
# ──────────────────────────────────────────────


class TestKFPreconditions:
    def test_time_update_needs_stm(self):
        with pytest.raises(StateTransitionMatrixNotUpdated):
            _kf().time_update(_nominal(10.0))

    def test_stm_consumed(self):
        kf = _kf()
        kf.update_stm(jnp.eye(6))
        kf.time_update(_nominal(10.0))
        with pytest.raises(StateTransitionMatrixNotUpdated):
            kf.time_update(_nominal(20.0))

    def test_measurement_update_needs_stm(self):
        kf = _kf()
        kf.update_h_tilde(H_POS)
        with pytest.raises(StateTransitionMatrixNotUpdated):
            kf.measurement_update(_nominal(10.0), jnp.ones(2), jnp.zeros(2))

    def test_measurement_update_needs_sensitivity(self):
        kf = _kf()
        kf.update_stm(jnp.eye(6))
        with pytest.raises(SensitivityNotUpdated):
            kf.measurement_update(_nominal(10.0), jnp.zeros(2), jnp.zeros(2))

    def test_shapes_checked(self):
        kf = _kf()
        with pytest.raises(ValueError, match="STM"):
            kf.update_stm(jnp.eye(7))
        with pytest.raises(ValueError, match="sensitivity"):
            kf.update_h_tilde(jnp.zeros((3, 6)))

    def test_non_square_noise(self):
        with pytest.raises(ValueError, match="square"):
            KF.no_snc(Estimate.from_covar(_nominal(), jnp.eye(6)), jnp.zeros((2, 3)))

    def test_snc_too_large(self):
        with pytest.raises(ValueError, match="do not fit"):
            _kf(sncs=[SNC.from_diagonal(60.0, [1e-12] * 6)])

    def test_singular_gain(self):
        kf = _kf(covar=jnp.zeros((6, 6)), noise=jnp.zeros((2, 2)))
        kf.update_stm(jnp.eye(6))
        kf.update_h_tilde(H_POS)
        with pytest.raises(SingularKalmanGain):
            kf.measurement_update(_nominal(10.0), jnp.ones(2), jnp.zeros(2))


class TestKFUpdates:
    def test_ckf_time_update_maps_deviation(self):
        kf = KF.no_snc(Estimate.from_covar(_nominal(), jnp.eye(6)).with_deviation(jnp.arange(6.0)), jnp.eye(2))
        stm = jnp.eye(6).at[0, 3].set(10.0)
        kf.update_stm(stm)
        est = kf.time_update(_nominal(10.0))
        assert est.predicted
        assert jnp.allclose(est.state_deviation, stm @ jnp.arange(6.0))
        assert jnp.allclose(est.covar, stm @ stm.T)
        assert kf.previous_estimate is est

    def test_ekf_time_update_zero_deviation(self):
        kf = KF.no_snc(Estimate.from_covar(_nominal(), jnp.eye(6)).with_deviation(jnp.ones(6)), jnp.eye(2))
        kf.set_extended(True)
        kf.update_stm(jnp.eye(6))
        assert jnp.array_equal(kf.time_update(_nominal(10.0)).state_deviation, jnp.zeros(6))

    def test_ckf_measurement_update(self):
        kf = _kf()
        kf.update_stm(jnp.eye(6))
        kf.update_h_tilde(H_POS)
        est, res = kf.measurement_update(_nominal(10.0), jnp.array([1.0, 0.0]), jnp.zeros(2))
        assert not est.predicted
        assert float(est.state_deviation[0]) == pytest.approx(0.5)
        assert float(est.covar[0, 0]) == pytest.approx(0.5)
        assert float(est.covar[3, 3]) == pytest.approx(1.0)
        assert jnp.allclose(res.prefit, jnp.array([1.0, 0.0]))
        assert res.epoch == EPOCH + 10.0

    def test_ekf_postfit(self):
        kf = _kf()
        kf.set_extended(True)
        assert kf.is_extended()
        kf.update_stm(jnp.eye(6))
        kf.update_h_tilde(H_POS)
        _, res = kf.measurement_update(_nominal(10.0), jnp.array([1.0, 0.0]), jnp.zeros(2))
        assert jnp.allclose(res.postfit, jnp.array([0.5, 0.0]))

    def test_joseph_covariance_symmetric(self):
        a = jnp.arange(36.0).reshape(6, 6) / 36.0
        covar = a @ a.T + jnp.eye(6)
        kf = _kf(covar=covar, noise=1e-3 * jnp.eye(2))
        kf.update_stm(jnp.eye(6).at[0, 3].set(10.0).at[1, 4].set(10.0))
        kf.update_h_tilde(jnp.arange(12.0).reshape(2, 6) / 12.0)
        est, _ = kf.measurement_update(_nominal(10.0), jnp.array([0.1, -0.2]), jnp.zeros(2))
        assert jnp.allclose(est.covar, est.covar.T, atol=1e-12)
        assert bool(jnp.all(jnp.linalg.eigvalsh(est.covar) > -1e-12))
        assert float(jnp.trace(est.covar)) < float(jnp.trace(est.covar_bar))

    def test_snc_inflates_covariance(self):
        plain = _kf()
        noisy = _kf(sncs=[SNC.from_diagonal(120.0, [1e-6] * 3)])
        for kf in (plain, noisy):
            kf.update_stm(jnp.eye(6))
            kf.update_h_tilde(H_POS)
        est_plain, _ = plain.measurement_update(_nominal(10.0), jnp.zeros(2), jnp.zeros(2))
        est_noisy, _ = noisy.measurement_update(_nominal(10.0), jnp.zeros(2), jnp.zeros(2))
        assert float(est_noisy.covar_bar[3, 3]) == pytest.approx(1.0 + 1e-6 * 100.0)
        assert float(est_noisy.covar[5, 5]) > float(est_plain.covar[5, 5])

    def test_snc_index_switch_logged(self, caplog):
        early = SNC.from_diagonal(1e6, [1e-12] * 3)
        late = SNC.with_start_time(1e6, [1e-10] * 3, EPOCH + 50.0)
        kf = _kf(sncs=[early, late])
        with caplog.at_level(logging.INFO, logger="cosmojax.od.kalman"):
            for seconds in (10.0, 60.0):
                kf.update_stm(jnp.eye(6))
                kf.update_h_tilde(H_POS)
                kf.measurement_update(_nominal(seconds), jnp.zeros(2), jnp.zeros(2))
        switches = [r for r in caplog.records if "SNC index switch" in r.getMessage()]
        assert len(switches) == 1

    def test_set_process_noise(self):
        kf = _kf()
        kf.set_process_noise(SNC.from_diagonal(60.0, [1e-12] * 3))
        assert len(kf.process_noise) == 1
        assert kf.process_noise[0].init_epoch == EPOCH
