"""Tests for cosmojax.od.process."""

import logging
import queue
from typing import NamedTuple

import jax.numpy as jnp
import pytest

from cosmojax import GM_EARTH, Epoch, Orbit
from cosmojax.dynamics import two_body_dynamics
from cosmojax.frames import Celestial
from cosmojax.od import KF, CkfTrigger, Estimate, GroundStation, ODProcess, StdEkfTrigger, StdMeasurement
from cosmojax.propagators import Propagator, PropagatorConfig

STEP = 10.0
ARC = 3600.0
# One measurement every MSR_EVERY propagator steps
MSR_EVERY = 6
P0 = jnp.diag(jnp.array([10.0, 10.0, 10.0, 1e-4, 1e-4, 1e-4]))
R = jnp.diag(jnp.array([1e-6, 1e-12]))
OFFSET = jnp.array([0.5, -0.3, 0.2, 1e-4, -5e-5, 2e-5])
EARTH = Celestial(name="Earth J2000", gm=GM_EARTH)


class Scenario(NamedTuple):
    truth: Orbit
    # Truth at the last measurement epoch
    truth_final: Orbit
    dynamics: object
    stations: list
    measurements: list


@pytest.fixture(scope="module")
def scenario(cosm):
    eme2k = cosm.frame("EME2000")
    truth = Orbit.keplerian(42164.0, 0.05, 20.0, 40.0, 10.0, 30.0, Epoch(2020, 1, 5), eme2k)
    dynamics = two_body_dynamics(eme2k.gm)
    stations = [
        factory(0.0, 0.0, 0.0, cosm)
        for factory in (GroundStation.dss65_madrid, GroundStation.dss34_canberra, GroundStation.dss13_goldstone)
    ]

    channel = queue.Queue()
    prop = Propagator(dynamics, truth, PropagatorConfig(step_size=STEP, track_stm=False))
    prop.until_time_elapsed(ARC, channel)
    measurements = []
    truth_final = None
    for i in range(channel.qsize()):
        state = channel.get_nowait()
        if (i + 1) % MSR_EVERY:
            continue
        for station in stations:
            msr = station.measure(state)
            if msr is not None and msr.visible:
                measurements.append(msr)
                truth_final = state
                break
    assert len(measurements) > 10
    return Scenario(truth, truth_final, dynamics, stations, measurements)


def _od_process(scenario, offset=None, trigger=None, simultaneous=False):
    nominal = scenario.truth if offset is None else scenario.truth + offset
    prop = Propagator(scenario.dynamics, nominal, PropagatorConfig(step_size=STEP))
    kf = KF.no_snc(Estimate.from_covar(nominal, P0), R)
    return ODProcess(prop, kf, scenario.stations, simultaneous_msr=simultaneous,
                     num_expected_msr=len(scenario.measurements), trigger=trigger)


def _position_error(state, truth):
    return float(jnp.linalg.norm(state.orbit.position - truth.position))


# ──────────────────────────────────────────────
# EKF triggers
# ──────────────────────────────────────────────


def _estimate(epoch, deviation, predicted=False):
    nominal = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, epoch, EARTH)
    return Estimate(nominal, jnp.full(6, deviation), jnp.eye(6), jnp.eye(6), jnp.eye(6), predicted=predicted)


class TestCkfTrigger:
    def test_never_switches(self):
        trigger = CkfTrigger()
        assert not trigger.enable_ekf(_estimate(Epoch(2020, 1, 1), 0.0))
        assert not trigger.disable_ekf(Epoch(2020, 1, 2))


class TestStdEkfTrigger:
    def test_enables_after_count(self):
        trigger = StdEkfTrigger(3, 600.0)
        epoch = Epoch(2020, 1, 1)
        assert [trigger.enable_ekf(_estimate(epoch + 60.0 * i, 0.0)) for i in range(4)] == [False, False, True, True]
        assert trigger.prev_msr_dt == epoch + 180.0

    def test_within_sigma_gate(self):
        trigger = StdEkfTrigger(1, 600.0, within_sigma=3.0)
        epoch = Epoch(2020, 1, 1)
        assert not trigger.enable_ekf(_estimate(epoch, 5.0))
        assert trigger.enable_ekf(_estimate(epoch + 60.0, 1.0))

    def test_predicted_estimates_do_not_move_epoch(self):
        trigger = StdEkfTrigger(10, 600.0)
        epoch = Epoch(2020, 1, 1)
        trigger.enable_ekf(_estimate(epoch, 0.0))
        trigger.enable_ekf(_estimate(epoch + 60.0, 0.0, predicted=True))
        assert trigger.prev_msr_dt == epoch

    def test_disables_after_gap(self):
        trigger = StdEkfTrigger(1, 600.0)
        epoch = Epoch(2020, 1, 1)
        assert not trigger.disable_ekf(epoch)
        trigger.enable_ekf(_estimate(epoch, 0.0))
        assert not trigger.disable_ekf(epoch + 600.0)
        assert trigger.disable_ekf(epoch + 601.0)
        assert trigger.cur_msrs == 0

    def test_reset(self):
        trigger = StdEkfTrigger(1, 600.0)
        trigger.enable_ekf(_estimate(Epoch(2020, 1, 1), 0.0))
        trigger.reset()
        assert trigger.prev_msr_dt is None
        assert trigger.cur_msrs == 0


# ──────────────────────────────────────────────
# Processing
# ──────────────────────────────────────────────


class TestProcessMeasurements:
    def test_empty_measurements(self, scenario):
        with pytest.raises(ValueError, match="at least one"):
            _od_process(scenario).process_measurements([])

    def test_perfect_dynamics(self, scenario, caplog):
        od = _od_process(scenario)
        with caplog.at_level(logging.INFO, logger="cosmojax.od.process"):
            od.process_measurements(scenario.measurements)

        last_epoch = scenario.measurements[-1].epoch
        num_steps = round((last_epoch - scenario.truth.epoch) / STEP)
        assert len(od.estimates) == num_steps + 1
        assert len(od.residuals) == len(scenario.measurements)
        assert od.estimates[-1].epoch == last_epoch
        for res in od.residuals:
            assert jnp.allclose(res.prefit, 0.0, atol=1e-9)
            assert jnp.allclose(res.postfit, 0.0, atol=1e-9)
        assert jnp.allclose(od.estimates[-1].state_deviation, 0.0, atol=1e-9)
        assert float(jnp.trace(od.estimates[-1].covar[:3, :3])) < float(jnp.trace(P0[:3, :3]))

        # A measurement update never inflates any variance over its prediction
        updated = [est for est in od.estimates if not est.predicted]
        assert len(updated) == len(scenario.measurements)
        for est in updated:
            prior = jnp.diag(est.covar_bar)
            assert jnp.all(jnp.diag(est.covar) <= prior + 1e-9 * (1.0 + prior))
            assert float(jnp.trace(est.covar[:3, :3])) < float(jnp.trace(est.covar_bar[:3, :3]))

        # Without process noise the filtered variances stay below the mapped-only ones
        mapped = _od_process(scenario)
        mapped.map_covar(last_epoch)
        assert len(mapped.estimates) == len(od.estimates)
        for est, ref in zip(od.estimates, mapped.estimates):
            assert est.epoch == ref.epoch
            bound = jnp.diag(ref.covar)
            assert jnp.all(jnp.diag(est.covar) <= bound + 1e-9 * (1.0 + bound))

        messages = [r.getMessage() for r in caplog.records]
        assert any("OD arc starts prior to first measurement" in m for m in messages)
        assert any("100% done" in m for m in messages)

    def test_unknown_device_time_updates(self, scenario, caplog):
        od = _od_process(scenario)
        msr = scenario.measurements[0]
        unknown = StdMeasurement(msr.epoch, msr.obs, msr.h_tilde, True, "Arecibo")
        with caplog.at_level(logging.DEBUG, logger="cosmojax.od.process"):
            od.process_measurements([unknown])
        assert od.residuals == []
        assert all(est.predicted for est in od.estimates)
        assert od.estimates[-1].epoch == msr.epoch
        assert any("No visible device" in r.getMessage() for r in caplog.records)

    def test_repeated_epoch(self, scenario):
        od = _od_process(scenario)
        msr = scenario.measurements[0]
        od.process_measurements([msr, msr])
        assert len(od.residuals) == 2
        assert od.estimates[-1].epoch == od.estimates[-2].epoch == msr.epoch

    def test_out_of_order_rejected(self, scenario):
        od = _od_process(scenario)
        first, second = scenario.measurements[:2]
        with pytest.raises(ValueError, match="out of order"):
            od.process_measurements([second, first])
        assert od.residuals == []
        assert len(od.estimates) == 1

    def test_measurement_before_nominal_rejected(self, scenario):
        od = _od_process(scenario)
        msr = scenario.measurements[0]
        early = StdMeasurement(scenario.truth.epoch - 60.0, msr.obs, msr.h_tilde, True, msr.device)
        with pytest.raises(ValueError, match="precedes the nominal state"):
            od.process_measurements([early])
        assert od.residuals == []

    @pytest.mark.slow
    def test_ckf_recovers_offset(self, scenario):
        od = _od_process(scenario, offset=OFFSET)
        od.process_measurements(scenario.measurements)

        final = od.estimates[-1]
        assert final.epoch == scenario.truth_final.epoch
        nominal_error = _position_error(final.nominal_state, scenario.truth_final)
        assert _position_error(final.state, scenario.truth_final) < 0.25 * nominal_error
        assert not od.kf.is_extended()

    @pytest.mark.slow
    def test_ekf_trigger_switches(self, scenario, caplog):
        od = _od_process(scenario, offset=OFFSET, trigger=StdEkfTrigger(5, 3600.0))
        with caplog.at_level(logging.INFO, logger="cosmojax.od.process"):
            od.process_measurements(scenario.measurements)

        assert od.kf.is_extended()
        assert any("EKF enabled" in r.getMessage() for r in caplog.records)
        final = od.estimates[-1]
        # The nominal trajectory was re-centered on the estimates
        assert _position_error(final.state, scenario.truth_final) < 0.25 * float(jnp.linalg.norm(OFFSET[:3]))
        assert jnp.allclose(od.propagator.state.to_vector(), final.state.to_vector())

    @pytest.mark.slow
    def test_simultaneous_measurements(self, scenario):
        od = _od_process(scenario, simultaneous=True)
        od.process_measurements(scenario.measurements)
        assert len(od.residuals) == len(scenario.measurements)


class TestMapCovar:
    def test_map_covar(self, scenario):
        od = _od_process(scenario)
        od.process_measurements(scenario.measurements[:3])
        count = len(od.estimates)
        end = scenario.measurements[2].epoch + 600.0
        od.map_covar(end)
        mapped = od.estimates[count:]
        assert len(mapped) == 60
        assert all(est.predicted for est in mapped)
        assert mapped[-1].epoch == end
        assert len(od.residuals) == 3


class TestSmoothing:
    def test_smooth_perfect_dynamics(self, scenario):
        od = _od_process(scenario)
        od.process_measurements(scenario.measurements[:5])
        smoothed = od.smooth()
        assert len(smoothed) == len(od.estimates)
        assert [est.epoch for est in smoothed] == [est.epoch for est in od.estimates]
        assert smoothed[-1] is od.estimates[-1]
        for est in smoothed:
            assert jnp.allclose(est.state_deviation, 0.0, atol=1e-9)
        # Smoothing never increases the filtered uncertainty
        assert float(jnp.trace(smoothed[0].covar)) <= float(jnp.trace(od.estimates[0].covar)) + 1e-12

    @pytest.mark.slow
    def test_smooth_recovers_initial_offset(self, scenario):
        od = _od_process(scenario, offset=OFFSET)
        od.process_measurements(scenario.measurements)
        initial = od.smooth()[0]
        assert _position_error(initial.state, scenario.truth) < 0.25 * float(jnp.linalg.norm(OFFSET[:3]))

    @pytest.mark.slow
    def test_iterate(self, scenario):
        od = _od_process(scenario, offset=OFFSET)
        od.process_measurements(scenario.measurements)
        first_error = _position_error(od.estimates[-1].state, scenario.truth_final)
        num_estimates = len(od.estimates)

        od.iterate(scenario.measurements)
        assert len(od.estimates) == num_estimates
        assert len(od.residuals) == len(scenario.measurements)
        assert od.estimates[0].epoch == scenario.truth.epoch
        assert jnp.allclose(od.estimates[0].state_deviation, 0.0)
        second_error = _position_error(od.estimates[-1].state, scenario.truth_final)
        assert second_error <= first_error + 1e-3
        # The second pass starts much closer to the truth
        assert _position_error(od.propagator.initial_state, scenario.truth) < 0.25 * float(jnp.linalg.norm(OFFSET[:3]))
