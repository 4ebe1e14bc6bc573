# /// script
# requires-python = ">=3.11"
# dependencies = ["typer>=0.9.0", "cosmojax"]
#
# [tool.uv.sources]
# cosmojax = { path = ".." }
# ///
"""Estimate a geosynchronous orbit from simulated Deep Space Network tracking.

Builds the approximate ephemeris for the arc, simulates range and
range-rate measurements of a truth trajectory from the Madrid, Canberra
and Goldstone stations, then runs a classical Kalman filter from a
perturbed initial state, optionally switching to the extended filter,
smoothing and iterating.  Estimates and residuals are written as CSV.

Requires cosmojax to be installed (``uv pip install -e .`` from the repo root).

Usage:
    uv run examples/orbit_determination.py [OPTIONS]

Examples:
    # One hour of tracking, one measurement per minute
    uv run examples/orbit_determination.py --duration 1.0

    # Switch to the EKF after 10 measurements, then smooth and iterate once
    uv run examples/orbit_determination.py --ekf-after 10 --iterate

    # Noisy measurements, verbose filter logging
    uv run examples/orbit_determination.py --range-noise 1e-3 --verbose
"""

import logging
import queue
import time
from pathlib import Path
from typing import Annotated

import jax.numpy as jnp
import typer

from cosmojax import Cosm, Epoch, Orbit
from cosmojax.dynamics import two_body_dynamics
from cosmojax.od import (
    KF,
    Estimate,
    GroundStation,
    ODProcess,
    StdEkfTrigger,
    estimates_to_dataframe,
    residuals_to_dataframe,
    write_csv,
)
from cosmojax.propagators import Propagator, PropagatorConfig


def main(
    duration: Annotated[float, typer.Option(help="Tracking arc in hours")] = 2.0,
    timestep: Annotated[float, typer.Option(help="Integration timestep in seconds")] = 10.0,
    msr_interval: Annotated[int, typer.Option(help="Integration steps between measurements")] = 6,
    elevation_mask: Annotated[float, typer.Option(help="Station elevation mask in degrees")] = 10.0,
    range_noise: Annotated[float, typer.Option(help="Range noise standard deviation in km")] = 0.0,
    range_rate_noise: Annotated[
        float, typer.Option(help="Range-rate noise standard deviation in km/s")
    ] = 0.0,
    ekf_after: Annotated[
        int, typer.Option(help="Switch to the EKF after this many measurements (0 keeps the CKF)")
    ] = 0,
    iterate: Annotated[bool, typer.Option(help="Smooth and iterate once after the first pass")] = False,
    output: Annotated[Path, typer.Option(help="Directory receiving the CSV files")] = Path("od_output"),
    verbose: Annotated[bool, typer.Option(help="Log every filter step")] = False,
) -> None:
    """Run orbit determination on simulated ground station tracking."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    start = Epoch(2020, 1, 5)
    arc = duration * 3600.0

    # ── Stage 1: Ephemeris and frames ────────────────────────────────────
    print("── Stage 1: Building the approximate ephemeris ──")
    t0 = time.perf_counter()
    cosm = Cosm.approximate(start - 86400.0, start + arc + 86400.0)
    eme2k = cosm.frame("EME2000")
    print(f"  {len(cosm.frames_get_names())} frames ready in {time.perf_counter() - t0:.1f}s")

    stations = [
        factory(elevation_mask, range_noise, range_rate_noise, cosm, seed=seed)
        for seed, factory in enumerate(
            (GroundStation.dss65_madrid, GroundStation.dss34_canberra, GroundStation.dss13_goldstone)
        )
    ]

    # ── Stage 2: Simulated tracking ──────────────────────────────────────
    print("\n── Stage 2: Simulating tracking data ──")
    t0 = time.perf_counter()
    truth = Orbit.keplerian(42164.0, 0.05, 20.0, 40.0, 10.0, 30.0, start, eme2k)
    dynamics = two_body_dynamics(eme2k.gm)
    channel = queue.Queue()
    Propagator(dynamics, truth, PropagatorConfig(step_size=timestep, track_stm=False)).until_time_elapsed(
        arc, channel
    )

    measurements = []
    for i in range(channel.qsize()):
        state = channel.get_nowait()
        if (i + 1) % msr_interval:
            continue
        for station in stations:
            msr = station.measure(state)
            if msr is not None and msr.visible:
                measurements.append(msr)
                break
    print(f"  {len(measurements)} measurements simulated in {time.perf_counter() - t0:.1f}s")

    if not measurements:
        print("ERROR: No station saw the spacecraft. Exiting.")
        raise typer.Exit(code=1)

    # ── Stage 3: Filtering ───────────────────────────────────────────────
    print("\n── Stage 3: Filtering ──")
    offset = jnp.array([0.5, -0.3, 0.2, 1e-4, -5e-5, 2e-5])
    nominal = truth + offset
    covar = jnp.diag(jnp.array([10.0, 10.0, 10.0, 1e-4, 1e-4, 1e-4]))
    noise = jnp.diag(jnp.array([max(range_noise, 1e-3) ** 2, max(range_rate_noise, 1e-6) ** 2]))
    kf = KF.no_snc(Estimate.from_covar(nominal, covar), noise)
    prop = Propagator(dynamics, nominal, PropagatorConfig(step_size=timestep))
    trigger = StdEkfTrigger(ekf_after, 3600.0) if ekf_after > 0 else None
    od = ODProcess(prop, kf, stations, num_expected_msr=len(measurements), trigger=trigger)

    t0 = time.perf_counter()
    od.process_measurements(measurements)
    print(f"  First pass: {len(od.estimates)} estimates in {time.perf_counter() - t0:.1f}s")

    if iterate:
        t0 = time.perf_counter()
        od.iterate(measurements)
        print(f"  Iteration: {len(od.estimates)} estimates in {time.perf_counter() - t0:.1f}s")

    # ── Stage 4: Results ─────────────────────────────────────────────────
    print("\n── Stage 4: Results ──")
    final = od.estimates[-1]
    truth_final = Propagator(dynamics, truth, PropagatorConfig(step_size=timestep, track_stm=False))
    truth_final = truth_final.until_time_elapsed(final.epoch - start)
    error = final.state.orbit.position - truth_final.position
    sigma = jnp.sqrt(jnp.diag(final.covar)[:3])
    print(f"  Final epoch: {final.epoch}")
    print(f"  Position error: {float(jnp.linalg.norm(error)) * 1e3:.3f} m")
    print(f"  Position 1-sigma: {[round(float(s) * 1e3, 3) for s in sigma]} m")

    write_csv(estimates_to_dataframe(od.estimates), output / "estimates.csv")
    write_csv(residuals_to_dataframe(od.residuals), output / "residuals.csv")
    print(f"  Wrote {output / 'estimates.csv'} and {output / 'residuals.csv'}")

    print("\nDone.")


if __name__ == "__main__":
    typer.run(main)
