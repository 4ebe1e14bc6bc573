"""Tests for cosmojax.od.export."""

import jax.numpy as jnp
import polars as pl
import pytest

from cosmojax import GM_EARTH, Epoch, Orbit
from cosmojax.frames import Celestial
from cosmojax.od import (
    EpochFormat,
    Estimate,
    Residual,
    estimates_to_dataframe,
    residuals_to_dataframe,
    write_csv,
)

EPOCH = Epoch(2020, 1, 1)
EARTH = Celestial(name="Earth J2000", gm=GM_EARTH)


def _estimates(count=3, **kwargs):
    out = []
    for i in range(count):
        nominal = Orbit.cartesian(7000.0, 0.0, 0.0, 0.0, 7.5, 0.0, EPOCH + 60.0 * i, EARTH)
        out.append(Estimate(nominal, jnp.full(6, float(i)), 4.0 * jnp.eye(6), 4.0 * jnp.eye(6), jnp.eye(6),
                            **kwargs))
    return out


class TestEstimatesToDataFrame:
    def test_columns(self):
        df = estimates_to_dataframe(_estimates())
        assert df.shape == (3, 13)
        assert df.columns[0] == "Gregorian TAI"
        assert df.schema["Gregorian TAI"] == pl.Utf8
        assert df["state_2"].to_list() == [0.0, 1.0, 2.0]
        assert df["exptd_val_0"].to_list() == pytest.approx([2.0, 2.0, 2.0])

    def test_numeric_epochs(self):
        df = estimates_to_dataframe(_estimates(epoch_fmt=EpochFormat.MJD_TAI))
        assert df.schema["MJD TAI"] == pl.Float64
        assert df["MJD TAI"][1] - df["MJD TAI"][0] == pytest.approx(60.0 / 86400.0)

    def test_empty(self):
        assert estimates_to_dataframe([]).is_empty()

    def test_mixed_formats_rejected(self):
        mixed = _estimates(1) + _estimates(1, epoch_fmt=EpochFormat.JDE_TT)
        with pytest.raises(ValueError, match="columns"):
            estimates_to_dataframe(mixed)


class TestResidualsToDataFrame:
    def test_columns(self):
        residuals = [Residual(EPOCH + 60.0 * i, jnp.array([1.0, 2.0]), jnp.array([0.1, 0.2])) for i in range(4)]
        df = residuals_to_dataframe(residuals)
        assert df.columns == ["Gregorian TAI", "prefit_0", "prefit_1", "postfit_0", "postfit_1"]
        assert df.height == 4
        assert df["postfit_1"].to_list() == pytest.approx([0.2] * 4)


class TestWriteCsv:
    def test_creates_parents(self, tmp_path):
        path = write_csv(estimates_to_dataframe(_estimates()), tmp_path / "out" / "estimates.csv")
        assert path.exists()
        frame = pl.read_csv(path)
        assert frame.height == 3
        assert "state_0" in frame.columns
