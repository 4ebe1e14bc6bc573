import math

import pytest

from cosmojax.constants import TT_TAI
from cosmojax.epoch import Epoch, tdb_minus_tt


# ──────────────────────────────────────────────
# Construction
# ──────────────────────────────────────────────


class TestEpochConstruction:
    def test_epoch_from_date(self):
        epc = Epoch(2000, 1, 1, 12, 0, 0.0)
        assert epc.caldate()[:5] == (2000, 1, 1, 12, 0)
        assert epc.caldate()[5] == pytest.approx(0.0, abs=1e-9)

    def test_epoch_from_date_defaults(self):
        epc = Epoch(2020, 1, 1)
        assert epc.caldate()[:5] == (2020, 1, 1, 0, 0)

    def test_epoch_from_string_iso(self):
        assert Epoch("2018-01-01T12:34:56Z") == Epoch(2018, 1, 1, 12, 34, 56.0)

    def test_epoch_from_string_tai_suffix(self):
        assert Epoch("2018-01-01T12:00:00 TAI") == Epoch(2018, 1, 1, 12)

    def test_epoch_from_string_fractional_seconds(self):
        epc = Epoch("2018-01-01T00:00:01.25Z")
        assert epc - Epoch(2018, 1, 1) == pytest.approx(1.25, abs=1e-9)

    def test_epoch_from_string_invalid(self):
        with pytest.raises(ValueError, match="ISO 8601"):
            Epoch("01/01/2018")

    def test_epoch_copy(self):
        epc = Epoch(2020, 5, 17, 3, 2, 1.0)
        assert Epoch(epc) == epc

    def test_epoch_invalid_args(self):
        with pytest.raises(ValueError):
            Epoch()
        with pytest.raises(ValueError):
            Epoch(1.5)


# ──────────────────────────────────────────────
# Time scales
# ──────────────────────────────────────────────


class TestEpochTimeScales:
    def test_jd_j2000(self):
        assert Epoch(2000, 1, 1, 12).jd() == pytest.approx(2451545.0, abs=1e-9)

    def test_mjd(self):
        assert Epoch(2000, 1, 1).mjd() == pytest.approx(51544.0, abs=1e-9)

    def test_jde_tt_offset(self):
        epc = Epoch(2010, 6, 1)
        assert (epc.jde_tt() - epc.jd()) * 86400.0 == pytest.approx(TT_TAI, abs=1e-5)

    def test_tdb_minus_tt_bounded(self):
        for jde in (2451545.0, 2455000.0, 2458849.5):
            assert abs(tdb_minus_tt(jde)) < 2e-3

    def test_from_jde_tdb_roundtrip(self):
        epc = Epoch.from_jde_tdb(2458849.5)
        assert epc.jde_tdb() == pytest.approx(2458849.5, abs=1e-9)

    def test_from_jde_tai_roundtrip(self):
        epc = Epoch.from_jde_tai(2458849.75)
        assert epc.jd() == pytest.approx(2458849.75, abs=1e-9)

    def test_tdb_days_since_j2000(self):
        epc = Epoch.from_jde_tdb(2451545.0 + 100.0)
        assert epc.tdb_days_since_j2000() == pytest.approx(100.0, abs=1e-9)
        assert epc.tdb_centuries_since_j2000() == pytest.approx(100.0 / 36525.0, abs=1e-12)


# ──────────────────────────────────────────────
# Arithmetic
# ──────────────────────────────────────────────


class TestEpochArithmetic:
    def test_add_seconds(self):
        epc = Epoch(2020, 1, 1) + 3600.0
        assert epc.caldate()[3] == 1

    def test_add_day_rollover(self):
        epc = Epoch(2020, 1, 31, 23, 59, 0.0) + 120.0
        assert epc.caldate()[:5] == (2020, 2, 1, 0, 1)

    def test_radd(self):
        assert 10.0 + Epoch(2020, 1, 1) == Epoch(2020, 1, 1, 0, 0, 10.0)

    def test_subtract_seconds(self):
        assert Epoch(2020, 1, 1) - 60.0 == Epoch(2019, 12, 31, 23, 59, 0.0)

    def test_subtract_epochs(self):
        assert Epoch(2020, 1, 2) - Epoch(2020, 1, 1) == pytest.approx(86400.0)
        assert Epoch(2020, 1, 1) - Epoch(2020, 1, 2) == pytest.approx(-86400.0)

    def test_kahan_many_small_additions(self):
        start = Epoch(2024, 1, 1)
        epc = start
        for _ in range(10000):
            epc = epc + 0.001
        assert epc - start == pytest.approx(10.0, abs=1e-8)


# ──────────────────────────────────────────────
# Comparison and representation
# ──────────────────────────────────────────────


class TestEpochComparison:
    def test_equality_within_tolerance(self):
        assert Epoch(2020, 1, 1) == Epoch(2020, 1, 1) + 1e-12
        assert Epoch(2020, 1, 1) != Epoch(2020, 1, 1) + 1e-3

    def test_ordering(self):
        early = Epoch(2020, 1, 1)
        late = early + 1.0
        assert early < late
        assert late > early
        assert early <= early + 1e-12
        assert late >= early

    def test_not_equal_to_non_epoch(self):
        assert Epoch(2020, 1, 1) != 2458849.5

    def test_str_format(self):
        assert str(Epoch(2020, 1, 1, 12, 30, 15.5)) == "2020-01-01T12:30:15.500 TAI"

    def test_unhashable(self):
        epoch = Epoch(2020, 1, 1)
        with pytest.raises(TypeError):
            hash(epoch)
        with pytest.raises(TypeError):
            {epoch: 1}

    def test_sorting(self):
        epochs = [Epoch(2020, 1, 3), Epoch(2020, 1, 1), Epoch(2020, 1, 2)]
        assert [e.caldate()[2] for e in sorted(epochs)] == [1, 2, 3]
        assert math.isclose(max(epochs) - min(epochs), 2 * 86400.0)
