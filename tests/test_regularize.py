"""Tests for regularize."""

import logging
from datetime import datetime

import numpy as np
import pandas as pd
import pytest

from cdm_wrangle import extract
from cdm_wrangle.core.exceptions import ConfigurationError
from cdm_wrangle.etl.regularize import regularize, time_grid


def sparse_table(rows) -> pd.DataFrame:
    table = pd.DataFrame(rows, columns=["visit_occurrence_id", "time", "heart_rate"])
    return table.astype({"visit_occurrence_id": "int64", "time": "float64", "heart_rate": "float64"})


class TestTimeGrid:
    """Tests for time_grid."""

    def test_inclusive_bounds(self) -> None:
        assert time_grid(0.0, 4.0, 1.0).tolist() == [0.0, 1.0, 2.0, 3.0, 4.0]

    def test_fractional_cadence(self) -> None:
        """Steps of 0.1 land exactly on the rounded bucket values."""
        grid = time_grid(0.0, 0.3, 0.1)
        assert grid.tolist() == [0.0, 0.1, 0.2, 0.3]

    def test_negative_lower_bound(self) -> None:
        assert time_grid(-2.0, 1.0, 1.0).tolist() == [-2.0, -1.0, 0.0, 1.0]

    def test_unrounded_lower_bound_is_kept_exactly(self) -> None:
        """An exact minimum time stays the first grid step, bit for bit."""
        lower = -43 / 60
        grid = time_grid(lower, 2.0, 1.0)
        assert grid[0] == lower
        assert grid[1:].tolist() == pytest.approx([lower + 1, lower + 2])


class TestRegularize:
    """Tests for regularize."""

    def test_fills_gaps_with_na(self) -> None:
        """Times 1, 2 and 4 become 0 to 4 with NA where nothing was recorded."""
        table = sparse_table([(1, 1.0, 80.0), (1, 2.0, 82.0), (1, 4.0, 90.0)])
        regular = regularize(table, cadence=1)

        assert regular["time"].tolist() == [0.0, 1.0, 2.0, 3.0, 4.0]
        assert pd.isna(regular.loc[0, "heart_rate"])
        assert pd.isna(regular.loc[3, "heart_rate"])
        assert regular.loc[4, "heart_rate"] == 90.0
        assert list(regular.columns) == list(table.columns)

    def test_steps_equal_cadence(self) -> None:
        table = sparse_table([(1, 0.0, 1.0), (1, 3.0, 2.0)])
        regular = regularize(table, cadence=0.5)
        assert np.allclose(np.diff(regular["time"]), 0.5)
        assert len(regular) == 7

    def test_each_visit_has_its_own_range(self) -> None:
        table = sparse_table([(1, 2.0, 1.0), (2, 1.0, 2.0), (2, 3.0, 3.0)])
        regular = regularize(table)

        assert regular[regular["visit_occurrence_id"] == 1]["time"].tolist() == [0.0, 1.0, 2.0]
        assert regular[regular["visit_occurrence_id"] == 2]["time"].tolist() == [0.0, 1.0, 2.0, 3.0]

    def test_keeps_visit_order(self) -> None:
        table = sparse_table([(7, 1.0, 1.0), (3, 1.0, 2.0)])
        regular = regularize(table)
        assert regular["visit_occurrence_id"].tolist() == [7, 7, 3, 3]

    def test_negative_times_extend_grid(self) -> None:
        table = sparse_table([(1, -2.0, 50.0), (1, 1.0, 60.0)])
        regular = regularize(table)
        assert regular["time"].tolist() == [-2.0, -1.0, 0.0, 1.0]
        assert regular.loc[0, "heart_rate"] == 50.0

    def test_only_negative_times_reach_zero(self) -> None:
        table = sparse_table([(1, -3.0, 50.0)])
        regular = regularize(table)
        assert regular["time"].tolist() == [-3.0, -2.0, -1.0, 0.0]

    def test_dtypes_preserved(self) -> None:
        table = sparse_table([(1, 1.0, 80.0)])
        regular = regularize(table)
        assert regular["visit_occurrence_id"].dtype == np.int64
        assert regular["time"].dtype == np.float64

    def test_off_grid_rows_dropped(self, caplog) -> None:
        table = sparse_table([(1, 0.0, 1.0), (1, 1.5, 2.0), (1, 2.0, 3.0)])
        with caplog.at_level(logging.WARNING, logger="cdm_wrangle"):
            regular = regularize(table, cadence=1)

        assert regular["time"].tolist() == [0.0, 1.0, 2.0]
        assert 2.0 not in regular["heart_rate"].tolist()
        assert "were dropped" in caplog.text

    def test_empty_table(self) -> None:
        table = sparse_table([])
        regular = regularize(table)
        assert regular.empty
        assert list(regular.columns) == list(table.columns)

    @pytest.mark.parametrize("cadence", [0, -1, float("nan"), True, "1"])
    def test_bad_cadence(self, cadence) -> None:
        table = sparse_table([(1, 1.0, 80.0)])
        with pytest.raises(ConfigurationError):
            regularize(table, cadence=cadence)

    def test_timestamp_table_rejected(self) -> None:
        table = pd.DataFrame({
            "visit_occurrence_id": [1],
            "time": pd.to_datetime(["2020-01-01 01:00"]),
            "heart_rate": [80.0],
        })
        with pytest.raises(ConfigurationError, match="elapsed hours"):
            regularize(table)

    def test_missing_key_columns(self) -> None:
        with pytest.raises(ConfigurationError, match="key columns"):
            regularize(pd.DataFrame({"time": [1.0]}))


class TestRegularizeExtracted:
    """Tests for regularize on tables produced by extract."""

    def test_exact_times_keep_earliest_row(self, engine, cdm, resolver, caplog) -> None:
        """A pre-admission event extracted with cadence 0 anchors the grid."""
        cdm.visit(1, datetime(2020, 1, 1))
        cdm.measurement(1, 10, datetime(2019, 12, 31, 23, 17), value=50.0)
        cdm.measurement(1, 10, datetime(2020, 1, 1, 2, 0), value=60.0)

        table = extract(engine, concepts=[10], cadence=0, resolver=resolver)
        with caplog.at_level(logging.WARNING, logger="cdm_wrangle"):
            regular = regularize(table, cadence=1)

        assert regular["time"].tolist() == pytest.approx([-43 / 60, 17 / 60, 77 / 60])
        assert regular.loc[0, "10"] == 50.0
        assert regular["10"].isna().tolist() == [False, True, True]
        # 2.0 is not a whole number of hours from the anchor
        assert "1 rows have times" in caplog.text

    def test_rounded_extract_round_trips(self, engine, cdm, resolver) -> None:
        cdm.visit(1, datetime(2020, 1, 1))
        cdm.measurement(1, 10, datetime(2020, 1, 1, 0, 54), value=70.0)
        cdm.measurement(1, 10, datetime(2020, 1, 1, 0, 21), value=72.0)

        table = extract(engine, concepts=[10], cadence=0.1, resolver=resolver)
        regular = regularize(table, cadence=0.1)

        assert len(regular) == 10
        assert regular.set_index("time").loc[0.4, "10"] == 72.0
        assert regular.set_index("time").loc[0.9, "10"] == 70.0
