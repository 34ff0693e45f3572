"""
Workload generator tests: grid shape, labels and reproducible values.
"""

import pytest

from src.workload import generator


class TestHeader:
    def test_labels_in_order(self):
        assert generator.header(4) == ["C1", "C2", "C3", "C4"]

    @pytest.mark.parametrize("cols", [1, 7, 100])
    def test_length_matches_cols(self, cols):
        assert len(generator.header(cols)) == cols

    def test_rejects_zero_cols(self):
        with pytest.raises(ValueError):
            generator.header(0)


class TestDataRow:
    def test_values(self):
        assert generator.data_row(3, 4) == [3001, 3002, 3003, 3004]

    def test_entry_formula(self):
        row = generator.data_row(17, 50)
        assert len(row) == 50
        assert all(v == 17 * 1000 + c for c, v in enumerate(row, start=1))

    def test_reproducible(self):
        assert generator.data_row(42, 10) == generator.data_row(42, 10)

    @pytest.mark.parametrize("row_index, cols", [(0, 5), (-1, 5), (5, 0)])
    def test_rejects_non_positive(self, row_index, cols):
        with pytest.raises(ValueError):
            generator.data_row(row_index, cols)


class TestIterRows:
    def test_header_then_data(self):
        rows = list(generator.iter_rows(3, 2))
        assert rows == [["C1", "C2"], [1001, 1002], [2001, 2002], [3001, 3002]]

    def test_cell_count_matches_grid(self):
        rows = list(generator.iter_rows(20, 5))
        assert sum(len(r) for r in rows) == generator.cell_count(20, 5) == 105

    def test_rejects_zero_rows(self):
        with pytest.raises(ValueError):
            list(generator.iter_rows(0, 5))
