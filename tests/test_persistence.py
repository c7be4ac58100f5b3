"""Tests for text and binary grid files."""

import io

import pytest
import numpy as np
from numpy.testing import assert_allclose

from sgrid.config import FormatCorruptionError
from sgrid.engines.hierarchical import HierarchicalGrid
from sgrid.engines.local_polynomial_grid import LocalPolynomialGrid
from sgrid.engines.sequence_grid import SequenceGrid
from sgrid.engines.wavelet_grid import WaveletGrid
from sgrid.grid import SparseGrid


def reread(grid, tmp_path, binary):
    filename = tmp_path / ("grid.sgb" if binary else "grid.sg")
    grid.write(filename, binary=binary)
    restored = SparseGrid(acceleration="none")
    restored.read(filename)
    return restored


def assert_same_grid(actual, expected):
    assert actual.get_family() is expected.get_family()
    assert actual.get_num_dimensions() == expected.get_num_dimensions()
    assert actual.get_num_outputs() == expected.get_num_outputs()
    assert actual.get_num_loaded() == expected.get_num_loaded()
    assert actual.get_num_needed() == expected.get_num_needed()
    assert_allclose(actual.get_points(), expected.get_points(), rtol=0, atol=0)
    assert_allclose(actual.get_quadrature_weights(), expected.get_quadrature_weights(), rtol=0, atol=1e-15)
    assert_allclose(actual.get_level_limits(), expected.get_level_limits())


@pytest.fixture(params=[False, True], ids=["text", "binary"])
def binary(request):
    return request.param


class TestRoundTrip:
    """Tests for write followed by read."""

    def test_every_family(self, any_grid, tmp_path, binary):
        """Test loaded grids of every family survive a round trip."""
        restored = reread(any_grid, tmp_path, binary)
        assert_same_grid(restored, any_grid)
        x = np.array([[0.2, 0.3], [0.9, 0.1]])
        assert_allclose(restored.evaluate_batch(x), any_grid.evaluate_batch(x), atol=1e-14)
        assert_allclose(restored.integrate(), any_grid.integrate(), atol=1e-14)

    def test_unloaded_grid(self, cc_grid_2d, tmp_path, binary):
        """Test a grid with only needed points."""
        assert_same_grid(reread(cc_grid_2d, tmp_path, binary), cc_grid_2d)

    def test_empty_grid(self, tmp_path, binary):
        """Test an empty grid reads back empty."""
        restored = reread(SparseGrid(), tmp_path, binary)
        assert restored.empty()

    def test_transforms_and_limits(self, tmp_path, binary, loader):
        """Test domain, conformal map and level limits are stored."""
        grid = SparseGrid(acceleration="none")
        grid.make_sequence_grid(2, 1, 4, "level", "leja", level_limits=[3, 2])
        grid.set_domain_transform([-3.0, 0.5], [1.0, 2.5])
        grid.set_conformal_transform_asin([4, 2])
        loader(grid, lambda x: np.sin(x[0]) + x[1])
        restored = reread(grid, tmp_path, binary)
        assert_same_grid(restored, grid)
        lower, upper = restored.get_domain_transform()
        assert_allclose(lower, [-3.0, 0.5])
        assert_allclose(upper, [1.0, 2.5])
        assert list(restored.get_conformal_transform_asin()) == [4, 2]

    def test_pending_refinement(self, leja_grid, tmp_path, binary, loader):
        """Test needed points of a refinement survive."""
        loader(leja_grid, lambda x: np.exp(x[0] * x[1]))
        leja_grid.set_surplus_refinement(1.0e-8)
        restored = reread(leja_grid, tmp_path, binary)
        assert_same_grid(restored, leja_grid)
        assert_allclose(restored.get_needed_points(), leja_grid.get_needed_points(), rtol=0, atol=0)

    def test_pending_global_update(self, cc_grid_2d, tmp_path, binary, loader):
        """Test updated tensors of a global grid survive."""
        loader(cc_grid_2d, lambda x: x[0] * x[1])
        cc_grid_2d.update_global_grid(4, "level")
        restored = reread(cc_grid_2d, tmp_path, binary)
        loader(restored, lambda x: x[0] * x[1])
        loader(cc_grid_2d, lambda x: x[0] * x[1])
        assert_allclose(restored.get_quadrature_weights(), cc_grid_2d.get_quadrature_weights())

    def test_construction_in_progress(self, tmp_path, binary):
        """Test a grid under construction resumes after a round trip."""
        grid = SparseGrid(acceleration="none")
        grid.make_local_polynomial_grid(2, 1, 2)
        grid.begin_construction()
        points = grid.get_candidate_construction_points_surplus(1.0e-3)
        for x in points[1:]:
            grid.load_constructed_point(x, [x[0] + x[1]])
        restored = reread(grid, tmp_path, binary)
        assert restored.is_using_construction()
        assert restored.get_num_loaded() == 0
        restored.load_constructed_point(points[0], [0.0])
        assert restored.get_num_loaded() == len(points)
        assert_allclose(restored.evaluate([0.25, -0.5]), [-0.25], atol=1e-14)

    def test_global_construction_in_progress(self, cc_grid_2d, tmp_path, binary):
        """Test pending global tensors resume after a round trip."""
        cc_grid_2d.begin_construction()
        points = cc_grid_2d.get_candidate_construction_points("level")
        for x in points[1:]:
            cc_grid_2d.load_constructed_point(x, [1.0])
        restored = reread(cc_grid_2d, tmp_path, binary)
        restored.load_constructed_point(points[0], [1.0])
        restored.finish_construction()
        assert restored.get_num_loaded() == 29
        assert_allclose(restored.integrate(), [4.0])

    def test_streams(self, any_grid, binary):
        """Test write_stream and read_stream on byte buffers."""
        buffer = io.BytesIO()
        any_grid.write_stream(buffer, binary=binary)
        buffer.seek(0)
        restored = SparseGrid(acceleration="none")
        restored.read_stream(buffer)
        assert_same_grid(restored, any_grid)

    def test_full_precision(self, leja_grid, tmp_path, binary):
        """Test values are stored without rounding."""
        leja_grid.load_needed_points(np.full(10, 1.0 / 3.0))
        restored = reread(leja_grid, tmp_path, binary)
        assert restored.get_hierarchical_coefficients()[0, 0] == leja_grid.get_hierarchical_coefficients()[0, 0]


class TestLayout:
    """Tests for the file layouts."""

    def test_text_header(self, cc_grid_2d, tmp_path):
        """Test the text header and end marker."""
        filename = tmp_path / "grid.sg"
        cc_grid_2d.write(filename)
        lines = filename.read_text().splitlines()
        assert lines[0] == f"SGRID {SparseGrid.get_version()}"
        assert lines[1].startswith("WARNING")
        assert lines[2] == "global"
        assert lines[-1] == "SGRID end"
        assert "canonical" in lines and "static" in lines

    def test_binary_magic(self, cc_grid_2d, tmp_path):
        """Test binary files start with the magic bytes."""
        filename = tmp_path / "grid.sgb"
        cc_grid_2d.write(filename, binary=True)
        data = filename.read_bytes()
        assert data.startswith(b"SGB1")
        assert data.endswith(b"e")

    def test_string_path(self, leja_grid, tmp_path):
        """Test plain string file names."""
        filename = str(tmp_path / "grid.sg")
        leja_grid.write(filename)
        restored = SparseGrid()
        restored.read(filename)
        assert restored.is_sequence()


class TestCorruption:
    """Tests for malformed files; the target grid must stay unchanged."""

    def _assert_rejected(self, grid, tmp_path, data):
        filename = tmp_path / "bad.sg"
        if isinstance(data, str):
            filename.write_text(data)
        else:
            filename.write_bytes(data)
        with pytest.raises(FormatCorruptionError):
            grid.read(filename)
        assert grid.is_global()
        assert grid.get_num_needed() == 29

    def _text(self, grid, tmp_path):
        filename = tmp_path / "good.sg"
        grid.write(filename)
        return filename.read_text().splitlines()

    def test_empty_file(self, cc_grid_2d, tmp_path):
        """Test an empty file."""
        self._assert_rejected(cc_grid_2d, tmp_path, b"")

    def test_not_a_grid(self, cc_grid_2d, tmp_path):
        """Test arbitrary text and bytes."""
        self._assert_rejected(cc_grid_2d, tmp_path, "hello world\n")
        self._assert_rejected(cc_grid_2d, tmp_path, b"\xff\xfe\x00garbage")

    @pytest.mark.parametrize("binary", [False, True])
    def test_truncated(self, cc_grid_2d, leja_grid, tmp_path, binary, loader):
        """Test a file cut in half."""
        loader(leja_grid, lambda x: x[0])
        filename = tmp_path / "leja.sg"
        leja_grid.write(filename, binary=binary)
        data = filename.read_bytes()
        self._assert_rejected(cc_grid_2d, tmp_path, data[: len(data) // 2])

    def test_unknown_family(self, cc_grid_2d, leja_grid, tmp_path):
        """Test an unknown family tag."""
        lines = self._text(leja_grid, tmp_path)
        lines[2] = "hexagonal"
        self._assert_rejected(cc_grid_2d, tmp_path, "\n".join(lines) + "\n")

    def test_unknown_block(self, cc_grid_2d, leja_grid, tmp_path):
        """Test an unknown trailing block name."""
        lines = self._text(leja_grid, tmp_path)
        lines[lines.index("canonical")] = "somewhere"
        self._assert_rejected(cc_grid_2d, tmp_path, "\n".join(lines) + "\n")

    def test_bad_number(self, cc_grid_2d, leja_grid, tmp_path):
        """Test a word in the payload."""
        lines = self._text(leja_grid, tmp_path)
        lines[3] = "two"
        self._assert_rejected(cc_grid_2d, tmp_path, "\n".join(lines) + "\n")

    @pytest.mark.parametrize("version", ["3.2", "4.0", "1.0", "three"])
    def test_unsupported_versions(self, cc_grid_2d, leja_grid, tmp_path, version):
        """Test newer and retired versions are rejected."""
        lines = self._text(leja_grid, tmp_path)
        lines[0] = f"SGRID {version}"
        self._assert_rejected(cc_grid_2d, tmp_path, "\n".join(lines) + "\n")


class TestOlderVersions:
    """Tests for files written before the trailing blocks existed."""

    def test_truncated_version_2_file(self, leja_grid, tmp_path, loader):
        """Test a 2.0 file ending right after the payload."""
        loader(leja_grid, lambda x: x[0] - x[1])
        filename = tmp_path / "grid.sg"
        leja_grid.write(filename)
        lines = filename.read_text().splitlines()
        lines[0] = "SGRID 2.0"
        lines = lines[: lines.index("canonical")] + ["SGRID end"]
        filename.write_text("\n".join(lines) + "\n")

        restored = SparseGrid(acceleration="none")
        restored.read(filename)
        assert restored.is_sequence()
        assert not restored.is_set_domain_transform()
        assert not restored.is_set_conformal_transform_asin()
        assert_allclose(restored.evaluate([0.5, 0.25]), [0.25], atol=1e-14)

    def test_version_3_0_without_construction_block(self, cc_grid_2d, tmp_path):
        """Test a 3.0 file stopping after the level limits block."""
        filename = tmp_path / "grid.sg"
        cc_grid_2d.write(filename)
        lines = filename.read_text().splitlines()
        lines[0] = "SGRID 3.0"
        lines = lines[: lines.index("static")] + ["SGRID end"]
        filename.write_text("\n".join(lines) + "\n")

        restored = SparseGrid(acceleration="none")
        restored.read(filename)
        assert restored.get_num_needed() == 29
        assert not restored.is_using_construction()

    def test_version_2_file_with_domain_block(self, cc_grid_2d, tmp_path):
        """Test a 2.0 file may carry the domain block."""
        cc_grid_2d.set_domain_transform([0.0, 1.0], [2.0, 3.0])
        filename = tmp_path / "grid.sg"
        cc_grid_2d.write(filename)
        lines = filename.read_text().splitlines()
        lines[0] = "SGRID 2.0"
        lines = lines[: lines.index("nonconformal")] + ["SGRID end"]
        filename.write_text("\n".join(lines) + "\n")

        restored = SparseGrid(acceleration="none")
        restored.read(filename)
        lower, upper = restored.get_domain_transform()
        assert_allclose(lower, [0.0, 1.0])
        assert_allclose(upper, [2.0, 3.0])

    @pytest.mark.parametrize("version", ["2.0", "3.0"])
    def test_blocks_newer_than_the_header_are_rejected(self, cc_grid_2d, tmp_path, version):
        """Test blocks introduced after the declared version are corruption."""
        filename = tmp_path / "grid.sg"
        cc_grid_2d.write(filename)
        lines = filename.read_text().splitlines()
        lines[0] = f"SGRID {version}"
        filename.write_text("\n".join(lines) + "\n")

        restored = SparseGrid(acceleration="none")
        with pytest.raises(FormatCorruptionError):
            restored.read(filename)
        assert restored.empty()


class TestRuleHooks:
    """Tests for the per family rule persistence hooks."""

    def test_hooks_are_abstract(self):
        """Test hierarchical families must provide both rule hooks."""
        assert {"_write_rule", "_read_rule"} <= HierarchicalGrid.__abstractmethods__
        with pytest.raises(TypeError):
            HierarchicalGrid(1, 1, None)

    @pytest.mark.parametrize("engine", [SequenceGrid, LocalPolynomialGrid, WaveletGrid])
    def test_families_implement_hooks(self, engine):
        """Test every hierarchical family is concrete."""
        assert not engine.__abstractmethods__
