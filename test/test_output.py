"""Tests for the `pdoskit.output` module."""

import h5py
import numpy as np
import pytest

import pdoskit
from pdoskit.grid import EnergyGrid
from pdoskit.output import DOSCurve, DOSResult, spin_channel_labels


@pytest.fixture(scope="module")
def result(two_spin_dataset):
    """Result of a spin-polarized run with two PDOS plots."""
    settings = pdoskit.Settings(
        sigma=0.1,
        nedos=200,
        pdos=(pdoskit.PlotDefinition(name="s", orbits="s"), pdoskit.PlotDefinition(name="d", orbits="4..9")),
    )
    return pdoskit.run(settings, two_spin_dataset)


def test_spin_channel_labels():
    """Test `spin_channel_labels`."""
    assert spin_channel_labels(1, [0]) == ("all",)
    assert spin_channel_labels(2, [0, 1]) == ("up", "down")
    assert spin_channel_labels(2, [1]) == ("down",)


def test_curve_read_only(result):
    """Test that curve data cannot be modified."""
    with pytest.raises(ValueError):
        result["total"].dos[0, 0] = 1.0


def test_curve_validation():
    """Test that curve shapes must match the grid and channel labels."""
    grid = EnergyGrid.from_bounds(-1.0, 1.0, 5)
    with pytest.raises(ValueError):
        DOSCurve("x", grid, np.zeros((1, 4)), channels=("all",))
    with pytest.raises(ValueError):
        DOSCurve("x", grid, np.zeros((2, 5)), channels=("all",))
    assert DOSCurve("x", grid, np.zeros(5), channels=("all",)).dos.shape == (1, 5)


def test_summed(result):
    """Test `DOSCurve.summed`."""
    total = result["total"]
    summed = total.summed()
    assert summed.channels == ("sum",)
    np.testing.assert_allclose(summed.dos[0], total.dos[0] + total.dos[1])
    assert summed.summed() is summed


def test_result_lookup(result):
    """Test name-based access to the curves."""
    assert len(result) == 3
    assert result.names == ("total", "s", "d")
    assert "d" in result and "p" not in result
    assert result["s"].name == "s"
    with pytest.raises(KeyError):
        result["p"]  # pylint: disable=pointless-statement
    assert all(curve.grid is result.grid for curve in result)


def test_as_array(result):
    """Test the column layout of `DOSResult.as_array`."""
    array = result.as_array()
    assert array.shape == (200, 7)
    assert result.column_labels() == ["energy", "total_up", "total_down", "s_up", "s_down", "d_up", "d_down"]
    np.testing.assert_array_equal(array[:, 0], result.energies)
    np.testing.assert_array_equal(array[:, 4], result["s"].dos[1])


def test_mismatched_grids():
    """Test that a result needs a single shared grid and unique names."""
    grid = EnergyGrid.from_bounds(-1.0, 1.0, 5)
    other = EnergyGrid.from_bounds(-1.0, 2.0, 5)
    with pytest.raises(ValueError):
        DOSResult(grid, [DOSCurve("a", other, np.zeros(5), channels=("all",))])
    with pytest.raises(ValueError):
        DOSResult(grid, [DOSCurve("a", grid, np.zeros(5), ("all",)), DOSCurve("a", grid, np.ones(5), ("all",))])


def test_to_hdf(result, tmp_path):
    """Test `DOSResult.to_hdf`."""
    with h5py.File(tmp_path / "dos.h5", "w") as hdf:
        result.to_hdf(hdf)
    with h5py.File(tmp_path / "dos.h5", "r") as hdf:
        np.testing.assert_array_equal(hdf["energies"][()], result.energies)
        assert list(hdf["curves"].attrs["names"]) == ["total", "s", "d"]
        np.testing.assert_array_equal(hdf["curves/d"][()], result["d"].dos)
        assert list(hdf["curves/d"].attrs["channels"]) == ["up", "down"]
        assert hdf["curves/d"].attrs["factor"] == 1.0


def test_to_hdf_plot_names(dataset, tmp_path):
    """Test that every accepted plot name is written as a direct child of `curves`."""
    with pytest.raises(pdoskit.ConfigurationError, match="'/'"):
        pdoskit.PlotDefinition(name="fe/d")
    settings = pdoskit.Settings(nedos=50, pdos=(pdoskit.PlotDefinition(name="Fe d-eg"),))
    result = pdoskit.run(settings, dataset)
    with h5py.File(tmp_path / "dos.h5", "w") as hdf:
        result.to_hdf(hdf)
    with h5py.File(tmp_path / "dos.h5", "r") as hdf:
        assert sorted(hdf["curves"].keys()) == ["Fe d-eg", "total"]
