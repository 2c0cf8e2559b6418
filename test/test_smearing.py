"""Tests for the `pdoskit.smearing` module."""

import numpy as np
import pytest
import scipy as sp

from pdoskit.exceptions import ConfigurationError, DataIntegrityError, NumericOverflowError
from pdoskit.smearing import SAMPLE_BLOCK_SIZE, Gaussian, Lorentzian, SmearingSpec, broaden, kernel_from_name


@pytest.mark.parametrize("kernel_cls", [Gaussian, Lorentzian])
def test_density_peak(kernel_cls):
    """Test `Kernel.density` is symmetric and peaks at zero offset."""
    kernel = kernel_cls(width=0.2)
    x = np.linspace(-1.0, 1.0, 201)
    y = kernel.density(x)
    assert np.argmax(y) == 100
    np.testing.assert_allclose(y, y[::-1])


def test_gaussian_formula():
    """Test the Gaussian kernel against its closed form."""
    sigma = 0.05
    x = np.linspace(-0.3, 0.3, 61)
    expected = np.exp(-(x**2) / (2 * sigma**2)) / (sigma * np.sqrt(2 * np.pi))
    np.testing.assert_allclose(Gaussian(width=sigma).density(x), expected, rtol=1e-12)


def test_lorentzian_formula():
    """Test the Lorentzian kernel against its closed form."""
    gamma = 0.1
    x = np.linspace(-1.0, 1.0, 41)
    expected = gamma / np.pi / (x**2 + gamma**2)
    np.testing.assert_allclose(Lorentzian(width=gamma).density(x), expected, rtol=1e-12)


def test_gaussian_normalization():
    """Test that the Gaussian kernel integrates to one."""
    sigma = 0.05
    x = np.linspace(-20 * sigma, 20 * sigma, 4001)
    assert sp.integrate.trapezoid(Gaussian(width=sigma).density(x), x) == pytest.approx(1.0, abs=1e-8)


def test_lorentzian_normalization():
    """Test that the Lorentzian kernel integrates to the analytic value on a finite window."""
    gamma, half_window = 0.05, 50.0
    x = np.linspace(-half_window, half_window, 20001)
    expected = 2.0 / np.pi * np.arctan(half_window / gamma)
    assert sp.integrate.trapezoid(Lorentzian(width=gamma).density(x), x) == pytest.approx(expected, rel=1e-3)


@pytest.mark.parametrize("kernel_cls", [Gaussian, Lorentzian])
def test_cutoff(kernel_cls):
    """Test that the cutoff only removes contributions beyond `cutoff * width`."""
    kernel = kernel_cls(width=0.1, cutoff=3.0)
    assert float(kernel.density(0.4)) == 0.0
    assert float(kernel.density(-0.4)) == 0.0
    assert float(kernel.density(0.2)) == pytest.approx(float(kernel_cls(width=0.1).density(0.2)))
    assert float(kernel.density(0.2)) > 0.0


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Gaussian", Gaussian),
        ("gauss", Gaussian),
        ("GAUSSIAN", Gaussian),
        ("Lorentzian", Lorentzian),
        ("lorentz", Lorentzian),
        ("cauchy", Lorentzian),
    ],
)
def test_kernel_from_name(name, expected):
    """Test `kernel_from_name`."""
    assert kernel_from_name(name) is expected


@pytest.mark.parametrize("name", ["tetrahedron", "", "fermi-dirac", 0, None])
def test_unknown_kernel(name):
    """Test that unknown smearing methods are rejected."""
    with pytest.raises(ConfigurationError):
        kernel_from_name(name)


@pytest.mark.parametrize("sigma", [0.0, -0.1, float("nan"), float("inf"), "0.1", True])
def test_invalid_sigma(sigma):
    """Test that `SmearingSpec` rejects invalid widths at construction."""
    with pytest.raises(ConfigurationError):
        SmearingSpec(method="Gaussian", sigma=sigma)


def test_invalid_method():
    """Test that `SmearingSpec` rejects unknown methods at construction."""
    with pytest.raises(ConfigurationError, match="Unknown smearing method"):
        SmearingSpec(method="Methfessel-Paxton", sigma=0.1)


@pytest.mark.parametrize("cutoff", [0.0, -1.0, float("nan")])
def test_invalid_cutoff(cutoff):
    """Test that `SmearingSpec` rejects invalid cutoffs."""
    with pytest.raises(ConfigurationError):
        SmearingSpec(method="Gaussian", sigma=0.1, cutoff=cutoff)


def test_smearing_spec_kernel():
    """Test `SmearingSpec.kernel`."""
    kernel = SmearingSpec(method="lorentz", sigma=0.2, cutoff=10.0).kernel
    assert isinstance(kernel, Lorentzian)
    assert kernel.width == 0.2
    assert kernel.cutoff == 10.0


def test_broaden_sum_of_samples():
    """Test that `broaden` sums the weighted kernel of every sample."""
    spec = SmearingSpec(method="Gaussian", sigma=0.1)
    grid = np.linspace(-2.0, 2.0, 101)
    energies = np.array([-0.5, 0.0, 0.7])
    weights = np.array([0.2, 0.0, -1.5])
    expected = sum(w * spec.kernel.density(grid - e) for (e, w) in zip(energies, weights))
    np.testing.assert_allclose(broaden(energies, weights, grid, spec), expected, rtol=1e-12, atol=1e-300)


def test_broaden_workers_bit_identical():
    """Test that splitting the grid across threads does not change a single bit."""
    rng = np.random.default_rng(seed=0)
    spec = SmearingSpec(method="Gaussian", sigma=0.05)
    energies = rng.uniform(-3.0, 3.0, size=1000)
    weights = rng.uniform(0.0, 1.0, size=1000)
    grid = np.linspace(-4.0, 4.0, 801)
    serial = broaden(energies, weights, grid, spec)
    for n_workers in (2, 3, 8):
        assert np.array_equal(serial, broaden(energies, weights, grid, spec, n_workers=n_workers))


def test_broaden_ascending_fold():
    """Test that `broaden` adds samples one by one in input order, across evaluation blocks."""
    rng = np.random.default_rng(seed=1)
    spec = SmearingSpec(method="Lorentzian", sigma=0.2)
    energies = rng.uniform(-2.0, 2.0, size=SAMPLE_BLOCK_SIZE * 2 + 37)
    weights = rng.uniform(-1.0, 1.0, size=energies.shape[0])
    grid = np.linspace(-3.0, 3.0, 97)
    contributions = spec.kernel.density(grid[:, np.newaxis] - energies[np.newaxis, :]) * weights[np.newaxis, :]
    expected = np.zeros_like(grid)
    for j in range(contributions.shape[1]):
        expected = expected + contributions[:, j]
    assert np.array_equal(broaden(energies, weights, grid, spec), expected)
    assert np.array_equal(broaden(energies, weights, grid, spec, n_workers=4), expected)


def test_broaden_no_samples():
    """Test that an empty sample set gives a zero density."""
    grid = np.linspace(-1.0, 1.0, 11)
    dos = broaden([], [], grid, SmearingSpec())
    np.testing.assert_array_equal(dos, np.zeros(11))


@pytest.mark.parametrize(
    "energies,weights",
    [([0.0, np.nan], [1.0, 1.0]), ([0.0, 1.0], [np.inf, 1.0])],
)
def test_broaden_non_finite_samples(energies, weights):
    """Test that non-finite samples raise a data-integrity error."""
    with pytest.raises(DataIntegrityError):
        broaden(energies, weights, np.linspace(-1.0, 1.0, 11), SmearingSpec())


def test_broaden_overflow():
    """Test that a non-finite density raises `NumericOverflowError`."""
    with pytest.raises(NumericOverflowError):
        broaden([0.0, 0.0], [1e308, 1e308], np.linspace(-1.0, 1.0, 11), SmearingSpec(sigma=0.01))


def test_broaden_shape_mismatch():
    """Test that energies and weights must have the same length."""
    with pytest.raises(DataIntegrityError):
        broaden([0.0, 1.0], [1.0], np.linspace(-1.0, 1.0, 11), SmearingSpec())
