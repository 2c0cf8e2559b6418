"""Broadening kernels used to smear discrete eigenvalues into a continuous density."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from multiprocessing.pool import ThreadPool
import typing as ty

import numpy as np
import numpy.typing as npt

from .constants import DEFAULT_SIGMA
from .exceptions import ConfigurationError, DataIntegrityError, NumericOverflowError

__all__ = (
    "Kernel",
    "Gaussian",
    "Lorentzian",
    "SmearingSpec",
    "kernel_from_name",
    "broaden",
)

# Kernel values are evaluated for blocks of this many samples at a time. Samples are still
# added to the density one by one in ascending order, whatever the block or chunk size.
SAMPLE_BLOCK_SIZE = 256


class Kernel(ABC):
    """Abstract base class for normalized broadening kernels."""

    def __init__(self, width: float, cutoff: ty.Optional[float] = None):
        self.width = width
        self.cutoff = cutoff

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(width={self.width}, cutoff={self.cutoff})"

    def __str__(self) -> str:
        return self.__repr__()

    def _scale(self, x: npt.ArrayLike) -> npt.ArrayLike:
        return np.asarray(x) / self.width

    def _truncate(self, x: npt.ArrayLike, y: npt.ArrayLike) -> npt.ArrayLike:
        if self.cutoff is None:
            return y
        return np.where(np.abs(self._scale(x)) > self.cutoff, 0.0, y)

    @abstractmethod
    def _shape(self, z: npt.ArrayLike) -> npt.ArrayLike:
        """Line shape in units of the width, normalized to unit area over z."""

    def density(self, x: npt.ArrayLike) -> npt.ArrayLike:
        """Evaluate the kernel at energy offsets `x` (grid energy minus sample energy), in 1/eV."""
        return self._truncate(x, self._shape(self._scale(x)) / self.width)


class Gaussian(Kernel):
    """Gaussian kernel with standard deviation `width`."""

    def _shape(self, z: npt.ArrayLike) -> npt.ArrayLike:
        return np.exp(-0.5 * z**2) / np.sqrt(2.0 * np.pi)


class Lorentzian(Kernel):
    """Lorentzian (Cauchy) kernel with half width at half maximum `width`."""

    def _shape(self, z: npt.ArrayLike) -> npt.ArrayLike:
        return 1.0 / (np.pi * (1.0 + z**2))


def kernel_from_name(name: str) -> ty.Type[Kernel]:
    """Retrieve a kernel class by name.

    Supported names (case-insensitive) are:

        * Gaussian: 'gaussian', 'gauss'
        * Lorentzian: 'lorentzian', 'lorentz', 'cauchy'

    Args:
        name (str): kernel name.

    Raises:
        ConfigurationError: for unknown kernels.

    Returns:
        ty.Type[Kernel]: kernel class.
    """
    if not isinstance(name, str):
        raise ConfigurationError(f"Smearing method must be a string, got {name!r}")
    key = name.strip().lower()
    if key in ("gaussian", "gauss"):
        kernel = Gaussian
    elif key in ("lorentzian", "lorentz", "cauchy"):
        kernel = Lorentzian
    else:
        raise ConfigurationError(f"Unknown smearing method '{name}'")
    return kernel


@dataclass(frozen=True)
class SmearingSpec:
    """Smearing method, width (eV), and optional truncation radius (in units of the width)."""

    method: str = "Gaussian"
    sigma: float = DEFAULT_SIGMA
    cutoff: ty.Optional[float] = None

    def __post_init__(self):
        kernel_from_name(self.method)
        if isinstance(self.sigma, bool) or not isinstance(self.sigma, (int, float)):
            raise ConfigurationError(f"Smearing width sigma must be a number, got {self.sigma!r}")
        if not np.isfinite(self.sigma) or self.sigma <= 0:
            raise ConfigurationError(f"Smearing width sigma must be positive and finite, got {self.sigma}")
        if self.cutoff is not None and (not np.isfinite(self.cutoff) or self.cutoff <= 0):
            raise ConfigurationError(f"Smearing cutoff must be positive and finite, got {self.cutoff}")

    @property
    def kernel(self) -> Kernel:
        """Kernel instance described by this spec."""
        return kernel_from_name(self.method)(width=self.sigma, cutoff=self.cutoff)


def _broaden_chunk(
    grid: npt.NDArray[np.float64], energies: npt.NDArray[np.float64], weights: npt.NDArray[np.float64], kernel: Kernel
) -> npt.NDArray[np.float64]:
    dos = np.zeros_like(grid)
    for start in range(0, energies.shape[0], SAMPLE_BLOCK_SIZE):
        stop = start + SAMPLE_BLOCK_SIZE
        x = grid[:, np.newaxis] - energies[np.newaxis, start:stop]
        contributions = kernel.density(x) * weights[np.newaxis, start:stop]
        # Sequential running sum: dos + c_0 + c_1 + ... for every grid point
        dos = np.cumsum(np.concatenate([dos[:, np.newaxis], contributions], axis=1), axis=1)[:, -1]
    return dos


def broaden(  # pylint: disable=too-many-arguments
    energies: npt.ArrayLike,
    weights: npt.ArrayLike,
    grid: npt.ArrayLike,
    spec: SmearingSpec,
    n_workers: int = 1,
) -> npt.NDArray[np.float64]:
    """Smear weighted samples onto an energy grid.

    Each sample contributes `weight * kernel(grid - energy)` at every grid point. The
    convolution is dense unless `spec.cutoff` is set. With `n_workers > 1` the grid is split
    into contiguous chunks handled by a thread pool; every grid point is still reduced over
    the samples in the order given, so the result does not depend on `n_workers`.

    Args:
        energies (npt.ArrayLike): (n_samples,) sample energies.
        weights (npt.ArrayLike): (n_samples,) sample weights.
        grid (npt.ArrayLike): (n_energies,) energies at which to sample the density.
        spec (SmearingSpec): smearing method and width.
        n_workers (int, optional): number of threads. Defaults to 1.

    Raises:
        DataIntegrityError: if any sample energy or weight is not finite.
        NumericOverflowError: if the resulting density is not finite.

    Returns:
        npt.NDArray[np.float64]: (n_energies,) density.
    """
    energies = np.ascontiguousarray(energies, dtype=np.float64).ravel()
    weights = np.ascontiguousarray(weights, dtype=np.float64).ravel()
    grid = np.ascontiguousarray(grid, dtype=np.float64).ravel()
    if energies.shape != weights.shape:
        raise DataIntegrityError(f"Got {energies.shape[0]} sample energies but {weights.shape[0]} weights")
    if not np.all(np.isfinite(energies)):
        raise DataIntegrityError("Sample energies contain non-finite values")
    if not np.all(np.isfinite(weights)):
        raise DataIntegrityError("Sample weights contain non-finite values")

    kernel = spec.kernel
    n_chunks = max(1, min(int(n_workers), grid.shape[0]))
    if n_chunks == 1:
        dos = _broaden_chunk(grid, energies, weights, kernel)
    else:
        _broaden = partial(_broaden_chunk, energies=energies, weights=weights, kernel=kernel)
        with ThreadPool(processes=n_chunks) as pool:
            dos = np.concatenate(pool.map(_broaden, np.array_split(grid, n_chunks)))

    if not np.all(np.isfinite(dos)):
        raise NumericOverflowError(f"{kernel} produced non-finite densities")
    return dos
