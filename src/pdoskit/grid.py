"""Energy grid shared by every curve of a run."""

import typing as ty

import numpy as np
import numpy.typing as npt

from .constants import DEFAULT_NEDOS, GRID_MARGIN_SIGMAS
from .dataset import ElectronicStructureDataset
from .exceptions import ConfigurationError, DataIntegrityError

__all__ = ("EnergyGrid",)


class EnergyGrid:
    """Strictly increasing, read-only sequence of energies (eV)."""

    def __init__(self, energies: npt.ArrayLike):
        energies = np.array(energies, dtype=np.float64, copy=True).ravel()
        if energies.shape[0] < 2:
            raise ConfigurationError(f"An energy grid needs at least 2 points, got {energies.shape[0]}")
        if not np.all(np.isfinite(energies)):
            raise DataIntegrityError("Energy grid contains non-finite values")
        if not np.all(np.diff(energies) > 0):
            raise ConfigurationError("Energy grid must be strictly increasing")
        energies.flags.writeable = False
        self.energies = energies

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(emin={self.emin}, emax={self.emax}, n_energies={self.n_energies})"

    def __len__(self) -> int:
        return self.n_energies

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EnergyGrid):
            return NotImplemented
        return np.array_equal(self.energies, other.energies)

    __hash__ = None

    @classmethod
    def from_bounds(cls, emin: float, emax: float, n_energies: int = DEFAULT_NEDOS) -> "EnergyGrid":
        """Linearly spaced grid between `emin` and `emax` (inclusive).

        Args:
            emin (float): lowest energy.
            emax (float): highest energy.
            n_energies (int, optional): number of points. Defaults to `DEFAULT_NEDOS`.

        Raises:
            ConfigurationError: if the bounds are not finite and increasing, or `n_energies < 2`.
        """
        if not (np.isfinite(emin) and np.isfinite(emax)) or emin >= emax:
            raise ConfigurationError(f"Energy grid bounds must be finite and increasing, got [{emin}, {emax}]")
        if n_energies < 2:
            raise ConfigurationError(f"An energy grid needs at least 2 points, got {n_energies}")
        return cls(np.linspace(emin, emax, int(n_energies)))

    @classmethod
    def from_dataset(  # pylint: disable=too-many-arguments
        cls,
        dataset: ElectronicStructureDataset,
        sigma: float,
        n_energies: int = DEFAULT_NEDOS,
        margin: ty.Optional[float] = None,
        shift_fermi: bool = True,
    ) -> "EnergyGrid":
        """Grid spanning the eigenvalue range of a dataset plus a margin on each side.

        Args:
            dataset (ElectronicStructureDataset): dataset.
            sigma (float): smearing width; the default margin is `GRID_MARGIN_SIGMAS * sigma`.
            n_energies (int, optional): number of points. Defaults to `DEFAULT_NEDOS`.
            margin (ty.Optional[float], optional): margin in eV. Defaults to None.
            shift_fermi (bool, optional): use energies relative to the Fermi energy. Defaults to True.
        """
        margin = GRID_MARGIN_SIGMAS * sigma if margin is None else margin
        emin, emax = dataset.energy_range(shift_fermi)
        return cls.from_bounds(emin - margin, emax + margin, n_energies)

    @property
    def emin(self) -> float:
        return float(self.energies[0])

    @property
    def emax(self) -> float:
        return float(self.energies[-1])

    @property
    def n_energies(self) -> int:
        return self.energies.shape[0]
