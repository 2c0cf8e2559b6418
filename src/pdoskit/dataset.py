"""Electronic-structure dataset consumed by the DOS engine."""

import logging
import typing as ty

import h5py
import numpy as np
import numpy.typing as npt

from .constants import SPD_ORBITALS, SPDF_ORBITALS
from .exceptions import DataIntegrityError
from .selection import is_label

LOGGER = logging.getLogger(__name__)

__all__ = ("ElectronicStructureDataset", "default_orbital_labels")


def default_orbital_labels(n_orbitals: int) -> ty.Tuple[str, ...]:
    """Default orbital labels for a number of projected orbitals.

    Args:
        n_orbitals (int): number of orbitals.

    Returns:
        tuple[str, ...]: VASP `lm`-decomposed labels for 9 or 16 orbitals, `s`/`p`/`d`/`f` for
            `l`-decomposed projections, and `orb1`, `orb2`, ... otherwise.
    """
    if n_orbitals == len(SPD_ORBITALS):
        return SPD_ORBITALS
    if n_orbitals == len(SPDF_ORBITALS):
        return SPDF_ORBITALS
    if 1 <= n_orbitals <= 4:
        return ("s", "p", "d", "f")[:n_orbitals]
    return tuple(f"orb{i}" for i in range(1, n_orbitals + 1))


def _readonly(array: npt.ArrayLike, dtype=np.float64) -> npt.NDArray:
    array = np.array(array, dtype=dtype, copy=True, order="C")
    array.flags.writeable = False
    return array


def _check_finite(name: str, array: npt.NDArray) -> None:
    if not np.all(np.isfinite(array)):
        n_bad = int(np.count_nonzero(~np.isfinite(array)))
        raise DataIntegrityError(f"{name} contains {n_bad} non-finite values")


class ElectronicStructureDataset:
    # pylint: disable=too-many-instance-attributes
    """Eigenvalues, k-point weights, and orbital projections of one calculation.

    All arrays are copied and made read-only on construction, so a dataset can be shared by
    any number of concurrent DOS computations.
    """

    def __init__(  # pylint: disable=too-many-arguments
        self,
        eigenvalues: npt.ArrayLike,
        weights: npt.ArrayLike,
        occupations: ty.Optional[npt.ArrayLike] = None,
        projections: ty.Optional[npt.ArrayLike] = None,
        orbitals: ty.Optional[ty.Sequence[str]] = None,
        fermi_energy: ty.Optional[float] = None,
    ):
        """Initialize a dataset.

        Args:
            eigenvalues (npt.ArrayLike): (n_spins, n_kpoints, n_bands) eigenvalues in eV.
            weights (npt.ArrayLike): (n_kpoints,) k-point weights; normalized to sum to 1.
            occupations (ty.Optional[npt.ArrayLike], optional): (n_spins, n_kpoints, n_bands)
                band occupations. Defaults to None.
            projections (ty.Optional[npt.ArrayLike], optional): (n_spins, n_kpoints, n_bands, n_ions,
                n_orbitals) projection weights. Defaults to None.
            orbitals (ty.Optional[ty.Sequence[str]], optional): (n_orbitals,) orbital labels.
                Defaults to `default_orbital_labels`.
            fermi_energy (ty.Optional[float], optional): Fermi energy in eV. Defaults to None.

        Raises:
            DataIntegrityError: for inconsistent shapes, non-finite values, or non-positive total weight.
        """
        eigenvalues = _readonly(eigenvalues)
        weights = np.array(weights, dtype=np.float64, copy=True)

        # Add a spin dimension if not present
        if eigenvalues.ndim == 2:
            eigenvalues = _readonly(np.expand_dims(eigenvalues, 0))
        if eigenvalues.ndim != 3:
            raise DataIntegrityError(
                f"eigenvalues must have shape (n_spins, n_kpoints, n_bands), got {eigenvalues.shape}"
            )
        if eigenvalues.shape[0] not in (1, 2):
            raise DataIntegrityError(f"Expected 1 or 2 spin channels, got {eigenvalues.shape[0]}")
        if weights.ndim != 1 or weights.shape[0] != eigenvalues.shape[1]:
            raise DataIntegrityError(
                f"weights must have shape ({eigenvalues.shape[1]},) to match eigenvalues, got {weights.shape}"
            )
        _check_finite("eigenvalues", eigenvalues)
        _check_finite("weights", weights)

        if occupations is not None:
            occupations = _readonly(occupations)
            if occupations.ndim == 2:
                occupations = _readonly(np.expand_dims(occupations, 0))
            if occupations.shape != eigenvalues.shape:
                raise DataIntegrityError(
                    f"occupations shape {occupations.shape} does not match eigenvalues shape {eigenvalues.shape}"
                )
            _check_finite("occupations", occupations)

        if projections is not None:
            projections = _readonly(projections)
            if projections.ndim == 4:
                projections = _readonly(np.expand_dims(projections, 0))
            if projections.ndim != 5 or projections.shape[:3] != eigenvalues.shape:
                raise DataIntegrityError(
                    "projections must have shape (n_spins, n_kpoints, n_bands, n_ions, n_orbitals) "
                    f"matching eigenvalues {eigenvalues.shape}, got {projections.shape}"
                )
            _check_finite("projections", projections)
            if orbitals is None:
                orbitals = default_orbital_labels(projections.shape[4])
            orbitals = tuple(str(orbital) for orbital in orbitals)
            if len(orbitals) != projections.shape[4]:
                raise DataIntegrityError(f"Got {len(orbitals)} orbital labels for {projections.shape[4]} orbitals")
            bad_labels = [orbital for orbital in orbitals if not is_label(orbital)]
            if bad_labels:
                raise DataIntegrityError(
                    f"Orbital labels must start with a letter and contain only letters, digits, '_' or '-', "
                    f"got {bad_labels}"
                )
            if len(set(orbitals)) != len(orbitals):
                raise DataIntegrityError(f"Orbital labels must be unique, got {orbitals}")
        elif orbitals is not None:
            raise DataIntegrityError("Orbital labels given without projections")

        if fermi_energy is not None:
            fermi_energy = float(fermi_energy)
            if not np.isfinite(fermi_energy):
                raise DataIntegrityError(f"Fermi energy must be finite, got {fermi_energy}")

        # Normalize the sum of the k-weights to 1
        total_weight = weights.sum()
        if total_weight <= 0:
            raise DataIntegrityError(f"Total k-point weight must be positive, got {total_weight}")
        if not np.isclose(total_weight, 1.0, atol=1e-8):
            LOGGER.warning("Total k-point weight is %s, normalizing to 1.", total_weight)
        weights = _readonly(weights / total_weight)

        self.eigenvalues = eigenvalues
        self.weights = weights
        self.occupations = occupations
        self.projections = projections
        self.orbitals = orbitals
        self.fermi_energy = fermi_energy

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"n_spins={self.n_spins}"
            f", n_kpoints={self.n_kpoints}"
            f", n_bands={self.n_bands}"
            f", n_ions={self.n_ions}"
            f", n_orbitals={self.n_orbitals}"
            f", fermi_energy={self.fermi_energy}"
            ")"
        )

    @classmethod
    def from_hdf(cls, hdf: ty.Union[h5py.Group, h5py.File]) -> "ElectronicStructureDataset":
        """Load a dataset from an HDF5 `File` or `Group` which contains the following `Dataset`s:

        - eigenvalues: (n_spins, n_kpoints, n_bands) eigenvalues in eV.
        - weights: (n_kpoints,) k-point weights.
        - occupations (optional): (n_spins, n_kpoints, n_bands) occupations.
        - projections (optional): (n_spins, n_kpoints, n_bands, n_ions, n_orbitals) projections.
        - orbitals (optional): (n_orbitals,) orbital labels.
        - fermi_energy (optional): Fermi energy in eV.

        Args:
            hdf (ty.Union[h5py.Group, h5py.File]): HDF5 File or Group
        """
        return cls(
            eigenvalues=hdf["eigenvalues"][()],
            weights=hdf["weights"][()],
            occupations=hdf["occupations"][()] if "occupations" in hdf else None,
            projections=hdf["projections"][()] if "projections" in hdf else None,
            orbitals=hdf["orbitals"].asstr()[()] if "orbitals" in hdf else None,
            fermi_energy=hdf["fermi_energy"][()] if "fermi_energy" in hdf else None,
        )

    def to_hdf(self, hdf: ty.Union[h5py.Group, h5py.File]) -> None:
        """Save the dataset to an HDF5 file or group (see `from_hdf` for the layout).

        Args:
            hdf (ty.Union[h5py.Group, h5py.File]): HDF5 File or Group.
        """
        hdf.create_dataset("eigenvalues", data=self.eigenvalues, compression="gzip", shuffle=True)
        hdf["eigenvalues"].attrs["units"] = "eV"
        hdf.create_dataset("weights", data=self.weights, compression="gzip", shuffle=True)
        if self.occupations is not None:
            hdf.create_dataset("occupations", data=self.occupations, compression="gzip", shuffle=True)
        if self.projections is not None:
            hdf.create_dataset("projections", data=self.projections, compression="gzip", shuffle=True)
            hdf.create_dataset("orbitals", data=np.array(self.orbitals, dtype=h5py.string_dtype()))
        if self.fermi_energy is not None:
            hdf.create_dataset("fermi_energy", data=self.fermi_energy)
            hdf["fermi_energy"].attrs["units"] = "eV"

    @property
    def n_spins(self) -> int:
        """Number of spin channels.

        Returns:
            int: Number of spin channels
        """
        return self.eigenvalues.shape[0]

    @property
    def n_kpoints(self) -> int:
        """Number of k-points.

        Returns:
            int: Number of k-points.
        """
        return self.eigenvalues.shape[1]

    @property
    def n_bands(self) -> int:
        """Number of bands.

        Returns:
            int: Number of bands.
        """
        return self.eigenvalues.shape[2]

    @property
    def n_ions(self) -> int:
        """Number of ions with projections (0 without projections)."""
        return 0 if self.projections is None else self.projections.shape[3]

    @property
    def n_orbitals(self) -> int:
        """Number of projected orbitals (0 without projections)."""
        return 0 if self.projections is None else self.projections.shape[4]

    @property
    def has_projections(self) -> bool:
        return self.projections is not None

    @property
    def orbital_table(self) -> ty.Dict[str, int]:
        """Mapping of orbital labels to 1-based orbital indices."""
        if self.orbitals is None:
            return {}
        return {label: i for (i, label) in enumerate(self.orbitals, start=1)}

    def energies(self, shift_fermi: bool = True) -> npt.NDArray[np.float64]:
        """Eigenvalues, relative to the Fermi energy if requested and known.

        Args:
            shift_fermi (bool, optional): subtract the Fermi energy. Defaults to True.

        Returns:
            npt.NDArray[np.float64]: (n_spins, n_kpoints, n_bands) energies.
        """
        if shift_fermi and self.fermi_energy is not None:
            return self.eigenvalues - self.fermi_energy
        return self.eigenvalues

    def energy_range(self, shift_fermi: bool = True) -> ty.Tuple[float, float]:
        """Minimum and maximum eigenvalue (see `energies`)."""
        energies = self.energies(shift_fermi)
        return float(np.min(energies)), float(np.max(energies))
