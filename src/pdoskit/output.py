"""Computed DOS curves and the ordered result handed to renderers and writers."""

import typing as ty

import h5py
import numpy as np
import numpy.typing as npt
import scipy as sp

from .grid import EnergyGrid

__all__ = ("DOSCurve", "DOSResult", "spin_channel_labels")


def spin_channel_labels(n_spins: int, spins: ty.Sequence[int]) -> ty.Tuple[str, ...]:
    """Human-readable labels for the spin channels of a curve.

    Args:
        n_spins (int): number of spin channels in the dataset.
        spins (ty.Sequence[int]): 0-based spin channels present in the curve.

    Returns:
        tuple[str, ...]: "all" for non-spin-polarized data, otherwise "up"/"down".
    """
    if n_spins == 1:
        return tuple("all" for _ in spins)
    return tuple(("up", "down")[spin] for spin in spins)


class DOSCurve:
    """Density of states on an energy grid, one row per spin channel."""

    def __init__(
        self,
        name: str,
        grid: EnergyGrid,
        dos: npt.ArrayLike,
        channels: ty.Sequence[str],
        factor: float = 1.0,
    ):
        dos = np.array(dos, dtype=np.float64, copy=True)
        if dos.ndim == 1:
            dos = dos[np.newaxis, :]
        if dos.ndim != 2 or dos.shape[1] != grid.n_energies:
            raise ValueError(f"DOS shape {dos.shape} does not match (n_channels, {grid.n_energies})")
        if len(channels) != dos.shape[0]:
            raise ValueError(f"Got {len(channels)} channel labels for {dos.shape[0]} channels")
        dos.flags.writeable = False
        self.name = name
        self.grid = grid
        self.dos = dos
        self.channels = tuple(channels)
        self.factor = factor

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(name={self.name!r}, channels={self.channels}, "
            f"n_energies={self.grid.n_energies}, factor={self.factor})"
        )

    @property
    def energies(self) -> npt.NDArray[np.float64]:
        return self.grid.energies

    @property
    def n_channels(self) -> int:
        return self.dos.shape[0]

    def summed(self) -> "DOSCurve":
        """Curve with all spin channels added together."""
        if self.n_channels == 1:
            return self
        return DOSCurve(self.name, self.grid, self.dos.sum(axis=0), channels=("sum",), factor=self.factor)

    def integrate(self) -> npt.NDArray[np.float64]:
        """Trapezoidal integral of each channel over the grid.

        Returns:
            npt.NDArray[np.float64]: (n_channels,) number of states in the grid window.
        """
        return sp.integrate.trapezoid(self.dos, x=self.energies, axis=-1)

    def integrated(self) -> npt.NDArray[np.float64]:
        """Integrated density of states (cumulative trapezoidal integral) of each channel.

        Returns:
            npt.NDArray[np.float64]: (n_channels, n_energies) integrated DOS, starting at zero.
        """
        return sp.integrate.cumulative_trapezoid(self.dos, x=self.energies, axis=-1, initial=0.0)


class DOSResult:
    """Shared energy grid and the computed curves, in order (total first, then each PDOS plot)."""

    def __init__(self, grid: EnergyGrid, curves: ty.Sequence[DOSCurve]):
        names = [curve.name for curve in curves]
        if len(set(names)) != len(names):
            raise ValueError(f"Curve names must be unique, got {names}")
        if any(curve.grid is not grid and curve.grid != grid for curve in curves):
            raise ValueError("All curves must share the same energy grid")
        self.grid = grid
        self.curves = tuple(curves)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(grid={self.grid!r}, curves={list(self.names)})"

    def __len__(self) -> int:
        return len(self.curves)

    def __iter__(self) -> ty.Iterator[DOSCurve]:
        return iter(self.curves)

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __getitem__(self, name: str) -> DOSCurve:
        for curve in self.curves:
            if curve.name == name:
                return curve
        raise KeyError(name)

    @property
    def names(self) -> ty.Tuple[str, ...]:
        return tuple(curve.name for curve in self.curves)

    @property
    def energies(self) -> npt.NDArray[np.float64]:
        return self.grid.energies

    def column_labels(self) -> ty.List[str]:
        """Labels of the columns of `as_array`."""
        labels = ["energy"]
        for curve in self.curves:
            labels.extend(f"{curve.name}_{channel}" for channel in curve.channels)
        return labels

    def as_array(self) -> npt.NDArray[np.float64]:
        """Energies followed by every channel of every curve, one column each.

        Returns:
            npt.NDArray[np.float64]: (n_energies, 1 + total number of channels) array.
        """
        columns = [self.energies[np.newaxis, :]] + [curve.dos for curve in self.curves]
        return np.concatenate(columns, axis=0).T

    def to_hdf(self, hdf: ty.Union[h5py.Group, h5py.File]) -> None:
        """Save the grid and the curves to an HDF5 file or group.

        Layout: `energies` plus one `curves/<name>` dataset of shape (n_channels, n_energies)
        per curve, with `channels` and `factor` attributes. Curve order is kept in the
        `names` attribute of the `curves` group.

        Args:
            hdf (ty.Union[h5py.Group, h5py.File]): HDF5 File or Group.
        """
        hdf.create_dataset("energies", data=self.energies)
        hdf["energies"].attrs["units"] = "eV"
        group = hdf.create_group("curves")
        group.attrs["names"] = list(self.names)
        for curve in self.curves:
            dataset = group.create_dataset(curve.name, data=curve.dos, compression="gzip", shuffle=True)
            dataset.attrs["channels"] = list(curve.channels)
            dataset.attrs["factor"] = curve.factor
            dataset.attrs["units"] = "states/eV"
