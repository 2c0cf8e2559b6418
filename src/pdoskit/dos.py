"""Total and projected density of states."""

from dataclasses import dataclass
from functools import partial
import logging
from multiprocessing.pool import ThreadPool
import typing as ty

import numpy as np
import numpy.typing as npt

from .config import PlotDefinition, Settings
from .constants import TOTAL_CURVE_NAME
from .dataset import ElectronicStructureDataset
from .exceptions import ConfigurationError, DataIntegrityError
from .grid import EnergyGrid
from .output import DOSCurve, DOSResult, spin_channel_labels
from .selection import Selection, parse_selection
from .smearing import SmearingSpec, broaden

LOGGER = logging.getLogger(__name__)

__all__ = (
    "ResolvedPlot",
    "resolve_plot",
    "smeared_dos",
    "compute_total_dos",
    "compute_pdos",
    "build_grid",
    "run",
)


@dataclass(frozen=True)
class ResolvedPlot:
    """A PDOS request with its selections resolved against a dataset."""

    name: str
    kpoints: Selection
    atoms: Selection
    orbits: Selection
    factor: float = 1.0


def _check_selection(plot_name: str, key: str, selection: Selection, size: int) -> None:
    if selection.indices and selection.indices[-1] > size:
        raise DataIntegrityError(
            f"PDOS plot '{plot_name}' selects {key} index {selection.indices[-1]}, "
            f"but the dataset only has {size}"
        )


def resolve_plot(
    dataset: ElectronicStructureDataset, plot: ty.Union[PlotDefinition, ResolvedPlot]
) -> ResolvedPlot:
    """Resolve the k-point, atom, and orbital selections of a plot against a dataset.

    Args:
        dataset (ElectronicStructureDataset): dataset with projections.
        plot (ty.Union[PlotDefinition, ResolvedPlot]): plot definition, or already-resolved
            selections which are checked against the dataset sizes.

    Raises:
        ConfigurationError: for invalid selection strings.
        DataIntegrityError: if the dataset has no projections, or a resolved selection does not
            fit the dataset.

    Returns:
        ResolvedPlot: resolved selections.
    """
    if not dataset.has_projections:
        raise DataIntegrityError(f"PDOS plot '{plot.name}' requires projections, but the dataset has none")
    sizes = {"kpoints": dataset.n_kpoints, "atoms": dataset.n_ions, "orbits": dataset.n_orbitals}

    if isinstance(plot, ResolvedPlot):
        for key, size in sizes.items():
            _check_selection(plot.name, key, getattr(plot, key), size)
        return plot

    selections = {}
    for key, size in sizes.items():
        orbital_table = dataset.orbital_table if key == "orbits" else None
        try:
            selections[key] = parse_selection(getattr(plot, key), size, orbital_table)
        except ConfigurationError as exc:
            raise ConfigurationError(f"Field 'pdos.{plot.name}.{key}': {exc}") from exc
        LOGGER.debug("PDOS plot '%s' selects %d/%d %s", plot.name, len(selections[key]), size, key)
    return ResolvedPlot(name=plot.name, factor=plot.factor, **selections)


def _spin_channels(dataset: ElectronicStructureDataset, spins: ty.Optional[ty.Sequence[int]]) -> ty.Tuple[int, ...]:
    if spins is None:
        return tuple(range(dataset.n_spins))
    spins = tuple(int(spin) for spin in spins)
    if not spins or any(spin < 0 or spin >= dataset.n_spins for spin in spins):
        raise DataIntegrityError(f"Invalid spin channels {spins} for a dataset with {dataset.n_spins} channel(s)")
    return spins


def smeared_dos(  # pylint: disable=too-many-arguments
    energies: npt.ArrayLike,
    weights: npt.ArrayLike,
    grid: EnergyGrid,
    smearing: SmearingSpec,
    n_workers: int = 1,
) -> npt.NDArray[np.float64]:
    """Compute a smeared density of states for one spin channel.

    Samples are flattened in C order, i.e. ascending k-point then band index, which fixes the
    order in which they are summed.

    Args:
        energies (npt.ArrayLike): (n_kpoints, n_bands) eigenvalues.
        weights (npt.ArrayLike): (n_kpoints, n_bands) sample weights.
        grid (EnergyGrid): energies at which to sample the DOS.
        smearing (SmearingSpec): smearing method and width.
        n_workers (int, optional): number of threads. Defaults to 1.

    Returns:
        npt.NDArray[np.float64]: (n_energies,) DOS.
    """
    energies = np.asarray(energies)
    weights = np.broadcast_to(weights, energies.shape)
    return broaden(energies.ravel(), weights.ravel(), grid.energies, smearing, n_workers=n_workers)


def compute_total_dos(  # pylint: disable=too-many-arguments
    dataset: ElectronicStructureDataset,
    grid: EnergyGrid,
    smearing: SmearingSpec,
    spins: ty.Optional[ty.Sequence[int]] = None,
    shift_fermi: bool = True,
    n_workers: int = 1,
) -> DOSCurve:
    """Compute the total DOS: every eigenvalue, weighted by its k-point weight.

    Args:
        dataset (ElectronicStructureDataset): dataset.
        grid (EnergyGrid): energy grid.
        smearing (SmearingSpec): smearing method and width.
        spins (ty.Optional[ty.Sequence[int]], optional): 0-based spin channels. Defaults to all.
        shift_fermi (bool, optional): energies relative to the Fermi energy. Defaults to True.
        n_workers (int, optional): number of threads. Defaults to 1.

    Returns:
        DOSCurve: (n_spins, n_energies) total DOS.
    """
    spins = _spin_channels(dataset, spins)
    energies = dataset.energies(shift_fermi)
    weights = dataset.weights[:, np.newaxis]
    dos = np.stack([smeared_dos(energies[spin], weights, grid, smearing, n_workers) for spin in spins])
    LOGGER.info("Computed total DOS (%d channel(s))", len(spins))
    return DOSCurve(TOTAL_CURVE_NAME, grid, dos, channels=spin_channel_labels(dataset.n_spins, spins))


def compute_pdos(  # pylint: disable=too-many-arguments
    dataset: ElectronicStructureDataset,
    plot: ty.Union[PlotDefinition, ResolvedPlot],
    grid: EnergyGrid,
    smearing: SmearingSpec,
    spins: ty.Optional[ty.Sequence[int]] = None,
    shift_fermi: bool = True,
    n_workers: int = 1,
) -> DOSCurve:
    """Compute the projected DOS of one plot definition.

    Each eigenvalue at a selected k-point is weighted by the sum of its projections over the
    selected (ion, orbital) pairs, times the k-point weight and the plot factor. Bands with
    zero projection are kept and simply contribute nothing.

    Args:
        dataset (ElectronicStructureDataset): dataset with projections.
        plot (ty.Union[PlotDefinition, ResolvedPlot]): plot definition.
        grid (EnergyGrid): energy grid.
        smearing (SmearingSpec): smearing method and width.
        spins (ty.Optional[ty.Sequence[int]], optional): 0-based spin channels. Defaults to all.
        shift_fermi (bool, optional): energies relative to the Fermi energy. Defaults to True.
        n_workers (int, optional): number of threads. Defaults to 1.

    Returns:
        DOSCurve: (n_spins, n_energies) PDOS.
    """
    resolved = resolve_plot(dataset, plot)
    spins = _spin_channels(dataset, spins)
    ik = resolved.kpoints.as_array()
    ia = resolved.atoms.as_array()
    io = resolved.orbits.as_array()
    energies = dataset.energies(shift_fermi)
    kweights = dataset.weights[ik, np.newaxis]

    dos = []
    for spin in spins:
        projections = dataset.projections[spin][ik][:, :, ia][:, :, :, io]
        pairs = projections.reshape(len(ik), dataset.n_bands, len(ia) * len(io))
        # Add the (ion, orbital) pairs one at a time in ascending C order
        band_weights = np.zeros((len(ik), dataset.n_bands))
        for j in range(pairs.shape[-1]):
            band_weights = band_weights + pairs[..., j]
        weights = band_weights * kweights * resolved.factor
        dos.append(smeared_dos(energies[spin][ik], weights, grid, smearing, n_workers))
    LOGGER.info("Computed PDOS '%s' (%d channel(s), factor=%s)", resolved.name, len(spins), resolved.factor)
    return DOSCurve(
        resolved.name,
        grid,
        np.stack(dos),
        channels=spin_channel_labels(dataset.n_spins, spins),
        factor=resolved.factor,
    )


def build_grid(settings: Settings, dataset: ElectronicStructureDataset) -> EnergyGrid:
    """Energy grid from `settings.xlim`, or from the dataset's eigenvalue range if not set."""
    if settings.xlim is not None:
        grid = EnergyGrid.from_bounds(settings.xlim[0], settings.xlim[1], settings.nedos)
    else:
        grid = EnergyGrid.from_dataset(dataset, settings.sigma, settings.nedos, shift_fermi=settings.shift_fermi)
    LOGGER.info("Energy grid: [%.4f, %.4f] eV with %d points", grid.emin, grid.emax, grid.n_energies)
    return grid


def _compute_curve(  # pylint: disable=too-many-arguments
    plot: ty.Optional[ResolvedPlot],
    dataset: ElectronicStructureDataset,
    grid: EnergyGrid,
    smearing: SmearingSpec,
    shift_fermi: bool,
    n_workers: int,
) -> DOSCurve:
    if plot is None:
        return compute_total_dos(dataset, grid, smearing, shift_fermi=shift_fermi, n_workers=n_workers)
    return compute_pdos(dataset, plot, grid, smearing, shift_fermi=shift_fermi, n_workers=n_workers)


def run(settings: Settings, dataset: ElectronicStructureDataset) -> DOSResult:
    """Compute the total DOS (if requested) and every PDOS plot of the settings.

    All selections are resolved before any curve is computed, and any error aborts the whole
    run, so either every requested curve is returned or none.

    Args:
        settings (Settings): DOS settings.
        dataset (ElectronicStructureDataset): dataset.

    Returns:
        DOSResult: total DOS first (if `settings.totdos`), then the PDOS curves in declaration order.
    """
    smearing = settings.smearing
    if settings.totdos and any(plot.name == TOTAL_CURVE_NAME for plot in settings.pdos):
        raise ConfigurationError(f"PDOS plot name '{TOTAL_CURVE_NAME}' is reserved for the total DOS")
    plots = [resolve_plot(dataset, plot) for plot in settings.pdos]
    grid = build_grid(settings, dataset)

    tasks: ty.List[ty.Optional[ResolvedPlot]] = [None] if settings.totdos else []
    tasks.extend(plots)
    if not tasks:
        LOGGER.warning("Neither the total DOS nor any PDOS plot was requested.")

    # Threads go to whole curves when there are several, otherwise to the grid of the single curve
    parallel_curves = settings.n_workers > 1 and len(tasks) > 1
    _compute = partial(
        _compute_curve,
        dataset=dataset,
        grid=grid,
        smearing=smearing,
        shift_fermi=settings.shift_fermi,
        n_workers=1 if parallel_curves else settings.n_workers,
    )
    if parallel_curves:
        with ThreadPool(processes=min(settings.n_workers, len(tasks))) as pool:
            curves = pool.map(_compute, tasks)
    else:
        curves = [_compute(task) for task in tasks]

    if settings.spin == "sum":
        curves = [curve.summed() for curve in curves]
    return DOSResult(grid, curves)
