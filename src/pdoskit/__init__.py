"""Density of states and projected density of states from electronic-structure output."""

from . import config, constants, dataset, dos, exceptions, grid, output, selection, smearing
from .config import PlotDefinition, Settings, load_settings
from .dataset import ElectronicStructureDataset
from .dos import compute_pdos, compute_total_dos, run
from .exceptions import ConfigurationError, DataIntegrityError, NumericOverflowError, PdosError
from .grid import EnergyGrid
from .output import DOSCurve, DOSResult
from .selection import Selection, parse_selection
from .smearing import SmearingSpec

__all__ = (
    (
        "config",
        "constants",
        "dataset",
        "dos",
        "exceptions",
        "grid",
        "output",
        "selection",
        "smearing",
        "PlotDefinition",
        "Settings",
        "load_settings",
        "ElectronicStructureDataset",
        "compute_pdos",
        "compute_total_dos",
        "run",
        "EnergyGrid",
        "DOSCurve",
        "DOSResult",
        "Selection",
        "parse_selection",
        "SmearingSpec",
    )
    + exceptions.__all__
)
