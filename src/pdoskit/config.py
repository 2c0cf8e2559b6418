"""Typed DOS settings and their TOML loader."""

from dataclasses import dataclass, field, fields
import logging
import pathlib as pl
import tomllib
import typing as ty

import numpy as np

from .constants import DEFAULT_NEDOS, DEFAULT_SIGMA
from .exceptions import ConfigurationError
from .selection import tokenize
from .smearing import SmearingSpec

LOGGER = logging.getLogger(__name__)

__all__ = ("PlotDefinition", "Settings", "load_settings", "default_settings_toml", "SPIN_POLICIES")

SPIN_POLICIES = ("separate", "sum")
PLOT_KEYS = ("kpoints", "atoms", "orbits", "factor")

DEFAULT_SETTINGS_TOML = """\
# DOS configuration in toml format.
# multiple tokens inside string are seperated by whitespace
method      = "Gaussian"        # smearing method
sigma       = 0.05              # smearing width, (eV)
procar      = "PROCAR"          # PROCAR path
outcar      = "OUTCAR"          # OUTCAR path
txtout      = "dos_raw.txt"     # save the raw data as "dos_raw.txt"
htmlout     = "dos.html"        # save the pdos plot as "dos.html"
totdos      = true              # plot the total dos
fill        = true              # fill the plot to x axis or not
xlim        = [-1, 6]           # x-range of plot
nedos       = 3000              # number of energy grid points
spin        = "separate"        # "separate" or "sum" the spin channels

[pdos.plot1]                  # One label produces one plot, the labels CANNOT be repetitive.
                              # This label is 'plot1', to add more pdos, write '[pdos.plot2]' and so on.
kpoints = "1 3..7 -1"         # selects 1 3 4 5 6 7 and the last kpoint for pdos plot.
atoms   = "1 3..7 -1"         # selects 1 3 4 5 6 7 and the last atoms' projection for pdos plot.
orbits  = "s px dxy"          # selects the s px and dxy orbits' projection for pdos plot.
factor  = 1.01                # the factor multiplied to this pdos

[pdos.plot2]
kpoints = "1 3..7 -1"
atoms   = "1 3..7 -1"
orbits  = "s px dxy"
factor  = 1.01

# The fields can be left blank, if you want select all the components for some fields,
# just comment them. You can comment fields with '#'
"""


def default_settings_toml() -> str:
    """Commented settings template."""
    return DEFAULT_SETTINGS_TOML


def _is_number(value: ty.Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_type(name: str, value: ty.Any, expected: ty.Union[type, ty.Tuple[type, ...]]) -> None:
    if not isinstance(value, expected):
        raise ConfigurationError(f"Field '{name}' has invalid value {value!r}")


@dataclass(frozen=True)
class PlotDefinition:
    """A named PDOS request.

    `kpoints`, `atoms`, and `orbits` are selection strings (see `pdoskit.selection`); `None`
    selects everything. `factor` multiplies the resulting curve.
    """

    name: str
    kpoints: ty.Optional[str] = None
    atoms: ty.Optional[str] = None
    orbits: ty.Optional[str] = None
    factor: float = 1.0

    def __post_init__(self):
        if not isinstance(self.name, str) or not self.name:
            raise ConfigurationError(f"PDOS plot name must be a non-empty string, got {self.name!r}")
        if "/" in self.name or self.name == ".":
            # Names become HDF5 dataset names, where '/' separates groups and '.' is the group itself
            raise ConfigurationError(f"PDOS plot name must not contain '/' or be '.', got '{self.name}'")
        for key in ("kpoints", "atoms", "orbits"):
            value = getattr(self, key)
            if value is None:
                continue
            if not isinstance(value, str):
                raise ConfigurationError(f"Field 'pdos.{self.name}.{key}' must be a string, got {value!r}")
            # Reject malformed tokens now; indices are resolved once the dataset is known
            try:
                tokenize(value)
            except ConfigurationError as exc:
                raise ConfigurationError(f"Field 'pdos.{self.name}.{key}': {exc}") from exc
        if not _is_number(self.factor) or not np.isfinite(self.factor):
            raise ConfigurationError(f"Field 'pdos.{self.name}.factor' must be a finite number, got {self.factor!r}")
        object.__setattr__(self, "factor", float(self.factor))

    @classmethod
    def from_dict(cls, name: str, data: ty.Mapping[str, ty.Any]) -> "PlotDefinition":
        """Build a plot definition from a `[pdos.<name>]` table."""
        if not isinstance(data, ty.Mapping):
            raise ConfigurationError(f"Section 'pdos.{name}' must be a table, got {data!r}")
        unknown = [key for key in data if key not in PLOT_KEYS]
        if unknown:
            raise ConfigurationError(f"Unknown field(s) in section 'pdos.{name}': {', '.join(unknown)}")
        return cls(name=name, **data)


@dataclass(frozen=True)
class Settings:  # pylint: disable=too-many-instance-attributes
    """DOS run settings."""

    method: str = "Gaussian"
    sigma: float = DEFAULT_SIGMA
    cutoff: ty.Optional[float] = None
    procar: pl.Path = pl.Path("PROCAR")
    outcar: pl.Path = pl.Path("OUTCAR")
    txtout: pl.Path = pl.Path("dos_raw.txt")
    htmlout: pl.Path = pl.Path("dos.html")
    totdos: bool = True
    fill: bool = True
    xlim: ty.Optional[ty.Tuple[float, float]] = None
    nedos: int = DEFAULT_NEDOS
    spin: str = "separate"
    shift_fermi: bool = True
    n_workers: int = 1
    pdos: ty.Tuple[PlotDefinition, ...] = field(default_factory=tuple)

    def __post_init__(self):  # pylint: disable=too-many-branches
        SmearingSpec(method=self.method, sigma=self.sigma, cutoff=self.cutoff)

        for key in ("procar", "outcar", "txtout", "htmlout"):
            value = getattr(self, key)
            _check_type(key, value, (str, pl.PurePath))
            object.__setattr__(self, key, pl.Path(value).expanduser())
        for key in ("totdos", "fill", "shift_fermi"):
            _check_type(key, getattr(self, key), bool)

        if self.xlim is not None:
            xlim = tuple(self.xlim) if isinstance(self.xlim, (list, tuple)) else ()
            if len(xlim) != 2 or not all(_is_number(x) and np.isfinite(x) for x in xlim):
                raise ConfigurationError(f"Field 'xlim' must be a pair of finite numbers, got {self.xlim!r}")
            if xlim[0] >= xlim[1]:
                raise ConfigurationError(f"Field 'xlim' must be increasing, got {self.xlim!r}")
            object.__setattr__(self, "xlim", (float(xlim[0]), float(xlim[1])))

        if not isinstance(self.nedos, int) or isinstance(self.nedos, bool) or self.nedos < 2:
            raise ConfigurationError(f"Field 'nedos' must be an integer >= 2, got {self.nedos!r}")
        if self.spin not in SPIN_POLICIES:
            raise ConfigurationError(f"Field 'spin' must be one of {SPIN_POLICIES}, got {self.spin!r}")
        if not isinstance(self.n_workers, int) or isinstance(self.n_workers, bool) or self.n_workers < 1:
            raise ConfigurationError(f"Field 'n_workers' must be a positive integer, got {self.n_workers!r}")

        plots = tuple(self.pdos)
        for plot in plots:
            _check_type("pdos", plot, PlotDefinition)
        names = [plot.name for plot in plots]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate PDOS plot name(s): {', '.join(duplicates)}")
        object.__setattr__(self, "pdos", plots)

    @property
    def smearing(self) -> SmearingSpec:
        """Smearing method and width."""
        return SmearingSpec(method=self.method, sigma=self.sigma, cutoff=self.cutoff)

    @classmethod
    def from_dict(cls, data: ty.Mapping[str, ty.Any]) -> "Settings":
        """Build settings from a parsed configuration document.

        `pdos` may be a table of `{name: {kpoints, atoms, orbits, factor}}` (as written in TOML)
        or a sequence of tables with a `name` key.

        Raises:
            ConfigurationError: for unknown fields or invalid values.
        """
        data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = [key for key in data if key not in known]
        if unknown:
            raise ConfigurationError(f"Unknown settings field(s): {', '.join(unknown)}")

        raw_plots = data.pop("pdos", None) or {}
        if isinstance(raw_plots, ty.Mapping):
            plots = [PlotDefinition.from_dict(name, table) for (name, table) in raw_plots.items()]
        elif isinstance(raw_plots, (list, tuple)):
            plots = []
            for table in raw_plots:
                table = dict(table)
                if "name" not in table:
                    raise ConfigurationError(f"PDOS plot definition without a name: {table!r}")
                plots.append(PlotDefinition.from_dict(table.pop("name"), table))
        else:
            raise ConfigurationError(f"Field 'pdos' must be a table, got {raw_plots!r}")

        if "xlim" in data and isinstance(data["xlim"], list):
            data["xlim"] = tuple(data["xlim"])
        return cls(pdos=tuple(plots), **data)

    @classmethod
    def from_toml(cls, text: str) -> "Settings":
        """Parse settings from a TOML document.

        Raises:
            ConfigurationError: for invalid TOML (including repeated `[pdos.<name>]` sections) or values.
        """
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigurationError(f"Invalid settings document: {exc}") from exc
        return cls.from_dict(data)


def load_settings(path: ty.Union[str, pl.Path]) -> Settings:
    """Read settings from a TOML file.

    Args:
        path (ty.Union[str, pl.Path]): path to the settings file.

    Raises:
        ConfigurationError: if the file does not exist or contains invalid settings.

    Returns:
        Settings: settings.
    """
    path = pl.Path(path).expanduser()
    LOGGER.info("Reading DOS settings from %s", path)
    if not path.is_file():
        raise ConfigurationError(f"Settings file {path} not available. It should be a regular file.")
    settings = Settings.from_toml(path.read_text(encoding="utf-8"))
    LOGGER.info("Found %d PDOS plot(s): %s", len(settings.pdos), ", ".join(p.name for p in settings.pdos))
    return settings
