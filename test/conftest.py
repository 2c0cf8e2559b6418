"""Test configuration."""

import numpy as np
import pytest

import pdoskit

N_KPOINTS = 4
N_BANDS = 6
N_IONS = 3
N_ORBITALS = 9


def _projected_dataset(n_spins: int, fermi_energy=None) -> pdoskit.ElectronicStructureDataset:
    rng = np.random.default_rng(seed=42 + n_spins)
    eigenvalues = np.sort(rng.uniform(-5.0, 5.0, size=(n_spins, N_KPOINTS, N_BANDS)), axis=-1)
    occupations = np.where(eigenvalues < 0.0, 1.0, 0.0)
    projections = rng.uniform(0.0, 1.0, size=(n_spins, N_KPOINTS, N_BANDS, N_IONS, N_ORBITALS))
    # Each band is fully projected onto the (ion, orbital) basis
    projections /= projections.sum(axis=(-2, -1), keepdims=True)
    return pdoskit.ElectronicStructureDataset(
        eigenvalues=eigenvalues,
        weights=np.array([1.0, 2.0, 3.0, 2.0]) / 8.0,
        occupations=occupations,
        projections=projections,
        fermi_energy=fermi_energy,
    )


@pytest.fixture(scope="module", params=[1, 2], ids=["one_spin", "two_spin"])
def dataset(request):
    """Dataset with random eigenvalues and projections normalized to 1 for every band."""
    return _projected_dataset(request.param)


@pytest.fixture(scope="module")
def two_spin_dataset():
    """Spin-polarized dataset with a Fermi energy."""
    return _projected_dataset(2, fermi_energy=0.25)


@pytest.fixture(scope="module")
def two_peak_dataset():
    """Two k-points (weights 0.5, 0.5), one band each at -1 and +1 eV."""
    return pdoskit.ElectronicStructureDataset(
        eigenvalues=[[[-1.0], [1.0]]],
        weights=[0.5, 0.5],
        projections=np.ones((1, 2, 1, 1, 1)),
        orbitals=["s"],
    )


@pytest.fixture
def gaussian():
    """Gaussian smearing with a width of 0.1 eV."""
    return pdoskit.SmearingSpec(method="Gaussian", sigma=0.1)
