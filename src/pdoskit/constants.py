"""Default values and orbital labels."""

# Orbital labels in the order written by VASP for `LORBIT = 11/12`
SPD_ORBITALS = ("s", "py", "pz", "px", "dxy", "dyz", "dz2", "dxz", "x2-y2")
SPDF_ORBITALS = SPD_ORBITALS + ("fy3x2", "fxyz", "fyz2", "fz3", "fxz2", "fzx2", "fx3")

DEFAULT_SIGMA = 0.05  # eV
DEFAULT_NEDOS = 3000
GRID_MARGIN_SIGMAS = 5.0
TOTAL_CURVE_NAME = "total"
