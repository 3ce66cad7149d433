from .checkpoint import CheckpointInfo, CheckpointManager
from .fluid import FluidCellProperty, FluidSolver, PrescribedFlowSolver, SolutionTransfer
from .fsi import FSICoordinator
from .fsi_runner import FSIRunner, run_from_yaml
from .hyperelastic import (
    ErrorPair,
    NonlinearSolidSolver,
    QuadraturePointState,
    SolidCellProperty,
    SolverState,
)
from .time import Time
