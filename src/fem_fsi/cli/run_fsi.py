#!/usr/bin/env python3
"""
Command-line driver for coupled solid/fluid runs.

Usage:
    fem-fsi case.yaml [options]
    python -m fem_fsi.cli.run_fsi case.yaml [options]

Examples:
    # Run a case
    fem-fsi flap.yaml

    # Run a shorter version of the case into another folder
    fem-fsi flap.yaml --end-time 0.05 --output-folder short_run

    # Check a case file, or print its summary
    fem-fsi flap.yaml --validate
    fem-fsi flap.yaml --preview

    # Start a new case from the annotated template
    fem-fsi --template > flap.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Annotated starting point for a new case; loads as an FSISimulationConfig
TEMPLATE_CONFIG = """# Hyperelastic flap in a channel
# ------------------------------
# The solid and the fluid live on separate overlapping box meshes.

# -- Constitutive law --------------------------------------------------------
material:
  type: "NeoHookean"
  name: "Rubber"
  C: [5.0e5, 2.0e6]   # shear modulus mu, bulk modulus kappa (optional) [Pa]
  rho: 1000.0         # reference density [kg/m^3]

# -- Solid: Lagrangian box, Q1 cells ------------------------------------------
solid:
  lower: [0.4, 0.0]
  upper: [0.6, 0.5]
  cells: [2, 5]
  polynomial_degree: 1
  quadrature_order: 2
  global_refinement: 1
  dirichlet:
    - boundary: "bottom"   # left | right | bottom | top (| back | front in 3D)
      value: 0.0
      # components: [1]    # restrict to some displacement components
  traction: []
    # - boundary: "top"
    #   value: [1.0e3, 0.0]

# -- Fluid: fixed background box, prescribed uniform flow --------------------
fluid:
  lower: [0.0, 0.0]
  upper: [2.0, 1.0]
  cells: [8, 4]
  viscosity: 1.0e-3
  inflow_velocity: [0.1, 0.0]
  pressure: 0.0
  global_refinement: 1

# -- Time stepping and Newton-Raphson -----------------------------------------
solver:
  time_step: 0.01
  end_time: 0.1
  max_iterations: 10
  tol_u: 1.0e-6
  tol_f: 1.0e-6
  newmark:
    beta: 0.25
    gamma: 0.5
  n_workers: 1

# -- Coupling and fluid mesh adaptation --------------------------------------
coupling:
  gravity: [0.0, 0.0]
  refinement_interval: 5       # steps between adaptations, 0 keeps the mesh
  refinement_distance: 0.1
  extra_refinement_levels: 2

# -- Results -----------------------------------------------------------------
output:
  folder: "results"
  output_interval: 1     # steps between VTU files, 0 disables
  save_interval: 0       # steps between npz snapshots, 0 disables
  write_initial_state: true
"""


def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr; DEBUG adds per-point coupling misses."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def print_template() -> None:
    print(TEMPLATE_CONFIG)


def load_config(config_path: str, args: Optional[argparse.Namespace] = None):
    """Read a case file and apply the command-line overrides."""
    from fem_fsi.core.config import FSISimulationConfig

    config = FSISimulationConfig.from_yaml(config_path)
    if args is None:
        return config

    data = config.to_dict()
    if args.time_step is not None:
        data["solver"]["time_step"] = args.time_step
    if args.end_time is not None:
        data["solver"]["end_time"] = args.end_time
    if args.output_folder is not None:
        data["output"]["folder"] = args.output_folder
    return FSISimulationConfig.from_dict(data)


def validate_config(config_path: str, args: Optional[argparse.Namespace] = None) -> bool:
    """Print the case summary; False when it fails to load or has warnings."""
    try:
        config = load_config(config_path, args)
    except (KeyError, TypeError, ValueError) as e:
        print(f"\n✗ Invalid case file {config_path}: {e}")
        return False

    print(f"Checking {config_path}")
    print("=" * 50)
    print(config)

    warnings = config.validate()
    if not warnings:
        print("\n✓ Configuration is valid")
        return True
    print(f"\n{len(warnings)} warning(s):")
    for warning in warnings:
        print(f"  ⚠️  {warning}")
    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fem-fsi",
        description="Partitioned FSI: hyperelastic solid coupled to a fluid on an adaptive mesh.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s case.yaml                       Run the case
  %(prog)s case.yaml --end-time 0.05       Run a shorter version of the case
  %(prog)s case.yaml --validate            Check the case file
  %(prog)s --template > case.yaml          Start from the template
        """,
    )
    parser.add_argument("config", nargs="?", help="YAML case file")

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--template", "-t", action="store_true", help="Print the case template and exit")
    mode.add_argument("--validate", action="store_true", help="Check the case file and exit")
    mode.add_argument("--preview", "-p", action="store_true", help="Print the case summary and exit")

    overrides = parser.add_argument_group("overrides")
    overrides.add_argument("--time-step", type=float, help="Replace solver.time_step")
    overrides.add_argument("--end-time", type=float, help="Replace solver.end_time")
    overrides.add_argument("--output-folder", help="Replace output.folder")

    parser.add_argument(
        "--workdir", "-w", help="Directory relative output folders are resolved against"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.template:
        print_template()
        return 0

    if not args.config:
        parser.print_help()
        return 1

    config_path = Path(args.config)
    if not config_path.is_file():
        print(f"Error: case file not found: {config_path}")
        return 1

    setup_logging(args.verbose)

    if args.validate:
        return 0 if validate_config(str(config_path), args) else 1

    try:
        config = load_config(str(config_path), args)
    except (KeyError, TypeError, ValueError) as e:
        print(f"Error: invalid case file {config_path}: {e}")
        return 1

    if args.preview:
        print(config)
        return 0

    from fem_fsi.solvers.fsi_runner import FSIRunner

    runner = FSIRunner(config, args.workdir)
    runner.config_path = config_path
    try:
        runner.run()
    except KeyboardInterrupt:
        print("\nInterrupted; results written so far are kept")
        return 130
    except (RuntimeError, ValueError) as e:
        logger.exception("Simulation failed")
        print(f"\nError: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
