"""CLI main module with subcommands for phase, analyze, sensitivity, design and validate.

Usage:
    python -m dee_core.cli phase --opl-mm 1.0 --wavelength-nm 632.8
    python -m dee_core.cli analyze --config lens.yaml --out out_dir
    python -m dee_core.cli sensitivity --config lens.yaml --hessian
    python -m dee_core.cli design --config lens.yaml --out out_dir
    python -m dee_core.cli validate
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from ..bridge import in_waves, phase_derivative, quantum_phase
from ..core.config import load_config, save_config
from ..core.errors import DEEError
from ..core.logging import setup_logging
from ..core.units import nm_to_mm, rad_to_deg


def _print_table(rows: list[tuple[str, str]]) -> None:
    print("-" * 40)
    for name, value in rows:
        print(f"  {name:22} {value}")
    print("-" * 40)


def cmd_phase(args: argparse.Namespace) -> int:
    """Apply the bridge identity to a single optical path length."""
    wavelength_mm = nm_to_mm(args.wavelength_nm)
    phi = quantum_phase(args.opl_mm, wavelength_mm)
    slope = float(phase_derivative(args.opl_mm, wavelength_mm))

    print("Bridge identity: phi = 2*pi*W/lambda")
    _print_table(
        [
            ("W (mm)", f"{args.opl_mm:.9g}"),
            ("lambda (nm)", f"{args.wavelength_nm:.6g}"),
            ("phi (rad)", f"{phi:.12g}"),
            ("W (waves)", f"{in_waves(args.opl_mm, wavelength_mm):.12g}"),
            ("dphi/dW (rad/mm)", f"{slope:.12g}"),
        ]
    )
    return 0


def cmd_analyze(args: argparse.Namespace) -> int:
    """Forward analysis of a prescription."""
    from ..design import analyze
    from ..eikonal import wavefront_map
    from ..io import save_report, write_wavefront_tiff

    cfg = load_config(args.config)
    system = cfg.to_system()
    fields = cfg.object.fields()
    samples = args.samples or cfg.pupil.samples
    report = analyze(system, fields, samples)

    print(f"Analysis of '{cfg.name}' at {cfg.wavelength_nm:g} nm")
    _print_table(
        [
            ("EFL (mm)", "afocal" if report.efl_mm is None else f"{report.efl_mm:.6f}"),
            ("BFD (mm)", "afocal" if report.bfd_mm is None else f"{report.bfd_mm:.6f}"),
        ]
    )
    for fr in report.fields:
        label = f"{rad_to_deg(fr.field):.3f} deg" if system.is_infinite_conjugate else f"{fr.field:.3f} mm"
        print(f"Field {label}")
        _print_table(
            [
                ("chief OPL (mm)", f"{fr.chief_opl_mm:.9f}"),
                ("chief phase (rad)", f"{fr.chief_phase_rad:.6f}"),
                ("RMS OPD (waves)", f"{fr.rms_opd_waves:.6f}"),
            ]
        )

    if args.out:
        out_path = Path(args.out)
        out_path.mkdir(parents=True, exist_ok=True)
        save_report(report, out_path / "report.json")
        for i, f in enumerate(fields):
            opd = wavefront_map(system, f, samples)
            write_wavefront_tiff(
                out_path / f"wavefront_field{i:02d}.tif",
                opd,
                {
                    "name": cfg.name,
                    "wavelength_nm": cfg.wavelength_nm,
                    "field": f,
                    "pupil_radius_mm": cfg.pupil.radius_mm,
                },
            )
        print("Wrote", out_path / "report.json")
    return 0


def _engine_from_config(cfg):  # type: ignore[no-untyped-def]
    from ..engine import DifferentiableEikonalEngine, combined_merit

    if not cfg.variables:
        raise DEEError("Config defines no design variables")
    system = cfg.to_system()
    merit = combined_merit(
        efl_mm=cfg.target.efl_mm,
        w_efl=cfg.target.w_efl,
        w_wavefront=cfg.target.w_wavefront,
        fields=cfg.object.fields(),
        samples=cfg.pupil.samples,
    )
    return DifferentiableEikonalEngine(system, cfg.design_variables(), merit)


def cmd_sensitivity(args: argparse.Namespace) -> int:
    """Print merit gradient (and Hessian) over the configured variables."""
    cfg = load_config(args.config)
    engine = _engine_from_config(cfg)
    x0 = engine.x0
    value, grad = engine.value_and_gradient(x0)

    print(f"Sensitivity of '{cfg.name}'")
    print(f"  merit = {value:.12g}")
    _print_table([(name, f"{g:+.6e}") for name, g in zip(engine.variables.names, grad)])

    if args.hessian:
        hess = engine.hessian(x0)
        print("Hessian:")
        with np.printoptions(precision=6, suppress=False, linewidth=120):
            print(hess)
    return 0


def cmd_design(args: argparse.Namespace) -> int:
    """Inverse design: optimize the configured variables."""
    from ..design import solve
    from ..io import save_report

    cfg = load_config(args.config)
    engine = _engine_from_config(cfg)
    result = solve(engine, maxiter=args.maxiter, strict=args.strict)

    print(f"Design of '{cfg.name}'")
    _print_table(
        [
            ("initial merit", f"{result.initial_merit:.6e}"),
            ("final merit", f"{result.merit:.6e}"),
            ("iterations", str(result.iterations)),
            ("converged", str(result.success)),
        ]
        + [(name, f"{v:.9g}") for name, v in zip(engine.variables.names, result.x)]
    )

    if args.out:
        out_path = Path(args.out)
        out_path.mkdir(parents=True, exist_ok=True)
        save_config(cfg.with_system(result.system), out_path / "optimized.yaml")
        save_report(result.to_dict(engine.variables.names), out_path / "design.json")
        print("Wrote", out_path / "optimized.yaml")
    return 0


def cmd_validate(args: argparse.Namespace) -> int:  # noqa: ARG001
    """Run the analytic reference cases."""
    from ..validation import run_all

    print("Running validation suite...")
    results = run_all()

    print("\nValidation Results:")
    print("-" * 60)
    for r in results:
        status = "PASS" if r.passed else "FAIL"
        print(f"  {r.name:34} {status}  (error {r.error:.2e})")
    print("-" * 60)

    if all(r.passed for r in results):
        print("\nAll validation cases passed")
        return 0
    print("\nSome validation cases failed")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dee",
        description="Differentiable Eikonal Engine CLI",
    )
    parser.add_argument("--log-file", type=Path, default=None, help="JSON lines log file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    parser_phase = subparsers.add_parser("phase", help="Convert an optical path length to phase")
    parser_phase.add_argument("--opl-mm", type=float, required=True, help="Optical path length in mm")
    parser_phase.add_argument(
        "--wavelength-nm", type=float, required=True, help="Vacuum wavelength in nm"
    )
    parser_phase.set_defaults(func=cmd_phase)

    parser_analyze = subparsers.add_parser("analyze", help="Forward analysis of a prescription")
    parser_analyze.add_argument(
        "--config", "-c", type=Path, required=True, help="Path to YAML/JSON prescription"
    )
    parser_analyze.add_argument("--out", "-o", type=Path, default=None, help="Output directory")
    parser_analyze.add_argument("--samples", type=int, default=None, help="Pupil samples override")
    parser_analyze.set_defaults(func=cmd_analyze)

    parser_sens = subparsers.add_parser(
        "sensitivity", help="Gradient (and Hessian) of the merit over design variables"
    )
    parser_sens.add_argument(
        "--config", "-c", type=Path, required=True, help="Path to YAML/JSON prescription"
    )
    parser_sens.add_argument("--hessian", action="store_true", help="Also print the Hessian")
    parser_sens.set_defaults(func=cmd_sensitivity)

    parser_design = subparsers.add_parser("design", help="Inverse design of the design variables")
    parser_design.add_argument(
        "--config", "-c", type=Path, required=True, help="Path to YAML/JSON prescription"
    )
    parser_design.add_argument("--out", "-o", type=Path, default=None, help="Output directory")
    parser_design.add_argument("--maxiter", type=int, default=200, help="Iteration cap")
    parser_design.add_argument(
        "--strict", action="store_true", help="Fail when the optimizer does not converge"
    )
    parser_design.set_defaults(func=cmd_design)

    parser_validate = subparsers.add_parser("validate", help="Run analytic reference cases")
    parser_validate.set_defaults(func=cmd_validate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_file, logging.DEBUG if args.verbose else logging.WARNING)
    try:
        return int(args.func(args) or 0)
    except (DEEError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
