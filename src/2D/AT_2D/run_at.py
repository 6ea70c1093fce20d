"""
run_at.py
=========

Command line driver of the Ambrosio–Tortorelli reconstruction/segmentation.

    run_at.py -i image.pgm [-o AT] [-l λ | -1 λ₁ -2 λ₂ -r ratio]
              [-a α] [-e ε] [-g h] [-n nbiter] [-c config.json] [-p] [-q]

For every λ of the schedule the driver appends one row to ``<output>.txt``
and writes ``<output>-l<λ>-u.pgm`` (reconstructed image) and
``<output>-l<λ>-v.pgm`` (edge map in doubled coordinates).  Parameters not
given on the command line come from the optional JSON file ``--config``,
then from the defaults of :class:`ATConfig`.

Exit status is 1 for ``--help``, unparsable options, a missing ``--input``,
an invalid configuration or an unreadable image, and 0 after a run.
"""
import argparse
import sys
import time
from typing import List, Optional

from pydantic import ValidationError

from at_config import ATConfig, load_params
from at_energies import EnergyReport
from at_solver import AlternatingSolver, LambdaResult
from grid_calculus import GridCalculus
from image_fields import (
    form0_to_image, form1_to_image, image_to_form0, output_paths, read_grayscale, write_pgm,
)
from at_tracing import format_time_hms, trace_block
from at_plots import plot_energy_history

FUNCTIONAL_TEXT = """Computes the Ambrosio-Tortorelli reconstruction/segmentation of an input image.

 /
 | a.(u-g)^2 + v^2 |grad u|^2 + le.|grad v|^2 + (l/4e).(1-v)^2
 /
"""


class UsageError(Exception):
    """Command line could not be parsed."""


class _ATArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _ATArgumentParser(
        prog="run_at.py", add_help=False,
        description=FUNCTIONAL_TEXT, formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    opt = parser.add_argument
    opt("-h", "--help", action="store_true", help="display this message")
    opt("-i", "--input", type=str, help="the input image filename.")
    opt("-o", "--output", type=str, default="AT", help="the output image basename.")
    opt("-l", "--lambda", dest="lam", type=float, help="the parameter lambda (sets lambda-1 = lambda-2).")
    opt("-1", "--lambda-1", dest="lambda_1", type=float, help="the initial parameter lambda (l1). [0.3125]")
    opt("-2", "--lambda-2", dest="lambda_2", type=float, help="the final parameter lambda (l2). [0.00005]")
    opt("-r", "--lambda-ratio", dest="lambda_ratio", type=float,
        help="the division ratio for lambda from l1 to l2. [sqrt(2)]")
    opt("-a", "--alpha", type=float, help="the parameter alpha. [1.0]")
    opt("-e", "--epsilon", type=float, help="the parameter epsilon. [1.0]")
    opt("-g", "--gridstep", type=float, help="the parameter h, i.e. the gridstep. [1.0]")
    opt("-n", "--nbiter", type=int, help="the maximum number of iterations. [10]")
    opt("-c", "--config", type=str, help="JSON file with default parameters.")
    opt("-p", "--plot", action="store_true", help="also save <output>-energies.png.")
    opt("-q", "--quiet", action="store_true", help="do not print the progress trace.")
    return parser


def usage(parser: argparse.ArgumentParser, message: Optional[str] = None) -> int:
    if message:
        print(f"Error checking program options: {message}", file=sys.stderr)
    print(f"Usage: {parser.prog} -i toto.pgm", file=sys.stderr)
    print(parser.format_help(), file=sys.stderr)
    return 1


def config_from_args(args: argparse.Namespace) -> ATConfig:
    """Merge command line flags over the JSON configuration (or the defaults)."""
    base = load_params(args.config) if args.config else ATConfig()
    overrides = {name: getattr(args, name)
                 for name in ("lambda_1", "lambda_2", "lambda_ratio", "alpha", "epsilon", "gridstep", "nbiter")
                 if getattr(args, name) is not None}
    config = base.updated(**overrides)
    if args.lam is not None:
        config = config.single_lambda(args.lam)
    return config


def run(config: ATConfig, input_path: str, output: str = "AT",
        verbose: bool = True, plot: bool = False) -> List[LambdaResult]:
    """Read the image, run the λ schedule, write the report and the rasters."""
    start = time.perf_counter()
    with trace_block("Reading image", verbose):
        image = read_grayscale(input_path)

    with trace_block("Creating calculus", verbose):
        calculus = GridCalculus.from_shape(image.shape)
        g = image_to_form0(calculus, image)
        if verbose:
            print(f"  {calculus}")

    solver = AlternatingSolver(calculus, g, config, verbose=verbose)

    with EnergyReport(output + ".txt") as report:
        def export(result: LambdaResult) -> None:
            report.append(result.lam, config.alpha, result.eps, result.energies)
            u_path, v_path = output_paths(output, result.lam)
            write_pgm(form0_to_image(calculus, result.u, verbose=verbose), u_path)
            write_pgm(form1_to_image(calculus, result.v, verbose=verbose), v_path)

        results = solver.solve(on_lambda=export)
        rows = list(report.rows)

    if plot:
        plot_energy_history(rows, filename=output + "-energies.png")

    failed = [o for r in results for o in r.outcomes if o.failed]
    if failed:
        print(f"[Warning] {len(failed)} (lambda, eps) configuration(s) aborted on a failed linear solve.")
    if verbose:
        print(f"Run complete: {len(results)} lambda value(s) in {format_time_hms(time.perf_counter() - start)}.")
    return results


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except UsageError as e:
        return usage(parser, str(e))
    if args.help or not args.input:
        return usage(parser)

    try:
        config = config_from_args(args)
    except ValidationError as e:
        return usage(parser, f"invalid parameters\n{e}")

    try:
        run(config, args.input, args.output, verbose=not args.quiet, plot=args.plot)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
