"""
run_generate.py
===============
CLI entrypoint for the spiral-galaxy point-cloud generator.

All parameters are optional; unspecified parameters fall back to a JSON
preset (``--params``) when given, and to the defaults defined in
``GalaxyParams`` otherwise.  Explicit flags always win over the preset.

Quick start
-----------
    python run_generate.py

With custom parameters::

    python run_generate.py \\
        --count 200000 \\
        --radius 8 \\
        --branches 5 \\
        --spin 1.2 \\
        --randomness 0.3 \\
        --randomness_power 4 \\
        --inside_color "#ff6030" \\
        --outside_color "#1b3984" \\
        --seed 7

Rotate it in a window::

    python run_generate.py --rotate --animate

Save an image without opening a window::

    python run_generate.py --seed 7 --save galaxy.png --no_show
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Optional, Sequence

import matplotlib.pyplot as plt

from spiralgen import GalaxyGenerator, GalaxyParams, InvalidParameter, check_cloud
from plot_galaxy import animate, make_surface


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="run_generate.py",
        description=(
            "Procedural spiral-galaxy point-cloud generator.\n"
            "Builds the cloud, prints acceptance checks, and renders it."
        ),
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Every parameter defaults to None so that preset values can fill the
    # gaps; help text shows the GalaxyParams default instead.
    d = GalaxyParams()

    # ── Preset ────────────────────────────────────────────────────────────
    p.add_argument(
        "--params", type=str, default=None,
        metavar="FILE",
        help="JSON parameter preset.  Explicit flags override its values.",
    )

    # ── Structure ─────────────────────────────────────────────────────────
    p.add_argument(
        "--count", type=int, default=None,
        metavar="N",
        help=f"Number of points to generate (default {d.count}).",
    )
    p.add_argument(
        "--radius", type=float, default=None,
        metavar="R",
        help=f"Maximum galaxy radius (default {d.radius}).",
    )
    p.add_argument(
        "--branches", type=int, default=None,
        metavar="N",
        help=f"Number of spiral arms (default {d.branches}).",
    )
    p.add_argument(
        "--spin", type=float, default=None,
        metavar="S",
        help=f"Angular twist per unit radius (default {d.spin}).",
    )

    # ── Scatter ───────────────────────────────────────────────────────────
    p.add_argument(
        "--randomness", type=float, default=None,
        metavar="A",
        help=f"Scatter amplitude relative to radius (default {d.randomness}).",
    )
    p.add_argument(
        "--randomness_power", type=float, default=None,
        metavar="P",
        help=(
            "Scatter concentration exponent; larger values pull points onto "
            f"the arms (default {d.randomness_power})."
        ),
    )

    # ── Colours ───────────────────────────────────────────────────────────
    p.add_argument(
        "--inside_color", default=None,
        metavar="COLOR",
        help=f"Colour at the centre (default {d.inside_color}).",
    )
    p.add_argument(
        "--outside_color", default=None,
        metavar="COLOR",
        help=f"Colour at the rim (default {d.outside_color}).",
    )

    # ── Rendering ─────────────────────────────────────────────────────────
    p.add_argument(
        "--size", type=float, default=None,
        metavar="S",
        help=f"Point diameter in scene units (default {d.size}).",
    )
    p.add_argument(
        "--rotate", dest="rotation_active", action="store_true", default=None,
        help="Spin the galaxy while animating.",
    )
    p.add_argument(
        "--rotation_speed", type=float, default=None,
        metavar="RAD",
        help=f"Rotation per frame in radians (default {d.rotation_speed}).",
    )
    p.add_argument(
        "--counterclockwise", dest="rotation_clockwise",
        action="store_false", default=None,
        help="Rotate counter-clockwise instead of clockwise.",
    )

    # ── Reproducibility ───────────────────────────────────────────────────
    p.add_argument(
        "--seed", type=int, default=None,
        metavar="S",
        help="Random seed for reproducible output (default: fresh entropy).",
    )

    # ── Output ────────────────────────────────────────────────────────────
    p.add_argument(
        "--save", default=None, metavar="FILE",
        help="Save the rendered figure to FILE (png/pdf/svg).",
    )
    p.add_argument(
        "--animate", action="store_true",
        help="Run the render loop (rotation) instead of a still view.",
    )
    p.add_argument(
        "--no_show", action="store_true",
        help="Do not open an interactive window.",
    )
    p.add_argument(
        "--no_checks", action="store_true",
        help="Skip the acceptance-test summary.",
    )

    return p


def params_from_args(args: argparse.Namespace) -> GalaxyParams:
    """Merge preset file (if any) and explicit flags into a snapshot."""
    preset: dict = {}
    if args.params:
        with open(args.params) as f:
            preset = json.load(f)
        if not isinstance(preset, dict):
            raise InvalidParameter(
                f"preset must be a JSON object (got {type(preset).__name__})")

    explicit = {
        k: v for k, v in vars(args).items()
        if v is not None and k != "params"
    }
    return GalaxyParams.from_dict(preset, **explicit)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args   = parser.parse_args(argv)

    try:
        params = params_from_args(args)
    except (OSError, json.JSONDecodeError, InvalidParameter) as exc:
        parser.error(f"cannot read preset: {exc}")

    # Print parameters so the user can confirm them before waiting
    print("Configuration")
    print("─" * 40)
    for field, value in params.to_dict().items():
        print(f"  {field:<20} = {value}")
    print()

    fig, surface = make_surface()
    try:
        cloud = GalaxyGenerator(surface).generate(params)
    except InvalidParameter as exc:
        plt.close(fig)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    ok = True
    if not args.no_checks:
        ok = check_cloud(cloud, params)

    if args.save:
        fig.savefig(args.save, dpi=150, bbox_inches="tight",
                    facecolor=fig.get_facecolor())
        print(f"Saved figure to {args.save}")

    if not args.no_show:
        # The animation stops if its object is garbage-collected
        anim = animate(fig, surface, params) if args.animate else None  # noqa: F841
        plt.show()
    plt.close(fig)

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
