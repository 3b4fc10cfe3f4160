"""
Entry point: solve the problem shown in one or more screenshots.

Fast mode asks a single model for an answer. Pro mode classifies the
question, extracts and verifies the problem, fans out solution attempts
and picks the best one.
"""

from __future__ import annotations

import argparse
import asyncio

from screen_solver.core.config import SolverConfig
from screen_solver.core.orchestrator import (
    print_fast,
    print_state,
    print_summary,
    run_fast,
    run_pro,
)
from screen_solver.utils.imaging import read_image


def main():
    parser = argparse.ArgumentParser(description="Solve a problem from screenshots.")
    parser.add_argument("images", nargs="+", help="Screenshot files (PNG/JPEG)")
    parser.add_argument("--mode", choices=("fast", "pro"), default="pro")
    parser.add_argument("--model", default=None, help="Override the default model")
    parser.add_argument("--no-variant", action="store_true", help="Fast mode: skip the buggy variant")
    args = parser.parse_args()

    config = SolverConfig.from_env().with_model(args.model or "")
    images = [read_image(p) for p in args.images]

    if args.mode == "fast":
        fast = asyncio.run(run_fast(images, config, with_variant=not args.no_variant))
        print_fast(fast)
    else:
        result = asyncio.run(run_pro(images, config, on_progress=print_state))
        print_summary(result)


if __name__ == "__main__":
    main()
