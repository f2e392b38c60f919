"""
Command-line entry point: mesh directory in, aligned landmark array out.

Example:
    lithic-morph scans/ --reference arch_017 --output aligned.npz \\
        --group-pattern "^([a-z]+)_" --scores scores.csv
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from lithic_morph.config import PipelineConfig
from lithic_morph.errors import LithicMorphError
from lithic_morph.io import ARRAY_FORMATS, write_landmark_array
from lithic_morph.pca import pca, scores_table
from lithic_morph.pipeline import run_pipeline

logger = logging.getLogger("lithic_morph")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lithic-morph",
        description="Slice 3D lithic scans into landmark stacks and Procrustes-align them",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("input", metavar="DIR", help="Directory of mesh files.")
    parser.add_argument(
        "--reference",
        required=True,
        help="Reference specimen: file name without extension, or index into the sorted files.",
    )
    parser.add_argument(
        "--output",
        required=True,
        metavar="FILE",
        help="Aligned landmark array (.npz or .csv).",
    )
    parser.add_argument(
        "--config",
        metavar="FILE",
        help="JSON or YAML config file. Command-line flags override it.",
    )
    parser.add_argument("--group-pattern", metavar="REGEX", help="Group label pattern applied to file names.")
    parser.add_argument("--scores", metavar="FILE", help="Write PC scores to this CSV file.")
    parser.add_argument("--raw", metavar="FILE", help="Also write the unaligned landmark array.")
    parser.add_argument(
        "--exclude-failures",
        action="store_true",
        help="Exclude specimens that cannot be read or sliced instead of aborting.",
    )
    parser.add_argument("--workers", type=int, help="Threads for landmark extraction.")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug).")
    return parser


def _resolve_config(args: argparse.Namespace) -> PipelineConfig:
    values = PipelineConfig.load(args.config).to_dict() if args.config else {}
    if args.exclude_failures:
        values["on_error"] = "exclude"
    if args.workers is not None:
        values["workers"] = args.workers
    return PipelineConfig.from_dict(values)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    level = [logging.WARNING, logging.INFO, logging.DEBUG][min(args.verbose, 2)]
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        config = _resolve_config(args)
    except (OSError, ValueError) as exc:
        parser.error(str(exc))

    for option, path in (("--output", args.output), ("--raw", args.raw)):
        if path and Path(path).suffix.lower() not in ARRAY_FORMATS:
            parser.error(
                f"{option} must end in one of {', '.join(ARRAY_FORMATS)}, got {path}"
            )

    t_start = time.perf_counter()
    try:
        result = run_pipeline(
            args.input,
            reference=args.reference,
            config=config,
            group_pattern=args.group_pattern,
        )
    except (LithicMorphError, ValueError, IndexError, OSError) as exc:
        logger.error("Pipeline failed: %s", exc)
        return 1
    elapsed = time.perf_counter() - t_start

    alignment = result.alignment
    write_landmark_array(alignment.aligned, args.output, result.names, result.groups)
    if args.raw:
        write_landmark_array(result.landmarks, args.raw, result.names, result.groups)
    if args.scores:
        table = scores_table(pca(alignment.aligned), result.names, result.groups)
        table.to_csv(args.scores, index=False)

    print(f"Aligned {len(result.names)} specimens in {elapsed:.2f}s -> {args.output}")
    if not alignment.converged:
        print(f"Warning: alignment did not converge after {alignment.iterations} iterations")
    for exclusion in result.exclusions:
        print(f"Excluded {exclusion.name} ({exclusion.stage}): {exclusion.reason}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
