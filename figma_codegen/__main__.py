"""Command-line entry point.

Usage:
    # Local design tree + image directory:
    python -m figma_codegen generate --tree design.json --vocabulary tokens.json \
        --images ./images --out ./generated

    # Straight from a Figma file (needs FIGMA_TOKEN):
    python -m figma_codegen generate --figma-file 6kGd851qaAX4TiL44vpIrO \
        --node 16650-538 --vocabulary tokens.json --out ./generated

Exit code 0 on success (warnings are printed), 1 on a fatal error.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List, Optional

from .assets.cache import AssetCache
from .engine import GenerationResult, generate_from_source, summarize
from .errors import CodegenError
from .integrations.figma_client import FigmaClient, FigmaClientError
from .integrations.source import LocalDesignSource
from .logging_config import get_cli_logger
from .spec.vocabulary import load_vocabulary


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="figma_codegen",
        description="Translate a design tree into a React component, CSS module and asset manifest",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    gen = sub.add_parser("generate", help="Generate code for one design tree")
    src = gen.add_mutually_exclusive_group(required=True)
    src.add_argument("--tree", type=Path, help="Path to a raw design tree JSON file")
    src.add_argument("--figma-file", help="Figma file key (use with --node)")
    gen.add_argument("--node", help="Figma node id, '16650:538' or '16650-538'")
    gen.add_argument("--vocabulary", type=Path, required=True, help="Token vocabulary JSON")
    gen.add_argument("--images", type=Path, help="Directory holding local image payloads")
    gen.add_argument("--out", type=Path, required=True, help="Output directory")
    gen.add_argument("--cache-dir", type=Path, help="Persistent asset cache directory")
    gen.add_argument("--name", help="Component name (default: derived from the root node)")
    gen.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _print_report(report_dict: dict) -> None:
    for issue in report_dict["warnings"]:
        print(f"  WARNING [{issue['rule']}] {issue['detail']}")
    for issue in report_dict["errors"]:
        print(f"  ERROR   [{issue['rule']}] {issue['detail']}")


async def _run(args: argparse.Namespace) -> GenerationResult:
    vocabulary = load_vocabulary(args.vocabulary)
    cache = AssetCache(args.cache_dir) if args.cache_dir else None

    if args.tree is not None:
        tree_path = args.tree.resolve()
        source = LocalDesignSource(tree_path.parent, image_dir=args.images)
        return await generate_from_source(
            tree_path.name, vocabulary, source,
            output_dir=args.out, cache=cache, component_name=args.name,
        )

    async with FigmaClient() as client:
        return await generate_from_source(
            f"{args.figma_file}/{args.node}", vocabulary, client,
            output_dir=args.out, cache=cache, component_name=args.name,
        )


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.figma_file and not args.node:
        parser.error("--figma-file requires --node")

    logger = get_cli_logger(verbose=args.verbose)

    try:
        result = asyncio.run(_run(args))
    except CodegenError as e:
        logger.error(f"generation failed: {type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        if e.report is not None:
            _print_report(e.report.to_dict())
        return 1
    except FigmaClientError as e:
        logger.error(f"Figma client error: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    summary = summarize(result)
    for path in summary["written"]:
        print(f"  wrote {path}")
    _print_report(summary["report"])
    if args.verbose:
        print(json.dumps(summary, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
