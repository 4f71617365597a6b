#!/usr/bin/env python3
"""
Code Graph Pipeline - command line entry point

Builds a knowledge graph of paths, classes and functions from extraction
records, summarizes it bottom-up with a language model and serves semantic
search over the descriptions.
"""

import argparse
import json
import sys

from codegraph.config import settings
from codegraph.exceptions import CodeGraphError
from codegraph.embedding.model_gateway import create_model_gateway
from codegraph.pipeline import CodeGraphPipeline
from codegraph.utils.logger import app_logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Code Graph Pipeline")
    parser.add_argument("--traversal", choices=["recursive", "iterative"], default=None,
                        help="Summarizer traversal (default from settings)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyse = subparsers.add_parser("analyse", help="Resolve records, index and summarize")
    analyse.add_argument("records_dir", help="Directory of extraction record files")
    analyse.add_argument("--root", default=None, help="Full path of the scan root")
    analyse.add_argument("--pause", type=float, default=None,
                         help="Seconds to pause after a throttled model call")

    summarize = subparsers.add_parser("summarize", help="Summarize the graph from its scan root")
    summarize.add_argument("--root", default=None, help="Full path of the scan root")
    summarize.add_argument("--pause", type=float, default=None,
                           help="Seconds to pause after a throttled model call")

    reconcile = subparsers.add_parser("reconcile", help="Replay graph descriptions into the vector indices")
    reconcile.add_argument("--only-missing", action="store_true", help="Skip documents already indexed")

    search = subparsers.add_parser("search", help="Semantic search over one entity kind")
    search.add_argument("query")
    search.add_argument("--kind", default="function", help="path, class or function")
    search.add_argument("--top-k", type=int, default=settings.search_top_k)
    search.add_argument("--hops", type=int, default=settings.call_expansion_hops)

    subparsers.add_parser("clear", help="Drop the whole graph and all vector indices")
    subparsers.add_parser("stats", help="Show graph and index statistics")
    return parser


MODEL_COMMANDS = ("analyse", "summarize", "reconcile", "search")


def run(args) -> dict:
    gateway = None
    if args.command in MODEL_COMMANDS:
        gateway = create_model_gateway(getattr(args, "pause", None))
    pipeline = CodeGraphPipeline(gateway=gateway, traversal=args.traversal)
    try:
        if args.command == "analyse":
            return pipeline.analyse(args.records_dir, args.root)
        if args.command == "summarize":
            return {"root_description": pipeline.summarize(args.root),
                    "failed_subtrees": pipeline.summarizer.failed}
        if args.command == "reconcile":
            return pipeline.reconcile(only_missing=args.only_missing)
        if args.command == "search":
            results = pipeline.search(args.query, args.kind, args.top_k, args.hops)
            return {"results": [result.to_dict() for result in results]}
        if args.command == "clear":
            return pipeline.clear_all()
        return pipeline.stats()
    finally:
        pipeline.close()


def main():
    """Main entry point."""
    args = build_parser().parse_args()
    app_logger.info(f"Running command: {args.command}")

    try:
        result = run(args)
    except KeyboardInterrupt:
        app_logger.info("Interrupted")
        sys.exit(130)
    except CodeGraphError as e:
        app_logger.error(f"{args.command} failed: {e}")
        sys.exit(1)

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
