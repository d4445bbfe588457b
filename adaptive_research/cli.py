#!/usr/bin/env python3
"""CLI for adaptive citation research."""

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path

from dotenv import load_dotenv

from .config import FetchThresholds, TreeConfig
from .deep_research import DeepResearchRunner
from .errors import ResearchError
from .events import LoggingEventSink
from .fetch_loop import AdaptiveFetchLoop
from .query_generator import AnthropicQueryGenerator
from .safe_io import write_export
from .search import TavilyCitationFetcher
from .strategy import FetchingStrategy, QueryAnalysis, UserProfile, determine_strategy
from .tree import ExplorationTree

INTENTS = ("comparison", "research", "analysis", "factual")
EXPERTISE_LEVELS = ("beginner", "intermediate", "expert")


def build_strategy(args: argparse.Namespace) -> FetchingStrategy:
    """Derive the fetching strategy from command-line options."""
    analysis = QueryAnalysis(
        complexity_score=args.complexity,
        intent=args.intent or "",
    )
    preferences = frozenset(p.strip() for p in args.prefer if p.strip())
    profile = UserProfile(
        domain=args.domain,
        expertise_level=args.expertise,
        preferences=preferences,
    )
    return determine_strategy(analysis, profile, improvement_round=args.improve)


def format_citations(citations: list) -> str:
    """Render selected citations as a numbered markdown list."""
    if not citations:
        return "No citations met the quality bar."
    lines = []
    for i, c in enumerate(citations, 1):
        lines.append(f"{i}. [{c.title or c.url}]({c.url})")
        lines.append(f"   {c.domain} | relevance {c.relevance_score:.2f} | {c.word_count} words")
        if c.snippet:
            lines.append(f"   {c.snippet[:200]}")
    return "\n".join(lines)


def format_tree_summary(tree: ExplorationTree) -> str:
    """One line per node, indented by depth, followed by session statistics."""
    lines = [f"Session {tree.session_id}: {tree.status.name}"]
    stack = [(tree.root, 0)]
    while stack:
        node, depth = stack.pop()
        lines.append(
            f"{'  ' * depth}- [{node.id}] {node.label} "
            f"({node.status.value}, {len(node.learnings)} learnings)"
        )
        children = tree.children(node.id)
        stack.extend((child, depth + 1) for child in reversed(children))
    stats = tree.statistics()
    lines.append(
        f"Nodes: {stats['total_nodes']}, completed: {stats['completed_nodes']}, "
        f"errors: {stats['error_nodes']}, learnings: {stats['total_learnings']}"
    )
    return "\n".join(lines)


def export_tree(tree: ExplorationTree, path: Path) -> None:
    """Write the tree view and statistics (YAML, or JSON for .json paths)."""
    write_export(path, {
        "statistics": tree.statistics(),
        "tree": tree.to_tree_view(),
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Adaptive citation fetching and tree-structured deep research.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  adaptive-research "How do mRNA vaccines work?"
  adaptive-research "Compare Rust and Go for services" --intent comparison
  adaptive-research "Causes of the 2008 crisis" --deep --max-depth 2 --breadth 3 --tree-out tree.yaml
        """,
    )
    parser.add_argument("query", help="The research query")
    parser.add_argument(
        "--complexity", "-c",
        type=int,
        default=5,
        choices=range(1, 11),
        metavar="1-10",
        help="Query complexity score (default: 5)",
    )
    parser.add_argument(
        "--intent",
        choices=INTENTS,
        default=None,
        help="Query intent; comparison/research/analysis adjust the strategy",
    )
    parser.add_argument(
        "--expertise",
        choices=EXPERTISE_LEVELS,
        default="intermediate",
        help="User expertise level (expert raises the citation target)",
    )
    parser.add_argument(
        "--domain",
        default=None,
        help="User profile domain used for domain-scoped query variations",
    )
    parser.add_argument(
        "--prefer",
        action="append",
        default=[],
        metavar="PREFERENCE",
        help='User preference, repeatable (e.g. "comprehensive", "detailed")',
    )
    parser.add_argument(
        "--improve",
        action="store_true",
        help="Treat this as an improvement round (larger target, alternative queries)",
    )
    parser.add_argument(
        "--deep",
        action="store_true",
        help="Run tree-structured deep research instead of a single fetch",
    )
    parser.add_argument(
        "--max-depth",
        type=int,
        default=TreeConfig.max_depth,
        help=f"Maximum tree depth for --deep (default: {TreeConfig.max_depth})",
    )
    parser.add_argument(
        "--breadth",
        type=int,
        default=TreeConfig.breadth_per_level,
        help=f"Children per node for --deep (default: {TreeConfig.breadth_per_level})",
    )
    parser.add_argument(
        "--tree-out",
        type=Path,
        default=None,
        metavar="PATH",
        help="Export the exploration tree as YAML, or JSON for .json paths (with --deep)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducible query and citation sampling",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def configure_logging(verbose: bool) -> None:
    # Default: INFO to stderr with a clean format.
    # --verbose: DEBUG with module-prefixed format for diagnostics.
    handler = logging.StreamHandler(sys.stderr)
    package_logger = logging.getLogger("adaptive_research")
    if verbose:
        handler.setFormatter(logging.Formatter("%(levelname)s: %(name)s: %(message)s"))
        package_logger.setLevel(logging.DEBUG)
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.setLevel(logging.INFO)
    package_logger.addHandler(handler)


def main(argv: list[str] | None = None) -> None:
    # Load environment variables from .env file
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.query.strip():
        parser.error("query cannot be empty")
    if args.tree_out is not None and not args.deep:
        print("Warning: --tree-out ignored without --deep.", file=sys.stderr)

    configure_logging(args.verbose)

    try:
        strategy = build_strategy(args)
        rng = random.Random(args.seed)
        loop = AdaptiveFetchLoop(TavilyCitationFetcher(), FetchThresholds(), rng=rng)

        if args.deep:
            tree_config = TreeConfig(max_depth=args.max_depth, breadth_per_level=args.breadth)
            runner = DeepResearchRunner(
                loop,
                AnthropicQueryGenerator(),
                tree_config=tree_config,
                strategy=strategy,
                event_sink=LoggingEventSink(),
            )
            tree = asyncio.run(runner.run(args.query))
            print(format_tree_summary(tree))
            if args.tree_out is not None:
                export_tree(tree, args.tree_out)
                print(f"\nTree saved to: {args.tree_out}")
        else:
            citations = asyncio.run(loop.fetch_citations(args.query, strategy))
            print(format_citations(citations))

    except ResearchError as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        # Invalid configuration values (depth, breadth, strategy)
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
