"""Tests for the adaptive-research command line."""

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml

from adaptive_research.cli import (
    build_parser,
    build_strategy,
    export_tree,
    format_citations,
    format_tree_summary,
    main,
)
from adaptive_research.errors import SearchError
from adaptive_research.node import ProcessedLearning
from adaptive_research.query_generator import ProposedQuery
from adaptive_research.strategy import DiversificationLevel
from adaptive_research.tree import ExplorationTree

from conftest import FakeFetcher, make_candidate


def _respond(query):
    slug = "".join(ch for ch in query.lower() if ch.isalnum())
    return [make_candidate(f"https://{slug}{i}.com/", relevance=0.9) for i in range(3)]


@pytest.fixture
def quiet_cli():
    """Skip .env loading and handler installation for every main() call."""
    with patch("adaptive_research.cli.load_dotenv"), \
         patch("adaptive_research.cli.configure_logging"):
        yield


class TestBuildStrategy:
    def test_defaults_are_moderate(self):
        args = build_parser().parse_args(["query"])
        strategy = build_strategy(args)
        assert strategy.target_citations == 8
        assert strategy.diversification_level == DiversificationLevel.MODERATE

    def test_options_feed_strategy(self):
        args = build_parser().parse_args([
            "query", "--complexity", "2", "--intent", "comparison",
            "--expertise", "expert", "--domain", "finance", "--prefer", "detailed",
        ])
        strategy = build_strategy(args)
        assert strategy.target_citations == 15
        assert strategy.max_batches == 5
        assert strategy.require_domain_diversity
        assert strategy.prioritize_authoritative
        assert strategy.profile_domain == "finance"

    def test_improvement_round(self):
        args = build_parser().parse_args(["query", "--improve"])
        assert build_strategy(args).use_alternative_queries

    def test_complexity_out_of_range(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["query", "--complexity", "11"])


class TestFormatting:
    def test_format_citations(self):
        c = make_candidate("https://www.example.com/a", title="Example", snippet="Snip")
        text = format_citations([c])
        assert text.startswith("1. [Example](https://www.example.com/a)")
        assert "example.com" in text
        assert "Snip" in text

    def test_format_no_citations(self):
        assert "No citations" in format_citations([])

    def test_tree_summary_is_indented_by_depth(self):
        tree = ExplorationTree("s1", "root question")
        tree.admit_child("0", None, "child")
        tree.admit_child("0-0", None, "grandchild")
        lines = format_tree_summary(tree).splitlines()
        assert lines[0] == "Session s1: INITIALIZING"
        assert lines[1].startswith("- [0] Start")
        assert lines[2].startswith("  - [0-0] child")
        assert lines[3].startswith("    - [0-0-0] grandchild")
        assert lines[-1].startswith("Nodes: 3")


class TestExportTree:
    def test_writes_yaml(self, tmp_path):
        tree = ExplorationTree("s1", "root question")
        child = tree.admit_child("0", None, "child", "goal")
        tree.add_learning(child.id, ProcessedLearning("https://a.com", "fact"))
        tree.mark_complete(child.id)

        path = tmp_path / "out" / "tree.yaml"
        export_tree(tree, path)

        document = yaml.safe_load(path.read_text())
        assert document["statistics"]["total_nodes"] == 2
        assert document["statistics"]["status"] == "completed"
        root = document["tree"]["root_node"]
        assert root["children"][0]["label"] == "child"
        assert root["children"][0]["learnings_count"] == 1

    def test_writes_json_for_json_path(self, tmp_path):
        tree = ExplorationTree("s1", "root question")
        tree.admit_child("0", None, "child")

        path = tmp_path / "tree.json"
        export_tree(tree, path)

        document = json.loads(path.read_text())
        assert document["statistics"]["total_nodes"] == 2
        assert document["tree"]["root_node"]["children"][0]["status"] == "generating_query"


class TestMain:
    def test_prints_citations(self, quiet_cli, capsys):
        with patch("adaptive_research.cli.TavilyCitationFetcher",
                   return_value=FakeFetcher(default=_respond)):
            main(["heat pumps", "--complexity", "2", "--seed", "1"])

        out = capsys.readouterr().out
        assert out.startswith("1. [")
        assert "3. [" in out
        assert "4. [" not in out

    def test_deep_research_exports_tree(self, quiet_cli, capsys, tmp_path):
        generator = MagicMock()
        generator.propose_children.side_effect = lambda node, context: [
            ProposedQuery(f"{context.root_query} angle {i}") for i in range(context.breadth)
        ]
        out_path = tmp_path / "tree.yaml"

        with patch("adaptive_research.cli.TavilyCitationFetcher",
                   return_value=FakeFetcher(default=_respond)), \
             patch("adaptive_research.cli.AnthropicQueryGenerator", return_value=generator):
            main([
                "heat pumps", "--deep", "--max-depth", "1", "--breadth", "2",
                "--complexity", "2", "--tree-out", str(out_path),
            ])

        out = capsys.readouterr().out
        assert "Session" in out
        assert "[0-1] heat pumps angle 1" in out
        document = yaml.safe_load(out_path.read_text())
        assert document["statistics"]["total_nodes"] == 3

    def test_research_error_exits_1(self, quiet_cli, capsys):
        loop = MagicMock()
        loop.fetch_citations.side_effect = SearchError("all providers down")
        with patch("adaptive_research.cli.TavilyCitationFetcher"), \
             patch("adaptive_research.cli.AdaptiveFetchLoop", return_value=loop):
            with pytest.raises(SystemExit) as exc_info:
                main(["heat pumps"])
        assert exc_info.value.code == 1
        assert "all providers down" in capsys.readouterr().err

    def test_invalid_tree_config_exits_2(self, quiet_cli, capsys):
        with patch("adaptive_research.cli.TavilyCitationFetcher"), \
             patch("adaptive_research.cli.AnthropicQueryGenerator"):
            with pytest.raises(SystemExit) as exc_info:
                main(["heat pumps", "--deep", "--max-depth", "0"])
        assert exc_info.value.code == 2
        assert "max_depth" in capsys.readouterr().err

    def test_blank_query_rejected(self, quiet_cli):
        with pytest.raises(SystemExit) as exc_info:
            main(["   "])
        assert exc_info.value.code == 2

    def test_tree_out_without_deep_warns(self, quiet_cli, capsys, tmp_path):
        with patch("adaptive_research.cli.TavilyCitationFetcher",
                   return_value=FakeFetcher(default=_respond)):
            main(["heat pumps", "--tree-out", str(tmp_path / "t.yaml")])
        assert "--tree-out ignored" in capsys.readouterr().err
        assert not (tmp_path / "t.yaml").exists()
