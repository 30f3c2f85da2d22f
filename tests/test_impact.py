"""Tests for impact analysis."""

import pytest

from featuregraph.exceptions import UnknownCategoryError
from featuregraph.graph import ImpactOptions, TraversalDirection, add_relationship, analyze_impact
from featuregraph.graph.impact import included_categories
from featuregraph.models import Relationship


class TestIncludedCategories:
    def test_defaults_follow_impact_flag(self, schema):
        assert included_categories(schema, ImpactOptions()) == ["structural", "workflow"]

    def test_include_and_exclude(self, schema):
        options = ImpactOptions(include_categories=["informational"], exclude_categories=["workflow"])
        assert included_categories(schema, options) == ["structural", "informational"]

    def test_all_categories(self, schema):
        assert included_categories(schema, ImpactOptions(all_categories=True)) == list(schema.categories)

    def test_unknown_category(self, schema):
        with pytest.raises(UnknownCategoryError):
            included_categories(schema, ImpactOptions(include_categories=["nope"]))


class TestAnalyzeImpact:
    """Tests for analyze_impact."""

    @pytest.fixture()
    def graph(self, schema, make_nodes):
        nodes, f = make_nodes("Auth", "Login", "Docs", "Release", "Sessions")
        add_relationship(schema, nodes, f["Auth"], "depends-on", f["Login"])
        add_relationship(schema, nodes, f["Auth"], "references", f["Docs"])
        add_relationship(schema, nodes, f["Auth"], "blocks", f["Release"])
        add_relationship(schema, nodes, f["Login"], "depends-on", f["Sessions"])
        return nodes, f

    def test_default_categories(self, schema, graph):
        """Informational edges are not followed by default."""
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"])
        assert {item.name for item in result.impacted} == {"Login", "Release", "Sessions"}
        assert result.categories == ["structural", "workflow"]

    def test_depth_and_path(self, schema, graph):
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"])
        sessions = next(item for item in result.impacted if item.name == "Sessions")
        assert sessions.depth == 2
        assert sessions.path == ["Auth", "Login", "Sessions"]
        assert sessions.category == "structural"
        assert set(result.by_depth()) == {1, 2}

    def test_max_depth(self, schema, graph):
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"], ImpactOptions(max_depth=1))
        assert {item.name for item in result.impacted} == {"Login", "Release"}

    def test_negative_depth_is_unlimited(self, schema, graph):
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"], ImpactOptions(max_depth=-1))
        assert {item.name for item in result.impacted} == {"Login", "Release", "Sessions"}

    def test_include_informational(self, schema, graph):
        nodes, f = graph
        options = ImpactOptions(include_categories=["informational"])
        result = analyze_impact(schema, nodes, f["Auth"], options)
        assert "Docs" in {item.name for item in result.impacted}

    def test_exclude_category(self, schema, graph):
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"], ImpactOptions(exclude_categories=["workflow"]))
        assert "Release" not in {item.name for item in result.impacted}

    def test_mirror_edges_are_not_loops(self, schema, graph):
        """Auto-created inverses leading back to the parent raise no warnings."""
        nodes, f = graph
        result = analyze_impact(schema, nodes, f["Auth"])
        assert result.warnings == []

    def test_diamond_reports_once(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B", "C", "D")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        add_relationship(schema, nodes, f["A"], "depends-on", f["C"])
        add_relationship(schema, nodes, f["B"], "depends-on", f["D"])
        add_relationship(schema, nodes, f["C"], "depends-on", f["D"])
        result = analyze_impact(schema, nodes, f["A"])
        names = [item.name for item in result.impacted]
        assert sorted(names) == ["B", "C", "D"]
        assert result.warnings == []

    def test_loop_warning(self, schema, make_nodes):
        """An existing cycle is reported on the feature that closes it."""
        nodes, f = make_nodes("A", "B", "C")
        f["A"].relationships.append(Relationship.new("depends-on", f["B"].id, "B"))
        f["B"].relationships.append(Relationship.new("depends-on", f["C"].id, "C"))
        f["C"].relationships.append(Relationship.new("depends-on", f["A"].id, "A"))
        result = analyze_impact(schema, nodes, f["A"])
        assert result.total == 2
        c_item = next(item for item in result.impacted if item.name == "C")
        assert len(c_item.warnings) == 1
        assert "leads back to 'A'" in c_item.warnings[0]

    def test_version_constraint_warning(self, schema, make_nodes):
        nodes, f = make_nodes("App", "Lib")
        add_relationship(schema, nodes, f["App"], "depends-on", f["Lib"], version_constraint=">=2")
        result = analyze_impact(schema, nodes, f["App"])
        assert len(result.warnings) == 1
        assert "not satisfied by 'Lib'" in result.warnings[0]

    def test_satisfied_constraint_no_warning(self, schema, make_nodes):
        nodes, f = make_nodes("App", "Lib")
        add_relationship(schema, nodes, f["App"], "depends-on", f["Lib"], version_constraint=">=1")
        assert analyze_impact(schema, nodes, f["App"]).warnings == []

    def test_incoming_direction(self, schema, make_nodes):
        """Incoming traversal finds holders of edges without an inverse."""
        nodes, f = make_nodes("A", "B")
        f["B"].relationships.append(Relationship.new("depends-on", f["A"].id, "A"))
        assert analyze_impact(schema, nodes, f["A"]).total == 0
        result = analyze_impact(schema, nodes, f["A"], ImpactOptions(direction=TraversalDirection.INCOMING))
        assert [item.name for item in result.impacted] == ["B"]

    def test_orphans_skipped(self, schema, make_nodes):
        nodes, f = make_nodes("A")
        f["A"].relationships.append(Relationship.new("depends-on", "missing", "Ghost"))
        assert analyze_impact(schema, nodes, f["A"]).total == 0

    def test_records(self, schema, graph):
        nodes, f = graph
        records = analyze_impact(schema, nodes, f["Auth"]).to_records()
        assert records[0]["feature_name"] == "Auth"
        assert records[0]["impacted"]["depth"] == 1
