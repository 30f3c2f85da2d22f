"""Tests for category-scoped cycle detection."""

import pytest

from featuregraph.exceptions import CycleDetectedError, SelfReferenceError
from featuregraph.graph import CycleDetector, add_relationship
from featuregraph.graph.cycles import category_edges, enumerate_cycles
from featuregraph.graph.registry import SchemaRegistry
from featuregraph.models import CycleDetection, Relationship


class TestCycleDetector:
    """Tests for CycleDetector.check."""

    def test_no_cycle(self, schema, make_nodes):
        """A chain extension is accepted after a search."""
        nodes, f = make_nodes("A", "B", "C")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        check = CycleDetector(schema, nodes).check(f["B"], "depends-on", f["C"])
        assert check.searched
        assert not check.closes_cycle

    def test_strict_rejects_long_cycle(self, schema, make_nodes):
        """A three-node cycle is found with its path."""
        nodes, f = make_nodes("A", "B", "C")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        add_relationship(schema, nodes, f["B"], "depends-on", f["C"])
        with pytest.raises(CycleDetectedError) as exc:
            CycleDetector(schema, nodes).check(f["C"], "depends-on", f["A"])
        assert exc.value.path == ["C", "A", "B", "C"]
        assert exc.value.exit_code == 7

    def test_mixed_types_in_category(self, schema, make_nodes):
        """Different types of one category jointly form a cycle."""
        nodes, f = make_nodes("A", "B", "C")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        add_relationship(schema, nodes, f["B"], "contains", f["C"])
        with pytest.raises(CycleDetectedError):
            add_relationship(schema, nodes, f["C"], "implements", f["A"])

    def test_inverse_side_edge_is_oriented(self, schema, make_nodes):
        """Linking with the inverse type closes the same cycle."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        with pytest.raises(CycleDetectedError):
            add_relationship(schema, nodes, f["A"], "required-by", f["B"])

    def test_inverse_side_consistent_with_forward(self, schema, make_nodes):
        """Adding the inverse-side edge in the forward direction is fine."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        check = CycleDetector(schema, nodes).check(f["B"], "required-by", f["A"])
        assert not check.closes_cycle

    def test_other_categories_ignored(self, schema, make_nodes):
        """Edges of other categories do not count toward a cycle."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "references", f["B"])
        add_relationship(schema, nodes, f["B"], "references", f["A"])
        add_relationship(schema, nodes, f["B"], "depends-on", f["A"])
        assert len(f["B"].relationships) == 3

    def test_warn_accepts_with_warning(self, schema, make_nodes):
        """A warn category lets the edge through and reports it."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "blocks", f["B"])
        result = add_relationship(schema, nodes, f["B"], "blocks", f["A"])
        assert result.warnings
        assert "workflow" in result.warnings[0]
        assert f["B"].find_relationship("blocks", f["A"].id) is not None

    def test_none_skips_search(self, schema, make_nodes):
        """Categories without detection are not searched."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "references", f["B"])
        check = CycleDetector(schema, nodes).check(f["B"], "references", f["A"])
        assert not check.searched
        assert check.mode == CycleDetection.NONE

    def test_self_reference(self, schema, make_nodes):
        """Self-links are rejected regardless of policy."""
        nodes, f = make_nodes("A")
        with pytest.raises(SelfReferenceError):
            CycleDetector(schema, nodes).check(f["A"], "related-to", f["A"])

    def test_terminates_on_existing_cycles(self, schema, make_nodes):
        """Pre-existing cycles do not stop the search from finishing."""
        nodes, f = make_nodes("A", "B", "C", "D")
        f["A"].relationships.append(Relationship.new("depends-on", f["B"].id, "B"))
        f["B"].relationships.append(Relationship.new("depends-on", f["C"].id, "C"))
        f["C"].relationships.append(Relationship.new("depends-on", f["A"].id, "A"))
        check = CycleDetector(schema, nodes).check(f["D"], "depends-on", f["A"])
        assert check.searched
        assert not check.closes_cycle


class TestEnumerateCycles:
    """Tests for exhaustive cycle enumeration."""

    def test_reports_each_cycle_once(self, schema, make_nodes):
        """A cycle reached from several starts is reported once."""
        nodes, f = make_nodes("A", "B", "C")
        f["A"].relationships.append(Relationship.new("depends-on", f["B"].id))
        f["B"].relationships.append(Relationship.new("depends-on", f["C"].id))
        f["C"].relationships.append(Relationship.new("depends-on", f["A"].id))
        adjacency = category_edges(SchemaRegistry(schema), nodes, "structural")
        cycles = enumerate_cycles(adjacency, [x.id for x in nodes])
        assert len(cycles) == 1
        assert {edge.source_id for edge in cycles[0]} == {f["A"].id, f["B"].id, f["C"].id}

    def test_inverse_pairs_are_not_cycles(self, schema, make_nodes):
        """An edge and its auto-created inverse collapse into one."""
        nodes, f = make_nodes("A", "B")
        add_relationship(schema, nodes, f["A"], "depends-on", f["B"])
        adjacency = category_edges(SchemaRegistry(schema), nodes, "structural")
        assert enumerate_cycles(adjacency, [x.id for x in nodes]) == []
