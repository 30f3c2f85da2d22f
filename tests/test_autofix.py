"""Tests for automatic repair of validator issues."""

from featuregraph.graph import add_relationship
from featuregraph.models import Relationship
from featuregraph.validation import AutoFixer, FixStatus, IssueCode, Validator


def validate(schema, nodes):
    return Validator(schema).validate(nodes)


class TestAutoFixer:
    """Tests for AutoFixer.apply."""

    def test_orphan_removed(self, schema, make_nodes, recorder):
        nodes, f = make_nodes("X", "Y")
        add_relationship(schema, nodes, f["X"], "depends-on", f["Y"])
        nodes.remove(f["Y"].id)
        result = validate(schema, nodes)
        report = AutoFixer(schema).apply(nodes, result.issues, on_save=recorder)
        assert report.fixed == 1
        assert f["X"].relationships == []
        assert recorder.names == ["X"]
        assert validate(schema, nodes).issues == []

    def test_missing_inverse_added(self, schema, make_nodes, recorder):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("contains", f["B"].id, "B"))
        report = AutoFixer(schema).apply(nodes, validate(schema, nodes).issues, on_save=recorder)
        assert report.fixed == 1
        assert f["B"].find_relationship("contained-by", f["A"].id) is not None
        assert recorder.names == ["B"]
        assert validate(schema, nodes).issues == []

    def test_dangling_inverse_removed(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        f["B"].relationships.append(Relationship.new("required-by", f["A"].id, "A"))
        report = AutoFixer(schema).apply(nodes, validate(schema, nodes).issues)
        assert report.fixed == 1
        assert f["B"].relationships == []
        assert f["A"].relationships == []

    def test_dry_run_changes_nothing(self, schema, make_nodes, recorder):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("depends-on", f["B"].id, "B"))
        f["A"].relationships.append(Relationship.new("depends-on", "gone", "Gone"))
        before = [feature.model_dump() for feature in nodes]
        report = AutoFixer(schema, dry_run=True).apply(nodes, validate(schema, nodes).issues, on_save=recorder)
        assert report.dry_run
        assert report.fixed == 2
        assert report.modified == []
        assert recorder.saved == []
        assert [feature.model_dump() for feature in nodes] == before

    def test_unfixable_skipped(self, schema, make_nodes):
        nodes, f = make_nodes("App", "Lib")
        add_relationship(schema, nodes, f["App"], "depends-on", f["Lib"], version_constraint=">=3")
        result = validate(schema, nodes)
        report = AutoFixer(schema).apply(nodes, result.issues)
        assert [o.status for o in report.outcomes] == [FixStatus.SKIPPED]
        assert report.outcomes[0].issue.code == IssueCode.VERSION_CONSTRAINT_VIOLATION

    def test_stale_issues(self, schema, make_nodes):
        """Applying the same issues twice fails or skips instead of repeating work."""
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("depends-on", f["B"].id, "B"))
        f["A"].relationships.append(Relationship.new("references", "gone", "Gone"))
        issues = validate(schema, nodes).issues
        AutoFixer(schema).apply(nodes, issues)
        second = AutoFixer(schema).apply(nodes, issues)
        statuses = {o.issue.code: o.status for o in second.outcomes}
        assert statuses[IssueCode.ORPHANED_RELATIONSHIP] == FixStatus.FAILED
        assert statuses[IssueCode.MISSING_INVERSE] == FixStatus.SKIPPED
        assert second.modified == []

    def test_missing_feature_fails(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("depends-on", "gone", "Gone"))
        issues = validate(schema, nodes).issues
        nodes.remove(f["A"].id)
        report = AutoFixer(schema).apply(nodes, issues)
        assert report.failed == 1

    def test_alias_typed_edge_settles_after_one_fix(self, schema, make_nodes):
        nodes, f = make_nodes("A", "B")
        f["A"].relationships.append(Relationship.new("requires", f["B"].id, "B"))
        report = AutoFixer(schema).apply(nodes, validate(schema, nodes).issues)
        assert report.fixed == 1
        assert [rel.type for rel in f["B"].relationships] == ["required-by"]
        assert validate(schema, nodes).issues == []
        assert [rel.type for rel in f["A"].relationships] == ["requires"]
