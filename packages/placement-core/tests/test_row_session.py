"""Tests for rows, session sorting and violation detection."""

import pytest

from placement_core.row import Row
from placement_protocols import ReplicaInfo, ReplicaType


def replica(name, collection="c", shard="shard1", node="n1", **attributes):
    return ReplicaInfo(
        name=name,
        core=name,
        collection=collection,
        shard=shard,
        node=node,
        attributes=attributes,
    )


class TestRow:
    """Copy-on-write row operations."""

    def test_get_node(self):
        row = Row(node="n1", tags={"cores": 1})
        assert row.get("node") == "n1"
        assert row.get("cores") == 1
        assert row.get("freedisk") is None

    def test_add_replica_adjusts_capacity(self):
        row = Row(node="n1", tags={"cores": 1, "freedisk": 100.0})
        moved = replica("r1", node="n2", **{"INDEX.sizeInBytes": 30})

        added = row.with_added_replica("c", "shard1", replica=moved)

        assert added.get("cores") == 2
        assert added.get("freedisk") == 70.0
        assert added.replicas_of("c", "shard1")[0].node == "n1"
        assert row.get("cores") == 1
        assert row.replica_count() == 0

    def test_add_synthesized_replica(self):
        row = Row(node="n1")
        added = row.with_added_replica("c", "shard1", ReplicaType.TLOG)
        (new,) = added.replicas_of("c", "shard1")
        assert new.type is ReplicaType.TLOG
        assert new.node == "n1"
        assert "cores" not in added.tags

    def test_remove_replica(self):
        row = Row(
            node="n1",
            tags={"cores": 2},
            replicas={"c": {"shard1": [replica("r1"), replica("r2")]}},
        )

        result = row.with_removed_replica("c", "shard1", "r1")

        assert result is not None
        removed_row, removed = result
        assert removed.name == "r1"
        assert [r.name for r in removed_row.replicas_of("c", "shard1")] == ["r2"]
        assert removed_row.get("cores") == 1
        assert row.replica_count() == 2

    def test_remove_missing_replica(self):
        row = Row(node="n1", replicas={"c": {"shard1": [replica("r1")]}})
        assert row.with_removed_replica("c", "shard1", "r9") is None
        assert row.with_removed_replica("c", "shard2") is None

    def test_rows_are_immutable(self):
        row = Row(node="n1", tags={"cores": 1})
        with pytest.raises(TypeError):
            row.tags["cores"] = 2


class TestSessionSorting:
    """Preference-based row ordering."""

    def test_sort_by_preferences(self, make_session):
        session = make_session(
            {
                "cluster-preferences": [
                    {"minimize": "cores"},
                    {"maximize": "freedisk"},
                ]
            },
            ["n1", "n2", "n3", "n4"],
            {
                "n1": {"cores": 4, "freedisk": 100},
                "n2": {"cores": 2, "freedisk": 300},
                "n3": {"cores": 2, "freedisk": 200},
                "n4": {"cores": 3},
            },
        )
        assert [row.node for row in session.rows] == ["n2", "n3", "n4", "n1"]

    def test_precision_chains_values_into_buckets(self, make_session):
        session = make_session(
            {"cluster-preferences": [{"minimize": "cores", "precision": 1}]},
            ["n3", "n1", "n4", "n2"],
            {
                "n1": {"cores": 1},
                "n2": {"cores": 2},
                "n3": {"cores": 3},
                "n4": {"cores": 5},
            },
        )
        assert [row.node for row in session.rows] == ["n3", "n1", "n2", "n4"]

    def test_set_of_live_nodes_is_sorted_by_id(self, make_session):
        session = make_session({}, {"b", "c", "a"}, {})
        assert [row.node for row in session.rows] == ["a", "b", "c"]

    def test_only_referenced_params_are_fetched(self, fake_cluster):
        from placement_core.policy import Policy

        cluster = fake_cluster(["n1"], {"n1": {"cores": 1, "secret": "x"}})
        session = Policy({}).create_session(cluster, cluster)

        assert cluster.node_value_calls == [("n1", ("cores",))]
        assert "secret" not in session.row("n1").tags

    def test_with_rows_bumps_version(self, make_session):
        session = make_session({}, ["n1", "n2"], {"n1": {"cores": 0}, "n2": {"cores": 1}})
        changed = session.row("n1").with_added_replica("c", "shard1")
        changed = changed.with_added_replica("c", "shard2")

        next_session = session.with_rows([changed])

        assert next_session.version == session.version + 1
        assert [row.node for row in next_session.rows] == ["n2", "n1"]
        assert session.row("n1").replica_count() == 0


class TestViolations:
    """Violation computation."""

    def test_too_many_per_node(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": "<2", "shard": "#EACH", "node": "#ANY"}]},
            ["n1", "n2"],
            {},
            {
                "n1": [("c", "shard1", "r1"), ("c", "shard1", "r2")],
                "n2": [("c", "shard1", "r3")],
            },
        )

        (violation,) = session.get_violations()

        assert violation.collection == "c"
        assert violation.shard == "shard1"
        assert violation.node == "n1"
        assert violation.actual == 2
        assert violation.expected == "<2"
        assert violation.delta == 1
        assert [r.name for r in violation.replicas] == ["r1", "r2"]
        assert violation.is_too_many

    def test_zero_count_partition_reports_too_few(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": 1, "sysprop.fs": "ssd", "shard": "#EACH"}]},
            ["n1", "n2"],
            {"n1": {"sysprop.fs": "ssd"}, "n2": {"sysprop.fs": "hdd"}},
            {"n2": [("c", "shard1", "r1")]},
        )

        (violation,) = session.get_violations()

        assert violation.partition == "ssd"
        assert violation.actual == 0
        assert violation.delta == -1
        assert violation.nodes == ("n1",)
        assert violation.is_too_few

    def test_requested_shard_is_evaluated_before_it_exists(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": 1, "sysprop.fs": "ssd", "shard": "#EACH"}]},
            ["n1", "n2"],
            {"n1": {"sysprop.fs": "ssd"}, "n2": {"sysprop.fs": "hdd"}},
            {"n1": [("c", "shard1", "r1")]},
        )

        assert session.get_violations() == []
        (violation,) = session.violations_for("c", "shard2")
        assert violation.shard == "shard2"
        assert violation.delta == -1

    def test_node_attribute_clause(self, make_session):
        session = make_session(
            {"cluster-policy": [{"cores": "<10", "node": "#ANY"}]},
            ["n1", "n2"],
            {"n1": {"cores": 12}, "n2": {"cores": 3}},
            {"n1": [("c", "shard1", "r1")]},
        )

        (violation,) = session.get_violations()

        assert violation.node == "n1"
        assert violation.actual == 12
        assert violation.expected == "<10"
        assert violation.delta == 3
        assert violation.collection is None
        assert [r.name for r in violation.replicas] == ["r1"]

    def test_advisory_violations_can_be_filtered(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": 0, "nodeRole": "overseer", "strict": False}]},
            ["n1", "n2"],
            {"n1": {"nodeRole": "overseer"}},
            {"n1": [("c", "shard1", "r1")]},
        )

        assert len(session.get_violations()) == 1
        assert session.get_violations(strict_only=True) == []

    def test_non_live_rows_are_not_counted(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": "<2", "shard": "#EACH", "node": "#ANY"}]},
            ["n2"],
            {},
            {"n1": [("c", "shard1", "r1"), ("c", "shard1", "r2")]},
        )

        draining = session.including_node("n1")

        assert draining.row("n1").is_live is False
        assert draining.rows[-1].node == "n1"
        assert draining.get_violations() == []

    def test_type_scoped_clause(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": 0, "sysprop.fs": "!ssd", "type": "TLOG"}]},
            ["n1"],
            {"n1": {"sysprop.fs": "hdd"}},
            {"n1": [("c", "shard1", "r1", "NRT"), ("c", "shard1", "r2", "TLOG")]},
        )

        (violation,) = session.get_violations()

        assert violation.actual == 1
        assert [r.name for r in violation.replicas] == ["r2"]

    def test_violation_to_dict(self, make_session):
        session = make_session(
            {"cluster-policy": [{"replica": "<2", "shard": "#EACH", "node": "#ANY"}]},
            ["n1"],
            {},
            {"n1": [("c", "shard1", "r1"), ("c", "shard1", "r2")]},
        )

        data = session.get_violations()[0].to_dict()

        assert data["clause"] == {"replica": "<2", "shard": "#EACH", "node": "#ANY"}
        assert data["violation"] == {"actual": 2, "expected": "<2", "delta": 1}
        assert data["node"] == "n1"
