"""Tests for clause parsing, clause ordering and policy merging."""

import threading

import pytest

from placement_core.clause import Clause, sort_clauses
from placement_core.exceptions import ValidationError
from placement_core.operand import Operand
from placement_core.policy import (
    DEFAULT_PREFERENCES,
    Policy,
    Preference,
    SortDirection,
    merge_policies,
)
from placement_core.suggester import CollectionAction, Hint
from placement_protocols import ReplicaType


class TestClauseParsing:
    """Clause.from_dict behaviour."""

    def test_node_only_clause_uses_node_as_tag(self):
        clause = Clause.from_dict({"replica": "<2", "shard": "#EACH", "node": "#ANY"})
        assert clause.tag.name == "node"
        assert clause.tag.is_wildcard
        assert clause.node is None
        assert clause.replica.operand is Operand.LESS_THAN
        assert clause.replica.value == 2
        assert clause.shard_mode == "#EACH"
        assert clause.strict is True
        assert clause.is_greedy is False

    def test_attribute_clause_keeps_node_as_filter(self):
        clause = Clause.from_dict({"replica": 1, "sysprop.fs": "ssd", "node": "node1"})
        assert clause.tag.name == "sysprop.fs"
        assert clause.node.value == "node1"

    def test_greedy_clause(self):
        clause = Clause.from_dict({"replica": 2, "sysprop.fs": "ssd", "shard": "#EACH"})
        assert clause.is_greedy is True
        assert clause.is_exclusion is False

    def test_exclusion_clause(self):
        clause = Clause.from_dict(
            {"replica": 0, "shard": "#EACH", "sysprop.fs": "!ssd", "type": "TLOG"}
        )
        assert clause.is_exclusion is True
        assert clause.is_zero_bound is True
        assert clause.type is ReplicaType.TLOG
        assert clause.applies_to_type(ReplicaType.PULL) is False

    def test_node_attribute_clause(self):
        clause = Clause.from_dict({"cores": "<10", "node": "#ANY"})
        assert clause.is_replica_clause is False
        assert clause.tag.name == "cores"
        assert clause.node.is_wildcard

    def test_advisory_clause(self):
        clause = Clause.from_dict({"replica": 0, "nodeRole": "overseer", "strict": "false"})
        assert clause.strict is False

    def test_round_trip(self):
        data = {"replica": "<2", "shard": "#EACH", "node": "#ANY"}
        assert Clause.from_dict(data).to_dict() == data

    def test_rejects_multiple_attributes(self):
        with pytest.raises(ValidationError) as exc_info:
            Clause.from_dict({"replica": 1, "sysprop.fs": "ssd", "nodeRole": "overseer"})
        assert "only one attribute condition" in str(exc_info.value)

    def test_rejects_missing_attribute(self):
        with pytest.raises(ValidationError):
            Clause.from_dict({"replica": 1, "shard": "#EACH"})

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Clause.from_dict({"replica": -1, "port": 0})
        assert len(exc_info.value.errors) == 2

    def test_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            Clause.from_dict({"replica": 0, "node": "#ANY", "type": "BOGUS"})

    def test_scope_checks(self):
        clause = Clause.from_dict({"replica": "<2", "shard": "shard1", "collection": "c1", "node": "#ANY"})
        assert clause.counts("c1", "shard1", ReplicaType.NRT) is True
        assert clause.counts("c1", "shard2", ReplicaType.NRT) is False
        assert clause.counts("c2", "shard1", ReplicaType.NRT) is False


class TestClauseOrder:
    """Clause priority ordering."""

    def test_sort(self):
        each_node = Clause.from_dict({"replica": "<2", "shard": "#EACH", "node": "#ANY"})
        overseer = Clause.from_dict({"replica": 0, "nodeRole": "overseer"})
        rack = Clause.from_dict({"replica": "<3", "shard": "#EACH", "sysprop.rack": "#ANY"})
        ssd = Clause.from_dict({"replica": 1, "sysprop.fs": "ssd", "shard": "#EACH"})

        ordered = sort_clauses([each_node, overseer, rack, ssd])

        assert ordered == [ssd, overseer, each_node, rack]

    def test_named_shard_before_each_before_any(self):
        named = Clause.from_dict({"replica": "<2", "shard": "shard1", "node": "#ANY"})
        each = Clause.from_dict({"replica": "<2", "shard": "#EACH", "node": "#ANY"})
        any_shard = Clause.from_dict({"replica": "<2", "node": "#ANY"})

        assert sort_clauses([any_shard, each, named]) == [named, each, any_shard]

    def test_tighter_bound_first(self):
        loose = Clause.from_dict({"replica": "<3", "node": "#ANY"})
        tight = Clause.from_dict({"replica": "<2", "node": "#ANY"})
        assert sort_clauses([loose, tight]) == [tight, loose]


class TestMergePolicies:
    """Collection and cluster policy merging."""

    def test_collection_clause_overrides_same_tag(self):
        cluster = [
            Clause.from_dict({"replica": "<2", "shard": "#EACH", "node": "#ANY"}),
            Clause.from_dict({"replica": 0, "nodeRole": "overseer"}),
        ]
        own = [
            Clause.from_dict({"replica": "<3", "shard": "#EACH", "node": "#ANY"}),
            Clause.from_dict({"replica": 1, "sysprop.fs": "ssd"}),
        ]

        merged = merge_policies("c1", own, cluster)

        assert [clause.to_dict() for clause in merged] == [
            {"replica": 1, "sysprop.fs": "ssd", "collection": "c1"},
            {"replica": 0, "nodeRole": "overseer"},
            {"replica": "<3", "shard": "#EACH", "node": "#ANY", "collection": "c1"},
        ]

    def test_cluster_clause_for_other_collection_is_dropped(self):
        cluster = [Clause.from_dict({"replica": "<2", "collection": "c2", "node": "#ANY"})]
        assert merge_policies("c1", [], cluster) == []

    def test_policy_clauses_for_named_policy(self):
        policy = Policy(
            {
                "cluster-policy": [{"replica": "<2", "shard": "#EACH", "node": "#ANY"}],
                "policies": {"p1": [{"replica": 0, "sysprop.fs": "!ssd"}]},
            }
        )
        with_policy = policy.clauses_for("c1", "p1")
        without = policy.clauses_for("c2")

        assert len(with_policy) == 2
        assert len(without) == 1
        assert policy.clauses_for("c1", "p1") is with_policy

    def test_named_policy_merged_once_across_threads(self, fake_cluster):
        policy = Policy({"policies": {"p1": [{"replica": "<3", "shard": "#EACH", "node": "#ANY"}]}})
        barrier = threading.Barrier(8)
        results = []

        def worker():
            barrier.wait()
            results.append(policy.clauses_for("c", "p1"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(clauses) for clauses in results}) == 1

        cluster = fake_cluster(
            ["n1", "n2"],
            {"n1": {"cores": 3}, "n2": {"cores": 4}},
            {"n1": [("c", "shard1", "r1"), ("c", "shard1", "r2"), ("c", "shard1", "r3")]},
            {"c": "p1"},
        )
        session = policy.create_session(cluster, cluster)
        (violation,) = session.get_violations()
        assert violation.clause is results[0][0]

        suggestion = (
            session.get_suggester(CollectionAction.ADDREPLICA)
            .hint(Hint.COLL_SHARD, ("c", "shard1"))
            .get_suggestion()
        )
        assert suggestion.target_node == "n2"

    def test_unknown_policy_falls_back_to_cluster(self):
        policy = Policy({"cluster-policy": [{"replica": "<2", "node": "#ANY"}]})
        assert len(policy.clauses_for("c1", "missing")) == 1


class TestPreferences:
    """Preference parsing and comparison."""

    def test_default_preferences(self):
        assert Policy({}).preferences == DEFAULT_PREFERENCES
        assert DEFAULT_PREFERENCES[0].name == "cores"
        assert DEFAULT_PREFERENCES[0].sort is SortDirection.MINIMIZE

    def test_parse(self):
        preference = Preference.from_dict({"maximize": "freedisk", "precision": 50})
        assert preference.sort is SortDirection.MAXIMIZE
        assert preference.name == "freedisk"
        assert preference.precision == 50

    def test_rejects_ambiguous_direction(self):
        with pytest.raises(ValidationError):
            Preference.from_dict({"minimize": "cores", "maximize": "freedisk"})

    def test_rejects_negative_precision(self):
        with pytest.raises(ValidationError):
            Preference.from_dict({"minimize": "cores", "precision": -1})

    def test_compare_with_precision(self):
        preference = Preference.from_dict({"maximize": "freedisk", "precision": 50})
        assert preference.compare(100, 140) == 0
        assert preference.compare(200, 100) == -1
        assert preference.compare(100, 200) == 1
        assert preference.compare(None, 100) == 1


class TestPolicyDocument:
    """Policy document handling."""

    def test_round_trip(self):
        document = {
            "cluster-policy": [
                {"replica": "<2", "shard": "#EACH", "node": "#ANY"},
                {"replica": 0, "nodeRole": "overseer", "strict": False},
            ],
            "cluster-preferences": [
                {"minimize": "cores", "precision": 1},
                {"maximize": "freedisk"},
            ],
        }
        assert Policy(document).to_document() == document

    def test_from_json(self):
        policy = Policy.from_json('{"cluster-policy": [{"cores": "<10", "node": "#ANY"}]}')
        assert len(policy.cluster_clauses) == 1

    def test_params(self):
        policy = Policy(
            {
                "cluster-policy": [
                    {"replica": "<2", "shard": "#EACH", "node": "#ANY"},
                    {"replica": 1, "sysprop.fs": "ssd", "node": "node1"},
                ],
                "cluster-preferences": [{"maximize": "freedisk"}],
            }
        )
        assert policy.params == ["freedisk", "node", "sysprop.fs"]

    def test_invalid_clause_fails_construction(self):
        with pytest.raises(ValidationError):
            Policy({"cluster-policy": [{"replica": "hello", "node": "#ANY"}]})
