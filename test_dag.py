import unittest

import pandas as pd
import networkx as nx

from dag_engine import (
    parse_dependency_string,
    dependencies_from_tasks,
    build_dependency_graph,
    topological_order,
    predecessor_edges,
    successor_edges,
)
from models import CyclicDependencyError, DependencyType


def tasks_df(ids):
    return pd.DataFrame({"id": ids, "name": [f"Task {i}" for i in ids]})


def deps_df(rows):
    return pd.DataFrame(rows, columns=["project_id", "predecessor_id", "successor_id", "type", "lag_days"])


class TestParseDependencies(unittest.TestCase):

    def test_parse_simple(self):
        res = parse_dependency_string("3FS")
        self.assertEqual(res, [{"predecessor_id": 3, "type": DependencyType.FS, "lag_days": 0}])

    def test_parse_complex(self):
        res = parse_dependency_string("3FS;2SS+1d;5ff-2d")
        expected = [
            {"predecessor_id": 3, "type": DependencyType.FS, "lag_days": 0},
            {"predecessor_id": 2, "type": DependencyType.SS, "lag_days": 1},
            {"predecessor_id": 5, "type": DependencyType.FF, "lag_days": -2},
        ]
        self.assertEqual(res, expected)

    def test_invalid_syntax(self):
        with self.assertRaises(ValueError):
            parse_dependency_string("3XX")  # Invalid type
        with self.assertRaises(ValueError):
            parse_dependency_string("3FS+kd")  # Invalid lag

    def test_empty(self):
        self.assertEqual(parse_dependency_string(""), [])
        self.assertEqual(parse_dependency_string(None), [])

    def test_expand_task_column(self):
        df = pd.DataFrame({
            "id": [1, 2, 3],
            "project_id": [7, 7, 7],
            "predecessors": [None, "1FS", "1SS+2d;2FF"],
        })
        deps = dependencies_from_tasks(df)
        self.assertEqual(len(deps), 3)
        last = deps.iloc[2]
        self.assertEqual((last["predecessor_id"], last["successor_id"], last["type"]), (2, 3, "FF"))
        self.assertEqual(deps.iloc[1]["lag_days"], 2)


class TestDependencyGraph(unittest.TestCase):

    def test_valid_graph(self):
        G, val = build_dependency_graph(
            tasks_df([1, 2, 3]),
            deps_df([[1, 1, 2, "FS", 0], [1, 2, 3, "ss", 2], [1, 1, 3, "FS", 0]])
        )
        self.assertTrue(nx.is_directed_acyclic_graph(G))
        self.assertEqual(set(val.values()), {"OK"})
        self.assertEqual(G[2][3][0]["type"], DependencyType.SS)
        self.assertEqual(G[2][3][0]["lag"], 2)

        preds = sorted(p["task_id"] for p in predecessor_edges(G, 3))
        self.assertEqual(preds, [1, 2])

    def test_missing_reference_is_skipped(self):
        G, val = build_dependency_graph(tasks_df([1]), deps_df([[1, 99, 1, "FS", 0]]))
        self.assertEqual(G.number_of_edges(), 0)
        self.assertIn("ERROR: Missing predecessor ID 99", val[1])

    def test_self_dependency(self):
        G, val = build_dependency_graph(tasks_df([1]), deps_df([[1, 1, 1, "FS", 0]]))
        self.assertEqual(G.number_of_edges(), 0)
        self.assertIn("ERROR: Self-dependency", val[1])

    def test_unknown_type_is_skipped(self):
        G, val = build_dependency_graph(tasks_df([1, 2]), deps_df([[1, 1, 2, "XX", 0]]))
        self.assertEqual(G.number_of_edges(), 0)
        self.assertTrue(val[2].startswith("ERROR"))

    def test_missing_type_and_lag_default(self):
        G, _ = build_dependency_graph(tasks_df([1, 2]), deps_df([[1, 1, 2, None, None]]))
        self.assertEqual(G[1][2][0]["type"], DependencyType.FS)
        self.assertEqual(G[1][2][0]["lag"], 0)

    def test_cycle_detection(self):
        # 1->2, 2->1
        G, val = build_dependency_graph(
            tasks_df([1, 2]), deps_df([[1, 1, 2, "FS", 0], [1, 2, 1, "FS", 0]]), validate=True
        )
        self.assertIn("ERROR: Cycle detected", val[1])
        self.assertIn("ERROR: Cycle detected", val[2])

        with self.assertRaises(CyclicDependencyError) as ctx:
            topological_order(G)
        self.assertIn(ctx.exception.edge, [(1, 2), (2, 1)])
        self.assertIn("Cyclic dependency", str(ctx.exception))

    def test_cycle_marking_is_opt_in(self):
        G, val = build_dependency_graph(tasks_df([1, 2]), deps_df([[1, 1, 2, "FS", 0], [1, 2, 1, "FS", 0]]))
        self.assertEqual(set(val.values()), {"OK"})
        with self.assertRaises(CyclicDependencyError):
            topological_order(G)

    def test_parallel_links_between_same_tasks(self):
        G, val = build_dependency_graph(
            tasks_df([1, 2]), deps_df([[1, 1, 2, "SS", 0], [1, 1, 2, "FF", 1]]), validate=True
        )
        self.assertEqual(G.number_of_edges(1, 2), 2)
        self.assertEqual(set(val.values()), {"OK"})

        preds = sorted((p["type"].value, p["lag_days"]) for p in predecessor_edges(G, 2))
        self.assertEqual(preds, [("FF", 1), ("SS", 0)])
        succs = sorted(s["type"].value for s in successor_edges(G, 1))
        self.assertEqual(succs, ["FF", "SS"])

    def test_topological_order(self):
        G, _ = build_dependency_graph(tasks_df([3, 2, 1]), deps_df([[1, 1, 2, "FS", 0], [1, 2, 3, "FS", 0]]))
        self.assertEqual(topological_order(G), [1, 2, 3])


if __name__ == '__main__':
    unittest.main()
