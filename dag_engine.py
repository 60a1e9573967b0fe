import logging
import re

import networkx as nx
import pandas as pd

from models import CyclicDependencyError, DependencyType, DEPENDENCY_COLUMNS, frame_records

logger = logging.getLogger(__name__)

# Compact predecessor notation used by CSV imports: <ID><TYPE><OPTIONAL LAG>
# Group 1: ID (digits)
# Group 2: Type (FS, SS, FF, SF)
# Group 3: Lag (optional, signed integer + 'd', matched upper-cased)
DEPENDENCY_REGEX = re.compile(r"^(?P<id>\d+)(?P<type>FS|SS|FF|SF)(?P<lag>[+-]?\d+D)?$")


def parse_dependency_string(dep_str):
    """
    Parses predecessor strings like '3FS', '5SS+2d', '7FF-1d;2FS'.
    Returns a list of dicts or raises ValueError.
    """
    if not isinstance(dep_str, str) or not dep_str.strip():
        return []

    deps = []
    parts = [p.strip() for p in dep_str.split(";") if p.strip()]

    for part in parts:
        match = DEPENDENCY_REGEX.match(part.upper())
        if not match:
            raise ValueError(f"Malformed dependency: '{part}'")

        data = match.groupdict()
        lag_days = 0
        if data["lag"]:
            lag_days = int(data["lag"][:-1])

        deps.append({
            "predecessor_id": int(data["id"]),
            "type": DependencyType(data["type"]),
            "lag_days": lag_days
        })
    return deps


def dependencies_from_tasks(tasks_df, column="predecessors"):
    """
    Expands a compact predecessor column on the task table into
    dependency records (one row per edge).
    """
    rows = []
    if tasks_df is None or column not in tasks_df.columns:
        return pd.DataFrame(columns=DEPENDENCY_COLUMNS)

    for _, row in tasks_df.iterrows():
        preds = row.get(column)
        if pd.isna(preds) or str(preds).strip() == "":
            continue
        for dep in parse_dependency_string(str(preds)):
            rows.append({
                "project_id": row.get("project_id"),
                "predecessor_id": dep["predecessor_id"],
                "successor_id": int(row["id"]),
                "type": dep["type"].value,
                "lag_days": dep["lag_days"],
            })
    return pd.DataFrame(rows, columns=DEPENDENCY_COLUMNS)


def build_dependency_graph(tasks_df, dependencies_df, validate=False):
    """
    Builds a NetworkX MultiDiGraph (predecessor -> successor) for one project.
    Two links between the same pair of tasks (e.g. SS + FF) are both kept.

    Edges carry `type` (DependencyType) and `lag` (int days).
    Dependencies pointing at tasks outside the project, self-dependencies and
    unparseable types are skipped, not fatal.

    With validate=True the nodes on a cycle are also marked in the results.
    The scheduling path leaves it off; topological_order rejects cycles anyway.

    Returns:
    - G: The NetworkX graph
    - validation_results: Dict mapping task id -> status string ("OK" or "ERROR: ...")
    """
    G = nx.MultiDiGraph()
    validation_results = {}

    for task in frame_records(tasks_df):
        G.add_node(task["id"], label=task.get("name") or str(task["id"]))
        validation_results[task["id"]] = "OK"

    for dep in frame_records(dependencies_df):
        pred_id = dep.get("predecessor_id")
        succ_id = dep.get("successor_id")

        if pred_id not in G or succ_id not in G:
            missing = pred_id if pred_id not in G else succ_id
            logger.warning(f"Skipping dependency {pred_id} -> {succ_id}: task {missing} not found")
            if succ_id in G:
                validation_results[succ_id] = f"ERROR: Missing predecessor ID {pred_id}"
            continue

        if pred_id == succ_id:
            logger.warning(f"Skipping self-dependency on task {pred_id}")
            validation_results[succ_id] = f"ERROR: Self-dependency on {pred_id}"
            continue

        try:
            dep_type = DependencyType.parse(dep.get("type"))
        except ValueError as e:
            logger.warning(f"Skipping dependency {pred_id} -> {succ_id}: {e}")
            validation_results[succ_id] = f"ERROR: {e}"
            continue

        lag = dep.get("lag_days")
        lag = 0 if lag is None else int(lag)

        G.add_edge(pred_id, succ_id, type=dep_type, lag=lag)

    if not validate or nx.is_directed_acyclic_graph(G):
        return G, validation_results

    # Mark the nodes on a cycle so the UI can show them
    for cycle in nx.simple_cycles(nx.DiGraph(G)):
        cycle_str = "->".join(map(str, cycle))
        for node in cycle:
            if validation_results.get(node, "OK") == "OK":
                validation_results[node] = f"ERROR: Cycle detected ({cycle_str})"
            else:
                validation_results[node] += "; Cycle detected"

    return G, validation_results


def topological_order(G):
    """
    Predecessors-first ordering of the graph nodes.
    Raises CyclicDependencyError naming one edge of the first cycle found.
    """
    try:
        return list(nx.topological_sort(G))
    except nx.NetworkXUnfeasible:
        cycle = nx.find_cycle(G)
        edges = [(edge[0], edge[1]) for edge in cycle]
        raise CyclicDependencyError(edges[-1], edges)


def predecessor_edges(G, node):
    """[{task_id, type, lag_days}] for the incoming edges of node."""
    return [
        {"task_id": pred, "type": data["type"], "lag_days": data["lag"]}
        for pred, _, _key, data in G.in_edges(node, keys=True, data=True)
    ]


def successor_edges(G, node):
    """[{task_id, type, lag_days}] for the outgoing edges of node."""
    return [
        {"task_id": succ, "type": data["type"], "lag_days": data["lag"]}
        for _, succ, _key, data in G.out_edges(node, keys=True, data=True)
    ]
