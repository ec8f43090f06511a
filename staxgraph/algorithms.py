"""Graph algorithms built on :class:`GraphReader`."""

from __future__ import annotations

from collections import deque

from .encoding import U32_SIZE, decode_u32, encode_u32
from .operators import ForwardScanOperator, IntersectOperator, QueryPipeline
from .reader import GraphReader

_FVO_KEY_LEN = U32_SIZE * 3


def find_shortest_path(
    reader: GraphReader, start_node: int, end_node: int, field_id: int
) -> list[int]:
    """Breadth-first shortest path along ``field_id`` edges; [] if unreachable."""
    if start_node == end_node:
        return [start_node]

    queue = deque([start_node])
    visited = {start_node}
    predecessors = {start_node: 0}

    while queue:
        current = queue.popleft()
        if current == end_node:
            path = []
            at = end_node
            while at != 0:
                path.append(at)
                at = predecessors[at]
            path.reverse()
            return path
        for neighbor in reader.get_outgoing_relationships(current, field_id):
            if neighbor not in visited:
                visited.add(neighbor)
                predecessors[neighbor] = current
                queue.append(neighbor)
    return []


def count_triangles(reader: GraphReader, field_id: int) -> int:
    """Count triangles formed by ``field_id`` edges.

    For every node ``u`` with edges and every neighbour ``v`` of ``u`` the
    common neighbours of ``u`` and ``v`` are counted; the sum is divided by 3.
    """
    nodes = {
        decode_u32(key[U32_SIZE * 2 :])
        for key, _ in reader.fvo.seek_prefix(reader.ctx, encode_u32(field_id))
        if len(key) == _FVO_KEY_LEN
    }
    if len(nodes) < 3:
        return 0

    cache: dict[int, frozenset[int]] = {}

    def neighbors(node: int) -> frozenset[int]:
        found = cache.get(node)
        if found is None:
            found = frozenset(reader.get_outgoing_relationships(node, field_id))
            cache[node] = found
        return found

    total = 0
    for u in sorted(nodes):
        u_neighbors = neighbors(u)
        for v in sorted(u_neighbors):
            total += len(u_neighbors & neighbors(v))
    return total // 3


def common_neighbors(
    reader: GraphReader, node1: int, node2: int, field_id: int
) -> QueryPipeline:
    """Pipeline yielding ascending ids that both nodes point to via ``field_id``."""
    scan1 = ForwardScanOperator(reader.ofv, reader.ctx, node1, field_id)
    scan2 = ForwardScanOperator(reader.ofv, reader.ctx, node2, field_id)
    return QueryPipeline(IntersectOperator(scan1, scan2))