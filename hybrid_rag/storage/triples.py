"""
Triple Store

A schema-less directed graph stored as (subject, predicate, object) rows.

Operations:
    - link / unlink: idempotent edge writes, retried under contention
    - neighbors / in_neighbors: one-hop lookups, optionally by predicate
    - query(): chainable traversal builder (v, out, in_, both, all, values)
    - find_path: breadth-first search for simple paths between two nodes
    - all_triples / subgraph / count: export helpers

Example:
    >>> store = TripleStore(db)
    >>> await store.initialize()
    >>> await store.link("doc1", "related", "doc2")
    >>> await store.link("doc2", "related", "doc3")
    >>> await store.find_path("doc1", "doc3", max_depth=5, predicate="related")
    [['doc1', 'doc2', 'doc3']]
    >>> await store.query().v("doc1").out("related").out("related").values()
    ['doc3']
"""

from __future__ import annotations

import logging
import sys
from collections import deque
from dataclasses import dataclass
from typing import Any, Literal

import duckdb

from hybrid_rag.errors import GraphQueryError, ValidationError
from hybrid_rag.storage.duckdb import (
    DuckDBDatabase,
    WritePolicy,
    quote_identifier,
    rows_to_dicts,
    translated_errors,
)
from hybrid_rag.types import GraphData, Triple

logger = logging.getLogger(__name__)

Direction = Literal["out", "in", "both"]

DEFAULT_MAX_DEPTH = 10
DEFAULT_MAX_PATHS = 100


class TripleStore:
    """
    DuckDB-backed triple store.

    Args:
        db: Shared database
        table: Table name (checked against the identifier grammar)
        policy: Retry policy for contended writes
        max_depth: Depth bound used when find_path gets max_depth <= 0
        max_paths: Number of complete paths after which find_path stops
    """

    def __init__(
        self,
        db: DuckDBDatabase,
        table: str = "quads",
        policy: WritePolicy | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_paths: int = DEFAULT_MAX_PATHS,
    ) -> None:
        self.db = db
        self.table = quote_identifier(table)
        self.policy = policy or WritePolicy()
        self.max_depth = max_depth
        self.max_paths = max_paths

    def create_schema(self) -> None:
        """Create the triples table if missing (blocking)."""
        self.db.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                subject VARCHAR NOT NULL,
                predicate VARCHAR NOT NULL,
                object VARCHAR NOT NULL,
                created_at TIMESTAMP DEFAULT current_timestamp,
                PRIMARY KEY (subject, predicate, object)
            )
        """)

    async def initialize(self) -> None:
        await self.db.run(self.create_schema)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def link_in(self, conn: duckdb.DuckDBPyConnection, subject: str, predicate: str, obj: str) -> None:
        """Insert an edge using a caller-held cursor (no retry, no commit)."""
        _check_edge(subject, predicate, obj)
        with translated_errors():
            conn.execute(
                f"INSERT OR IGNORE INTO {self.table} (subject, predicate, object) VALUES (?, ?, ?)",
                [subject, predicate, obj],
            )

    def unlink_in(self, conn: duckdb.DuckDBPyConnection, subject: str, predicate: str, obj: str) -> None:
        """Delete an edge using a caller-held cursor (no retry, no commit)."""
        with translated_errors():
            conn.execute(
                f"DELETE FROM {self.table} WHERE subject = ? AND predicate = ? AND object = ?",
                [subject, predicate, obj],
            )

    async def link(self, subject: str, predicate: str, obj: str) -> None:
        """
        Add the edge subject -predicate-> obj. Adding an existing edge is a no-op.

        Raises:
            ValidationError: If any component is empty
            TransientStorageError: If contention outlasts the retry policy
            PermanentStorageError: On any other database failure
        """
        _check_edge(subject, predicate, obj)

        def _write() -> None:
            with self.db.transaction() as conn:
                self.link_in(conn, subject, predicate, obj)

        await self.policy.call(self.db.run, _write)

    async def unlink(self, subject: str, predicate: str, obj: str) -> None:
        """Remove the edge if present. Removing a missing edge succeeds."""
        def _write() -> None:
            with self.db.transaction() as conn:
                self.unlink_in(conn, subject, predicate, obj)

        await self.policy.call(self.db.run, _write)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _neighbors(self, node: str, predicate: str, direction: Direction) -> list[str]:
        if direction == "out":
            key, target = "subject", "object"
        else:
            key, target = "object", "subject"
        sql = f"SELECT DISTINCT {target} FROM {self.table} WHERE {key} = ?"
        params: list[Any] = [node]
        if predicate:
            sql += " AND predicate = ?"
            params.append(predicate)
        sql += f" ORDER BY {target}"
        return [row[0] for row in self.db.execute(sql, params).fetchall()]

    async def neighbors(self, node: str, predicate: str = "") -> list[str]:
        """Distinct objects of edges leaving node ("" matches any predicate)."""
        return await self.db.run(self._neighbors, node, predicate, "out")

    async def in_neighbors(self, node: str, predicate: str = "") -> list[str]:
        """Distinct subjects of edges entering node ("" matches any predicate)."""
        return await self.db.run(self._neighbors, node, predicate, "in")

    async def has_edge(self, subject: str, predicate: str, obj: str) -> bool:
        def _query() -> bool:
            row = self.db.execute(
                f"SELECT 1 FROM {self.table} WHERE subject = ? AND predicate = ? AND object = ?",
                [subject, predicate, obj],
            ).fetchone()
            return row is not None

        return await self.db.run(_query)

    def _step_edges(
        self,
        nodes: list[str],
        direction: Direction,
        predicate: str,
    ) -> list[tuple[Triple, str]]:
        """Edges touching nodes in one direction, each paired with its far end."""
        if not nodes:
            return []
        if direction == "both":
            return (
                self._step_edges(nodes, "out", predicate)
                + self._step_edges(nodes, "in", predicate)
            )

        key = "subject" if direction == "out" else "object"
        placeholders = ",".join(["?" for _ in nodes])
        sql = (
            f"SELECT subject, predicate, object, created_at FROM {self.table} "
            f"WHERE {key} IN ({placeholders})"
        )
        params: list[Any] = list(nodes)
        if predicate:
            sql += " AND predicate = ?"
            params.append(predicate)
        sql += " ORDER BY subject, predicate, object"

        conn = self.db.cursor()
        with translated_errors():
            rows = conn.execute(sql, params).fetchall()
            records = rows_to_dicts(rows, conn)

        edges = []
        for record in records:
            triple = Triple(**record)
            far = triple.object if direction == "out" else triple.subject
            edges.append((triple, far))
        return edges

    # -------------------------------------------------------------------------
    # Traversal
    # -------------------------------------------------------------------------

    def query(self) -> "GraphQuery":
        """Start a traversal. Call v(node) before all() or values()."""
        return GraphQuery(self)

    def _find_path(self, source: str, target: str, max_depth: int, predicate: str) -> list[list[str]]:
        source = sys.intern(source)
        target = sys.intern(target)
        if source == target:
            return [[source]]

        visited = {source}
        queue: deque[tuple[str, ...]] = deque([(source,)])
        paths: list[list[str]] = []

        while queue and len(paths) < self.max_paths:
            path = queue.popleft()
            node = path[-1]

            if len(path) > max_depth:
                continue
            if node == target:
                paths.append(list(path))
                continue

            for neighbor in self._neighbors(node, predicate, "out"):
                neighbor = sys.intern(neighbor)
                if neighbor in visited:
                    continue
                visited.add(neighbor)
                queue.append(path + (neighbor,))

        return paths

    async def find_path(
        self,
        source: str,
        target: str,
        max_depth: int = DEFAULT_MAX_DEPTH,
        predicate: str = "",
    ) -> list[list[str]]:
        """
        Find simple paths from source to target following edge direction.

        Breadth-first with one visited set for the whole search: every node,
        the target included, is enqueued at most once. The target is
        therefore reached by the single shortest path found first. Paths
        holding more than max_depth nodes are dropped before the target
        check, so a path has at most max_depth - 1 hops.

        Args:
            source: Start node
            target: End node
            max_depth: Maximum nodes per path (<= 0 uses the store default)
            predicate: Only follow edges with this predicate ("" for any)

        Returns:
            Paths as node lists, source first. [[source]] when source == target.
        """
        if max_depth <= 0:
            max_depth = self.max_depth
        paths = await self.db.run(self._find_path, source, target, max_depth, predicate)
        logger.debug(f"find_path {source!r} -> {target!r}: {len(paths)} path(s)")
        return paths

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    async def all_triples(self) -> list[Triple]:
        """Every stored edge, ordered by subject, predicate, object."""
        def _query() -> list[Triple]:
            conn = self.db.cursor()
            with translated_errors():
                rows = conn.execute(
                    f"SELECT subject, predicate, object, created_at FROM {self.table} "
                    "ORDER BY subject, predicate, object"
                ).fetchall()
                return [Triple(**record) for record in rows_to_dicts(rows, conn)]

        return await self.db.run(_query)

    async def count(self) -> int:
        def _query() -> int:
            row = self.db.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
            return int(row[0]) if row else 0

        return await self.db.run(_query)

    async def subgraph(self, node: str, depth: int = 1) -> GraphData:
        """
        Nodes within depth hops of node (ignoring direction) and their edges.

        Edges are those traversed while expanding, so every edge has both
        endpoints in the node list.
        """
        def _query() -> GraphData:
            nodes = [node]
            seen = {sys.intern(node)}
            edges: dict[tuple[str, str, str], Triple] = {}
            frontier = [node]

            for _ in range(max(depth, 0)):
                next_frontier = []
                for triple, far in self._step_edges(frontier, "both", ""):
                    edges.setdefault(triple.key(), triple)
                    far = sys.intern(far)
                    if far not in seen:
                        seen.add(far)
                        nodes.append(far)
                        next_frontier.append(far)
                frontier = next_frontier
                if not frontier:
                    break

            # Edges among the final frontier are not reached by the loop
            if frontier and depth > 0:
                for triple, far in self._step_edges(frontier, "out", ""):
                    if far in seen:
                        edges.setdefault(triple.key(), triple)

            kept = [t for t in edges.values() if t.subject in seen and t.object in seen]
            return GraphData(nodes=nodes, edges=kept)

        return await self.db.run(_query)


@dataclass(frozen=True)
class _Step:
    direction: Direction
    predicate: str


class GraphQuery:
    """
    Immutable traversal builder. Every chaining method returns a new query.

    Example:
        >>> q = store.query().v("A").out("next").out("next")
        >>> await q.values()      # frontier after the last step
        ['C']
        >>> await q.all()         # edges traversed by the last step only
        [Triple(subject='B', predicate='next', object='C', ...)]
    """

    def __init__(
        self,
        store: TripleStore,
        start: str | None = None,
        steps: tuple[_Step, ...] = (),
    ) -> None:
        self._store = store
        self._start = start
        self._steps = steps

    def _with_step(self, direction: Direction, predicate: str) -> "GraphQuery":
        return GraphQuery(self._store, self._start, self._steps + (_Step(direction, predicate),))

    def v(self, node: str) -> "GraphQuery":
        """Set the start frontier to the single node."""
        return GraphQuery(self._store, node, self._steps)

    def out(self, predicate: str = "") -> "GraphQuery":
        """Follow outgoing edges ("" for any predicate)."""
        return self._with_step("out", predicate)

    def in_(self, predicate: str = "") -> "GraphQuery":
        """Follow incoming edges ("" for any predicate)."""
        return self._with_step("in", predicate)

    def both(self, predicate: str = "") -> "GraphQuery":
        """Follow edges in either direction."""
        return self._with_step("both", predicate)

    @property
    def steps(self) -> int:
        return len(self._steps)

    def _execute(self) -> tuple[list[str], list[Triple]]:
        if self._start is None:
            raise GraphQueryError("query must start with v(node)")

        frontier = [self._start]
        last_edges: list[Triple] = []
        for step in self._steps:
            pairs = self._store._step_edges(frontier, step.direction, step.predicate)
            last_edges = [triple for triple, _ in pairs]
            frontier = list(dict.fromkeys(far for _, far in pairs))
        return frontier, last_edges

    def _check_started(self) -> None:
        if self._start is None:
            raise GraphQueryError("query must start with v(node)")

    async def all(self) -> list[Triple]:
        """Edges recorded at the last step. A query with no steps returns []."""
        self._check_started()
        if not self._steps:
            return []
        _, edges = await self._store.db.run(self._execute)
        return edges

    async def values(self) -> list[str]:
        """Deduplicated frontier after running every step."""
        self._check_started()
        frontier, _ = await self._store.db.run(self._execute)
        return frontier

    def __repr__(self) -> str:
        chain = "".join(f".{s.direction}({s.predicate!r})" for s in self._steps)
        return f"GraphQuery(v({self._start!r}){chain})"


def _check_edge(subject: str, predicate: str, obj: str) -> None:
    for name, value in (("subject", subject), ("predicate", predicate), ("object", obj)):
        if not isinstance(value, str) or not value:
            raise ValidationError(f"triple {name} must be a non-empty string")
