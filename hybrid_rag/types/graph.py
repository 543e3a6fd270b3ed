"""
Graph Types

Triples are directed labeled edges. The store treats subjects and objects
as plain string node ids; document ids are nodes too.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class Triple(BaseModel):
    """
    A directed labeled edge (subject, predicate, object).

    The (subject, predicate, object) tuple is unique in storage.
    """

    subject: str
    predicate: str
    object: str
    created_at: datetime | None = None

    model_config = ConfigDict(frozen=True)

    def key(self) -> tuple[str, str, str]:
        """Identity of the edge, ignoring the timestamp."""
        return (self.subject, self.predicate, self.object)


class GraphData(BaseModel):
    """A node set and the edges among those nodes."""

    nodes: list[str] = []
    edges: list[Triple] = []
