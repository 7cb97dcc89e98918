"""Query-to-chunk assignment models."""
from dataclasses import dataclass, asdict
from functools import cached_property
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class QueryAssignment:
    """A query bound to the single chunk it should optimize."""
    query: str
    assigned_chunk_index: int
    score: float
    is_primary: bool = False


@dataclass(frozen=True)
class ChunkSlot:
    """One slot per chunk; holds at most one assignment."""
    chunk_index: int
    chunk_preview: str
    chunk_heading: Optional[str] = None
    assignment: Optional[QueryAssignment] = None


@dataclass(frozen=True)
class QueryAssignmentMap:
    """
    Result of an assignment pass.

    `assignments` and `chunk_assignments` always describe the same pairs, and
    every query appears in exactly one of `assignments` / `unassigned_queries`.
    """
    assignments: Tuple[QueryAssignment, ...]
    chunk_assignments: Tuple[ChunkSlot, ...]
    unassigned_queries: Tuple[str, ...]
    queries: Tuple[str, ...] = ()
    min_score_threshold: float = 0.0

    @cached_property
    def _by_query(self) -> Dict[str, QueryAssignment]:
        return {a.query: a for a in self.assignments}

    @property
    def primary_query(self) -> Optional[str]:
        return self.queries[0] if self.queries else None

    def assignment_for(self, query: str) -> Optional[QueryAssignment]:
        """Return the assignment held by `query`, if any."""
        return self._by_query.get(query)

    def occupant_of(self, chunk_index: int) -> Optional[QueryAssignment]:
        """Return the assignment occupying `chunk_index`, if any."""
        if 0 <= chunk_index < len(self.chunk_assignments):
            return self.chunk_assignments[chunk_index].assignment
        return None

    def is_consistent(self) -> bool:
        """Check the mutual-consistency invariants of the map."""
        by_chunk: Dict[int, QueryAssignment] = {}
        for assignment in self.assignments:
            if assignment.assigned_chunk_index in by_chunk:
                return False
            by_chunk[assignment.assigned_chunk_index] = assignment

        for slot in self.chunk_assignments:
            if by_chunk.get(slot.chunk_index) != slot.assignment:
                return False
        if any(index >= len(self.chunk_assignments) or index < 0 for index in by_chunk):
            return False

        assigned = [a.query for a in self.assignments]
        if len(set(assigned)) != len(assigned):
            return False
        if set(assigned) & set(self.unassigned_queries):
            return False
        if self.queries:
            return sorted(assigned + list(self.unassigned_queries)) == sorted(self.queries)
        return True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ReassignmentResult:
    """Outcome of a manual reassignment."""
    updated_map: QueryAssignmentMap
    evicted_query: Optional[str] = None
