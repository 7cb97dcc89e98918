"""One-to-one assignment of queries to the chunks they should optimize."""
import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from models.assignment import ChunkSlot, QueryAssignment, QueryAssignmentMap, ReassignmentResult
from models.scores import ChunkScoreData
from config import MIN_SCORE_THRESHOLD

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 150

ScoreIndex = Dict[str, Dict[int, float]]


def chunk_preview(text: str) -> str:
    return text[:PREVIEW_LENGTH] + ("..." if len(text) > PREVIEW_LENGTH else "")


def dedupe_queries(queries: Sequence[str]) -> List[str]:
    """Strip queries, drop empty ones and keep the first occurrence of each duplicate."""
    unique: List[str] = []
    for query in queries:
        if not isinstance(query, str) or not query.strip():
            logger.warning("Dropping empty query")
            continue
        query = query.strip()
        if query in unique:
            logger.warning(f"Duplicate query collapsed: '{query}'")
            continue
        unique.append(query)
    return unique


def build_score_index(chunk_scores: Sequence[ChunkScoreData]) -> ScoreIndex:
    """Index passage scores as query -> chunk index -> score."""
    index: ScoreIndex = {}
    for chunk in chunk_scores:
        for query, score in chunk.scores.items():
            if score is None or (isinstance(score, float) and math.isnan(score)):
                continue
            index.setdefault(query.strip(), {})[chunk.chunk_index] = float(score)
    return index


class AssignmentEngine:
    """
    Greedy claim-based assignment.

    Candidates above the threshold are walked in descending score order
    (earlier queries, then earlier chunks, win ties); each candidate is
    accepted only when neither its query nor its chunk is already claimed.
    This is not a maximum-weight matching: a query can be pushed onto a
    weaker chunk because its best chunk was claimed first.
    """

    def __init__(self, min_score_threshold: float = MIN_SCORE_THRESHOLD):
        self.min_score_threshold = min_score_threshold

    def compute_query_assignments(
        self,
        chunk_scores: Sequence[ChunkScoreData],
        queries: Sequence[str],
        min_score_threshold: Optional[float] = None
    ) -> QueryAssignmentMap:
        """
        Assign each query to at most one chunk and each chunk to at most one query.

        Args:
            chunk_scores: One entry per chunk, with its scores keyed by query
            queries: Queries in priority order; the first is the primary query
            min_score_threshold: Minimum score a pairing needs (engine default if omitted)

        Returns:
            QueryAssignmentMap with one slot per chunk
        """
        threshold = self.min_score_threshold if min_score_threshold is None else min_score_threshold
        ordered_queries = dedupe_queries(queries)
        slots = self._empty_slots(chunk_scores)
        index = build_score_index(chunk_scores)

        candidates: List[Tuple[float, int, int]] = []
        for query_index, query in enumerate(ordered_queries):
            for chunk_index, score in index.get(query, {}).items():
                if score >= threshold and 0 <= chunk_index < len(slots):
                    candidates.append((score, query_index, chunk_index))

        # Highest score first; ties fall back to query order, then chunk order
        candidates.sort(key=lambda c: (-c[0], c[1], c[2]))

        claimed_queries = set()
        claimed_chunks = set()
        by_chunk: Dict[int, QueryAssignment] = {}
        for score, query_index, chunk_index in candidates:
            if query_index in claimed_queries or chunk_index in claimed_chunks:
                continue
            claimed_queries.add(query_index)
            claimed_chunks.add(chunk_index)
            by_chunk[chunk_index] = QueryAssignment(
                query=ordered_queries[query_index],
                assigned_chunk_index=chunk_index,
                score=score,
                is_primary=query_index == 0,
            )
            logger.debug(f"Assigned '{ordered_queries[query_index]}' to chunk {chunk_index} ({score})")

        assignment_map = self._build_map(slots, by_chunk, ordered_queries, threshold)
        logger.info(
            f"Assigned {len(assignment_map.assignments)}/{len(ordered_queries)} queries "
            f"across {len(slots)} chunks (threshold={threshold})"
        )
        return assignment_map

    def from_pairs(
        self,
        chunk_scores: Sequence[ChunkScoreData],
        queries: Sequence[str],
        pairs: Dict[str, int],
        min_score_threshold: Optional[float] = None
    ) -> QueryAssignmentMap:
        """
        Rebuild a map from explicit query -> chunk pairs (e.g. one a client kept).

        Raises:
            ValueError: If a pair names an unknown query, an out-of-range chunk,
                or a chunk already taken by another pair
        """
        threshold = self.min_score_threshold if min_score_threshold is None else min_score_threshold
        ordered_queries = dedupe_queries(queries)
        slots = self._empty_slots(chunk_scores)
        index = build_score_index(chunk_scores)

        by_chunk: Dict[int, QueryAssignment] = {}
        for query, chunk_index in pairs.items():
            query = query.strip()
            if query not in ordered_queries:
                raise ValueError(f"Unknown query: '{query}'")
            if not 0 <= chunk_index < len(slots):
                raise ValueError(f"Chunk index {chunk_index} out of range (0-{len(slots) - 1})")
            if chunk_index in by_chunk:
                raise ValueError(f"Chunk {chunk_index} is assigned to more than one query")
            by_chunk[chunk_index] = QueryAssignment(
                query=query,
                assigned_chunk_index=chunk_index,
                score=index.get(query, {}).get(chunk_index, 0.0),
                is_primary=ordered_queries[0] == query,
            )
        return self._build_map(slots, by_chunk, ordered_queries, threshold)

    def reassign_query(
        self,
        assignment_map: QueryAssignmentMap,
        query: str,
        new_chunk_index: int,
        chunk_scores: Sequence[ChunkScoreData]
    ) -> ReassignmentResult:
        """
        Manually move a query onto a chunk.

        The target's previous occupant, if it is a different query, is
        evicted to the unassigned list. The moved query's score is read
        from `chunk_scores` for the new chunk (0 when absent) and may fall
        below the threshold.

        Raises:
            ValueError: If the query is unknown or the chunk index is out of range
        """
        slots = assignment_map.chunk_assignments
        if not 0 <= new_chunk_index < len(slots):
            raise ValueError(f"Chunk index {new_chunk_index} out of range (0-{len(slots) - 1})")

        query = query.strip() if isinstance(query, str) else query
        known = assignment_map.queries or tuple(
            [a.query for a in assignment_map.assignments] + list(assignment_map.unassigned_queries)
        )
        if query not in known:
            raise ValueError(f"Unknown query: '{query}'")

        index = build_score_index(chunk_scores)
        new_score = index.get(query, {}).get(new_chunk_index, 0.0)

        by_chunk: Dict[int, QueryAssignment] = {
            slot.chunk_index: slot.assignment for slot in slots if slot.assignment is not None
        }

        occupant = by_chunk.get(new_chunk_index)
        evicted = occupant.query if occupant is not None and occupant.query != query else None

        for chunk_index, assignment in list(by_chunk.items()):
            if assignment.query == query:
                del by_chunk[chunk_index]

        by_chunk[new_chunk_index] = QueryAssignment(
            query=query,
            assigned_chunk_index=new_chunk_index,
            score=new_score,
            is_primary=bool(known) and known[0] == query,
        )

        if evicted:
            logger.info(f"Reassigned '{query}' to chunk {new_chunk_index}, evicting '{evicted}'")
        else:
            logger.info(f"Reassigned '{query}' to chunk {new_chunk_index}")

        empty = [ChunkSlot(s.chunk_index, s.chunk_preview, s.chunk_heading) for s in slots]
        updated = self._build_map(empty, by_chunk, list(known), assignment_map.min_score_threshold)
        return ReassignmentResult(updated_map=updated, evicted_query=evicted)

    @staticmethod
    def _empty_slots(chunk_scores: Sequence[ChunkScoreData]) -> List[ChunkSlot]:
        ordered = sorted(chunk_scores, key=lambda c: c.chunk_index)
        for position, chunk in enumerate(ordered):
            if chunk.chunk_index != position:
                raise ValueError("Chunk indices must be contiguous and start at 0")
        return [
            ChunkSlot(
                chunk_index=chunk.chunk_index,
                chunk_preview=chunk_preview(chunk.text),
                chunk_heading=chunk.heading,
            )
            for chunk in ordered
        ]

    @staticmethod
    def _build_map(
        slots: List[ChunkSlot],
        by_chunk: Dict[int, QueryAssignment],
        queries: List[str],
        threshold: float
    ) -> QueryAssignmentMap:
        """Assemble a map whose assignment list and slots come from the same pairs."""
        filled = tuple(
            ChunkSlot(
                chunk_index=slot.chunk_index,
                chunk_preview=slot.chunk_preview,
                chunk_heading=slot.chunk_heading,
                assignment=by_chunk.get(slot.chunk_index),
            )
            for slot in slots
        )
        query_order = {q: i for i, q in enumerate(queries)}
        assignments = tuple(sorted(by_chunk.values(), key=lambda a: query_order.get(a.query, len(queries))))
        assigned = {a.query for a in assignments}
        return QueryAssignmentMap(
            assignments=assignments,
            chunk_assignments=filled,
            unassigned_queries=tuple(q for q in queries if q not in assigned),
            queries=tuple(queries),
            min_score_threshold=threshold,
        )
