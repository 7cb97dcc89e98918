"""Passage scoring: retrieval, rerank and citation heuristics combined into one 0-100 score."""
import logging
import math
import re
from typing import Iterable, List, Sequence

from models.categorization import EntityAnalysis
from models.chunk import Chunk
from models.scores import PassageScoreResult, ScoreComponents

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset([
    'a', 'an', 'the', 'is', 'are', 'was', 'were', 'be', 'been', 'being',
    'have', 'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could',
    'should', 'may', 'might', 'must', 'shall', 'can', 'need',
    'to', 'of', 'in', 'for', 'on', 'with', 'at', 'by', 'from', 'as',
    'into', 'through', 'during', 'before', 'after', 'above', 'below',
    'between', 'under', 'again', 'further', 'then', 'once', 'here',
    'there', 'when', 'where', 'why', 'how', 'all', 'each', 'few',
    'more', 'most', 'other', 'some', 'such', 'no', 'nor', 'not',
    'only', 'own', 'same', 'so', 'than', 'too', 'very', 'just',
    'and', 'but', 'if', 'or', 'because', 'until', 'while', 'this',
    'that', 'these', 'those', 'what', 'which', 'who', 'whom', 'i',
    'you', 'he', 'she', 'it', 'we', 'they', 'my', 'your', 'his',
    'her', 'its', 'our', 'their', 'me', 'him', 'us', 'them'
])

DOMAIN_ACRONYMS = frozenset([
    'API', 'ROI', 'KPI', 'B2B', 'B2C', 'GDPR', 'CRM', 'ERP', 'HR', 'AI',
    'ML', 'NLP', 'LLM', 'RAG', 'SEO', 'PPC', 'CTR', 'SLA', 'SOC', 'ISO',
    'HIPAA', 'CCPA', 'SDK', 'REST', 'JSON', 'SQL', 'ETL', 'SSO', 'MFA',
    'RBAC', 'VPN', 'CDN', 'DNS', 'SSL', 'TLS', 'MVP', 'QA', 'CI', 'CD'
])

# Passage score tiers, highest first
TIERS = (
    (90, "excellent"),
    (75, "good"),
    (60, "moderate"),
    (40, "weak"),
)

TIER_INTERPRETATIONS = {
    "excellent": "High retrieval probability. Very likely to make top 5 results in RAG systems.",
    "good": "Good retrieval probability. Strong candidate for top 10 results.",
    "moderate": "Moderate retrieval probability. Competitive but depends on other content.",
    "weak": "Weak retrieval probability. May be retrieved if competition is low.",
    "poor": "Poor retrieval probability. Likely filtered out during initial retrieval.",
}

TIER_RECOMMENDATIONS = {
    "excellent": "Content is well-optimized. Monitor for changes and maintain quality.",
    "good": "Content performs well. Consider minor improvements to reach excellent tier.",
    "moderate": "Optimize passage boundaries, add context, or improve semantic relevance.",
    "weak": "Significant restructuring needed. Review heading hierarchy and passage atomicity.",
    "poor": "Major optimization required. Content may not be relevant to query or poorly structured.",
}

_NON_WORD = re.compile(r"[^\w\s]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_PROPER_NOUN = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\b")
_NUMBER_UNIT = re.compile(
    r"\b(\d+(?:[-–]\d+)?\s*(?:days?|weeks?|months?|years?|hours?|minutes?|dollars?|%|percent|k|million|billion))(?!\w)",
    re.IGNORECASE,
)
_QUOTED = re.compile(r"[\"']([^\"']+)[\"']")
_ALL_CAPS = re.compile(r"\b([A-Z]{2,})\b")


def _round(value: float) -> int:
    """Round half up and clamp to 0-100."""
    return max(0, min(100, int(math.floor(value + 0.5))))


def _clean(text: str) -> str:
    return " ".join(_NON_WORD.sub("", text.lower()).split())


def content_terms(text: str) -> List[str]:
    """Lower-cased words longer than two characters, stop words removed, in order and de-duplicated."""
    seen = []
    for word in _clean(text).split():
        if len(word) > 2 and word not in STOP_WORDS and word not in seen:
            seen.append(word)
    return seen


def extract_query_entities(query: str) -> List[str]:
    """
    Extract the entities a relevant passage should mention.

    Content words plus quoted phrases, capitalised multi-word names,
    numbers with units and known acronyms; lower-cased and de-duplicated
    in discovery order.
    """
    if not isinstance(query, str) or not query.strip():
        return []

    entities: List[str] = []

    def add(entity: str) -> None:
        entity = " ".join(entity.lower().split())
        if entity and entity not in entities:
            entities.append(entity)

    for match in _QUOTED.finditer(query):
        add(match.group(1))
    for match in _PROPER_NOUN.finditer(query):
        add(match.group(1))
    for match in _NUMBER_UNIT.finditer(query):
        add(match.group(1))
    for word in query.split():
        if re.sub(r"[^A-Za-z0-9]", "", word).upper() in DOMAIN_ACRONYMS:
            add(re.sub(r"[^A-Za-z0-9]", "", word))
    for match in _ALL_CAPS.finditer(query):
        add(match.group(1))
    for term in content_terms(query):
        add(term)

    return entities


def _mentions(text_lower: str, entity: str) -> bool:
    return re.search(r"(?<!\w)" + re.escape(entity) + r"(?!\w)", text_lower) is not None


def analyze_entities(query: str, text: str) -> EntityAnalysis:
    """Split the query's entities into those the text mentions and those it lacks."""
    entities = extract_query_entities(query)
    if not entities or not isinstance(text, str):
        return EntityAnalysis(variant_entities=tuple(entities), missing_entities=tuple(entities))

    text_lower = text.lower()
    shared = [e for e in entities if _mentions(text_lower, e)]
    missing = [e for e in entities if e not in shared]
    return EntityAnalysis(
        variant_entities=tuple(entities),
        shared_entities=tuple(shared),
        missing_entities=tuple(missing),
        overlap_percent=round(len(shared) / len(entities) * 100, 1),
    )


def get_passage_score_tier(score: float) -> str:
    for floor, tier in TIERS:
        if score >= floor:
            return tier
    return "poor"


def get_tier_interpretation(score: float) -> str:
    return TIER_INTERPRETATIONS[get_passage_score_tier(score)]


def get_tier_recommendation(score: float) -> str:
    return TIER_RECOMMENDATIONS[get_passage_score_tier(score)]


def normalize_semantic(similarity: float) -> float:
    """
    Put a semantic similarity on the 0-100 scale.

    Values up to 1 are treated as cosine-like (negatives floor at 0); larger
    values are taken as already on the 0-100 scale. The switch is not
    monotonic: 1.0 maps to 100 while 1.01 maps to 1.01.
    """
    try:
        value = float(similarity)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    if value > 1:
        return min(value, 100.0)
    return max(value, 0.0) * 100


class PassageScorer:
    """Scores how likely a chunk is to be retrieved, reranked and cited for a query."""

    # Definitional or declarative openings
    DEFINITION_PATTERN = re.compile(
        r"\b(?:is|are|refers?\s+to|means?|defined?\s+as|represents?|consists?\s+of)\b", re.IGNORECASE
    )
    EXPLICIT_ANSWER_PATTERN = re.compile(
        r"\b(?:the\s+answer|this\s+(?:takes?|costs?|requires?|includes?|provides?)"
        r"|typically\s+(?:takes?|costs?|is|ranges?)|usually\s+(?:takes?|costs?|is)"
        r"|generally\s+(?:takes?|costs?|is))\b",
        re.IGNORECASE,
    )
    QUANTITY_PATTERN = re.compile(
        r"\b\d+(?:[-–]\d+)?\s*(?:days?|weeks?|months?|hours?|minutes?|dollars?|\$|%|percent"
        r"|times?|steps?|phases?|stages?)(?!\w)",
        re.IGNORECASE,
    )

    LIST_PATTERNS = [
        re.compile(r"^\s*[-•*]\s+", re.MULTILINE),
        re.compile(r"^\s*\d+[.)]\s+", re.MULTILINE),
        re.compile(r"\b(?:step\s+\d+|first|second|third|finally)\b", re.IGNORECASE),
    ]
    STRUCTURED_DEFINITION_PATTERNS = [
        re.compile(r"\b\w+\s+(?:is|are)\s+(?:a|an|the)\s+\w+", re.IGNORECASE),
        re.compile(r"\b\w+\s+means\s+", re.IGNORECASE),
        re.compile(r"\b\w+\s+refers?\s+to\s+", re.IGNORECASE),
        re.compile(r"\bdefined?\s+as\s+", re.IGNORECASE),
    ]
    STRUCTURED_ANSWER_PATTERNS = [
        re.compile(r"\b(?:the|this)\s+(?:answer|solution|result|outcome)\s+is\b", re.IGNORECASE),
        re.compile(r"\byou\s+(?:can|should|need\s+to|must)\b", re.IGNORECASE),
        re.compile(r"\b(?:typically|usually|generally)\s+(?:takes?|costs?|requires?)\s+\d+", re.IGNORECASE),
        re.compile(r"\b(?:includes?|provides?|offers?|contains?)\s*:", re.IGNORECASE),
    ]

    # Sentences opening with these lean on earlier context
    CONTEXT_DEPENDENT_STARTERS = re.compile(
        r"^(?:this|it|they|these|those|however|therefore|thus|hence|moreover|furthermore"
        r"|additionally|also|but|and|so|yet|still|meanwhile|consequently|as a result)\b",
        re.IGNORECASE,
    )
    FACTUAL_INDICATORS = ['is', 'are', 'was', 'were', 'has', 'have', 'can', 'will']
    HEDGE_WORDS = ['might', 'could', 'possibly', 'perhaps', 'maybe', 'somewhat', 'fairly', 'relatively']
    EXAMPLE_INDICATORS = ['for example', 'for instance', 'such as', 'e.g.', 'including', 'like']
    CITATION_INDICATORS = [
        'according to', 'research shows', 'studies', 'data from', 'source:', 'documentation', 'official'
    ]
    UNCERTAINTY_PHRASES = [
        'i think', 'i believe', 'probably', 'likely', 'seems like', 'appears to', 'in my opinion'
    ]

    def score(
        self,
        text: str,
        query: str,
        semantic_similarity: float,
        heading_path: Sequence[str] = ()
    ) -> PassageScoreResult:
        """
        Score one passage against one query.

        Args:
            text: Passage body, without cascaded headings
            query: Query text
            semantic_similarity: Embedding similarity, cosine-like or 0-100
            heading_path: Ancestor headings of the passage

        Returns:
            PassageScoreResult; all zeros for missing or empty text or query
        """
        if not isinstance(text, str) or not isinstance(query, str) or not text.strip() or not query.strip():
            logger.debug("Empty passage or query, returning minimum scores")
            return PassageScoreResult(
                passage_score=0, retrieval_score=0, rerank_score=0, citation_score=0
            )

        headings = [h for h in (heading_path or ()) if isinstance(h, str)]
        semantic = normalize_semantic(semantic_similarity)

        lexical = self.lexical_score(text, query, headings)
        retrieval = semantic * 0.70 + lexical * 0.30

        entity_prominence = self.entity_prominence(text, query)
        direct_answer = self.direct_answer_score(text, query)
        structural = self.structural_clarity(text, query, headings)
        restatement = self.query_restatement(text, query)
        rerank = (
            entity_prominence * 0.35
            + direct_answer * 0.30
            + structural * 0.20
            + restatement * 0.15
        )

        quotability = self.quotability(text)
        specificity = self.specificity(text)
        authority = self.authority_signals(text)
        structure = self.sentence_structure(text)
        citation = (
            quotability * 0.40
            + specificity * 0.30
            + authority * 0.20
            + structure * 0.10
        )

        passage = retrieval * 0.40 + rerank * 0.35 + citation * 0.25

        return PassageScoreResult(
            passage_score=_round(passage),
            retrieval_score=_round(retrieval),
            rerank_score=_round(rerank),
            citation_score=_round(citation),
            semantic_similarity=round(semantic, 2),
            lexical_score=_round(lexical),
            entity_overlap=_round(self.entity_overlap(text, query)),
            components=ScoreComponents(
                entity_prominence=_round(entity_prominence),
                direct_answer_score=_round(direct_answer),
                structural_clarity=_round(structural),
                query_restatement=_round(restatement),
                quotability=_round(quotability),
                specificity=_round(specificity),
                authority_signals=_round(authority),
                sentence_structure=_round(structure),
            ),
        )

    def score_chunk(self, chunk: Chunk, query: str, semantic_similarity: float) -> PassageScoreResult:
        """Score a chunk's body using its heading path."""
        return self.score(chunk.text_without_cascade, query, semantic_similarity, chunk.heading_path)

    # ------------------------------------------------------------ retrieval

    def lexical_score(self, text: str, query: str, heading_path: Sequence[str] = ()) -> float:
        """
        Keyword overlap score (0-100).

        Term coverage 40, exact phrase 25, terms in headings 20, terms in
        the first 100 characters 15.
        """
        terms = content_terms(query)
        if not terms:
            return 0.0

        text_lower = text.lower()
        matched = [t for t in terms if _mentions(text_lower, t)]
        score = len(matched) / len(terms) * 40

        phrase = _clean(query)
        if phrase and phrase in _clean(text):
            score += 25

        heading_text = " ".join(heading_path).lower()
        if heading_text:
            score += sum(1 for t in terms if _mentions(heading_text, t)) / len(terms) * 20

        opening = text_lower[:100]
        score += sum(1 for t in terms if _mentions(opening, t)) / len(terms) * 15

        return max(0.0, min(100.0, score))

    def entity_overlap(self, text: str, query: str) -> float:
        """Percentage of query entities found among the passage's content words."""
        entities = extract_query_entities(query)
        if not entities:
            return 100.0
        words = {w for w in _clean(text).split() if len(w) > 3}
        text_clean = _clean(text)
        matches = 0
        for entity in entities:
            if " " in entity:
                if _mentions(text_clean, _clean(entity)):
                    matches += 1
            elif any(entity in w or w in entity for w in words):
                matches += 1
        return matches / len(entities) * 100

    # ------------------------------------------------------------ rerank

    @staticmethod
    def _first_sentence(text: str) -> str:
        for segment in _SENTENCE_SPLIT.split(text):
            if segment.strip():
                return segment
        return ""

    def entity_prominence(self, text: str, query: str) -> float:
        """Share of query terms present in the passage's first sentence."""
        terms = content_terms(query)
        if not terms:
            return 0.0
        first = self._first_sentence(text).lower()
        return sum(1 for t in terms if _mentions(first, t)) / len(terms) * 100

    def direct_answer_score(self, text: str, query: str) -> float:
        score = 0
        if self.DEFINITION_PATTERN.search(text):
            score += 30
        if self.EXPLICIT_ANSWER_PATTERN.search(text):
            score += 40
        if self.QUANTITY_PATTERN.search(text):
            score += 30

        if re.search(r"how\s+long", query, re.IGNORECASE) and re.search(
            r"\b\d+\s*(?:days?|weeks?|months?|hours?|years?)\b", text, re.IGNORECASE
        ):
            score += 20
        if re.search(r"how\s+much|cost|price|fee", query, re.IGNORECASE) and re.search(
            r"\$\s*\d+|\b\d+\s*(?:dollars?|%|percent)", text, re.IGNORECASE
        ):
            score += 20
        if re.search(r"what\s+(?:is|are)", query, re.IGNORECASE) and re.search(
            r"^[A-Z][^.]+\s+(?:is|are)\s+", text, re.MULTILINE
        ):
            score += 20

        return min(100, score)

    def structural_clarity(self, text: str, query: str, heading_path: Sequence[str] = ()) -> float:
        """Relevant heading, list or steps, definition, explicit answer: 25 points each."""
        score = 0
        heading_text = " ".join(heading_path).lower()
        if heading_text and any(t in heading_text for t in content_terms(query)):
            score += 25
        if any(p.search(text) for p in self.LIST_PATTERNS):
            score += 25
        if any(p.search(text) for p in self.STRUCTURED_DEFINITION_PATTERNS):
            score += 25
        if any(p.search(text) for p in self.STRUCTURED_ANSWER_PATTERNS):
            score += 25
        return score

    def query_restatement(self, text: str, query: str) -> float:
        """100 for a verbatim restatement, otherwise the share of query terms echoed."""
        phrase = _clean(query)
        text_clean = _clean(text)
        if phrase and phrase in text_clean:
            return 100.0

        terms = content_terms(query)
        if not terms:
            return 0.0
        text_words = set(text_clean.split())
        return sum(1 for t in terms if t in text_words) / len(terms) * 100

    # ------------------------------------------------------------ citation

    @staticmethod
    def _sentences(text: str, min_length: int) -> List[str]:
        return [s.strip() for s in _SENTENCE_SPLIT.split(text) if len(s.strip()) > min_length]

    @staticmethod
    def _count_phrases(text_lower: str, phrases: Iterable[str]) -> int:
        return sum(
            len(re.findall(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", text_lower)) for phrase in phrases
        )

    def quotability(self, text: str) -> float:
        sentences = self._sentences(text, 10)
        if sentences:
            standalone = sum(
                1 for s in sentences if not self.CONTEXT_DEPENDENT_STARTERS.match(s)
            ) / len(sentences) * 100
            factual = sum(
                1 for s in sentences
                if any(f" {word} " in f" {s.lower()} " for word in self.FACTUAL_INDICATORS)
            ) / len(sentences) * 100
        else:
            standalone = factual = 50.0

        hedges = self._count_phrases(text.lower(), self.HEDGE_WORDS)
        no_hedging = max(100 - hedges * 15, 0)
        return standalone * 0.50 + factual * 0.30 + no_hedging * 0.20

    def specificity(self, text: str) -> float:
        numbers = 100 if re.search(r"\d", text) else 50
        text_lower = text.lower()
        examples = 100 if any(ind in text_lower for ind in self.EXAMPLE_INDICATORS) else 40

        words = text.split()
        precise = min(sum(1 for w in words if len(w) > 8) / len(words) * 500, 100) if words else 0
        return numbers * 0.40 + examples * 0.35 + precise * 0.25

    def authority_signals(self, text: str) -> float:
        text_lower = text.lower()
        citations = 100 if any(ind in text_lower for ind in self.CITATION_INDICATORS) else 30
        technical_accuracy = 75
        uncertainty = self._count_phrases(text_lower, self.UNCERTAINTY_PHRASES)
        confident = max(100 - uncertainty * 20, 0)
        return citations * 0.40 + technical_accuracy * 0.35 + confident * 0.25

    def sentence_structure(self, text: str) -> float:
        sentences = self._sentences(text, 5)
        if not sentences:
            return 50.0

        def bucket(words: int) -> int:
            if 15 <= words <= 25:
                return 100
            if 10 <= words <= 14 or 26 <= words <= 30:
                return 75
            if 8 <= words <= 9 or 31 <= words <= 40:
                return 50
            return 25

        return sum(bucket(len(s.split())) for s in sentences) / len(sentences)

