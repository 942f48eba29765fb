"""Evidence grounding and keyword-based evidence extraction.

Model-supplied evidence is only trusted once its text is found in the
transcript; sections that still lack evidence fall back to TF-IDF scoring of
transcript segments against keywords from the section prompt and content.
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter

from meeting_analysis.analysis.models import Evidence, TranscriptSegment
from meeting_analysis.analysis.schemas import EvidenceOutput

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "a", "an", "and", "are", "as", "at", "be", "by", "for", "from",
        "has", "he", "in", "is", "it", "its", "of", "on", "that", "the",
        "to", "was", "will", "with", "we", "you", "your", "this", "they",
        "but", "or", "if", "not", "what", "when", "where", "who", "why",
        "how", "can", "could", "should", "would", "do", "does", "did",
    }
)

TFIDF_WEIGHT = 0.7
KEYWORD_WEIGHT = 0.3
MIN_MATCH_CHARS = 5
WORD_OVERLAP_THRESHOLD = 0.6

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_QUOTED = re.compile(r'"([^"]+)"')


def extract_keywords(text: str) -> list[str]:
    """Lower-cased unique words longer than two characters, minus stop words.

    Order of first appearance is preserved.
    """
    words = _PUNCTUATION.sub(" ", text.lower()).split()
    seen: dict[str, None] = {}
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def extract_prompt_keywords(prompt: str) -> list[str]:
    """Quoted phrases from a section prompt followed by its keywords."""
    phrases = _QUOTED.findall(prompt)
    combined: dict[str, None] = {}
    for term in [*phrases, *extract_keywords(prompt)]:
        combined.setdefault(term, None)
    return list(combined)


def _segment_terms(segment: TranscriptSegment) -> list[str]:
    return [
        w
        for w in _PUNCTUATION.sub(" ", segment.text.lower()).split()
        if len(w) > 2 and w not in STOP_WORDS
    ]


def _inverse_document_frequency(segments: list[TranscriptSegment]) -> dict[str, float]:
    document_frequency: Counter[str] = Counter()
    for segment in segments:
        document_frequency.update(set(_segment_terms(segment)))
    total = len(segments)
    return {term: math.log(total / count) for term, count in document_frequency.items()}


def _tfidf_score(
    segment: TranscriptSegment, query: list[str], idf: dict[str, float]
) -> float:
    terms = _segment_terms(segment)
    if not terms:
        return 0.0
    counts = Counter(terms)
    return sum(counts[k] / len(terms) * idf.get(k, 0.0) for k in query)


def _keyword_score(segment: TranscriptSegment, keywords: list[str]) -> float:
    text = segment.text.lower()
    occurrences = sum(text.count(k.lower()) for k in keywords if k)
    return occurrences / max(len(segment.text.split()), 1)


def extract_evidence(
    segments: list[TranscriptSegment],
    keywords: list[str],
    top_n: int = 5,
    min_relevance: float = 0.0,
) -> list[Evidence]:
    """Return the ``top_n`` segments most relevant to ``keywords``.

    Scores combine TF-IDF (weight 0.7) and raw keyword density (weight 0.3)
    and are normalised so the best segment has relevance 1.0. Segments with
    no positive score are never returned.
    """
    if not segments or not keywords:
        return []
    query = [term for k in keywords for term in extract_keywords(k)]
    if not query:
        return []

    idf = _inverse_document_frequency(segments)
    scored = []
    for position, segment in enumerate(segments):
        score = (
            _tfidf_score(segment, query, idf) * TFIDF_WEIGHT
            + _keyword_score(segment, keywords) * KEYWORD_WEIGHT
        )
        if score > 0:
            scored.append((score, position, segment))

    scored.sort(key=lambda item: (-item[0], item[1]))
    top = scored[:top_n]
    if not top:
        return []
    best = top[0][0]
    evidence = [
        Evidence(
            text=segment.text,
            start=segment.start,
            end=segment.end,
            relevance=round(min(score / best, 1.0), 4),
        )
        for score, _, segment in top
    ]
    return [e for e in evidence if e.relevance >= min_relevance]


def _normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", _PUNCTUATION.sub("", text.lower())).strip()


def find_matching_segment(
    text: str, segments: list[TranscriptSegment]
) -> TranscriptSegment | None:
    """Find the segment a quote or paraphrase most likely came from.

    A segment containing the normalised text wins outright. Otherwise the
    segment sharing the largest fraction of the text's longer words is used,
    provided more than 60% of the words are shared.
    """
    if not text or not segments:
        return None
    needle = _normalize(text)
    if len(needle) < MIN_MATCH_CHARS:
        return None

    words = needle.split(" ")
    best: TranscriptSegment | None = None
    best_score = 0.0
    for segment in segments:
        haystack = _normalize(segment.text)
        if needle in haystack:
            return segment
        matched = sum(1 for w in words if len(w) > 3 and w in haystack)
        score = matched / len(words)
        if score > best_score and score > WORD_OVERLAP_THRESHOLD:
            best_score = score
            best = segment
    return best


def ground_evidence(
    evidence: list[EvidenceOutput], segments: list[TranscriptSegment]
) -> list[Evidence]:
    """Keep only evidence whose text is found in the transcript.

    The matched segment's time span replaces whatever span the model gave.
    """
    grounded: list[Evidence] = []
    for item in evidence:
        segment = find_matching_segment(item.text, segments)
        if segment is None:
            logger.warning("Dropping evidence not found in transcript: %.60r", item.text)
            continue
        grounded.append(
            Evidence(
                text=item.text,
                start=segment.start,
                end=segment.end,
                relevance=item.relevance,
            )
        )
    return grounded


def format_timestamp(seconds: float) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS``."""
    total = int(max(seconds, 0))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
