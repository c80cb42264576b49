"""
Sequential Thinking Search Engine

Two ways to find a sequence:

* fuzzy matching over titles and descriptions, tolerant of case, accents and
  Cyrillic spelling;
* full-text search over thought content through the ``thoughts_fts`` index.
"""
import logging
import unicodedata
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.models import Thought as ThoughtRow
from app.thinking import storage
from app.thinking.core_types import SequenceRecord

logger = logging.getLogger(__name__)

EXACT_SCORE = 100
SUBSTRING_SCORE = 80
WORD_PREFIX_SCORE = 60
SUBSEQUENCE_WEIGHT = 40
MIN_SCORE = 20

CYRILLIC_TO_LATIN = {
    "а": "a", "б": "b", "в": "v", "г": "g", "д": "d", "е": "e", "ё": "yo",
    "ж": "zh", "з": "z", "и": "i", "й": "y", "к": "k", "л": "l", "м": "m",
    "н": "n", "о": "o", "п": "p", "р": "r", "с": "s", "т": "t", "у": "u",
    "ф": "f", "х": "h", "ц": "ts", "ч": "ch", "ш": "sh", "щ": "sch", "ъ": "",
    "ы": "y", "ь": "", "э": "e", "ю": "yu", "я": "ya",
}

_TRANSLITERATION = str.maketrans(CYRILLIC_TO_LATIN)


def normalize_text(value: str) -> str:
    """Lower-case, transliterate Cyrillic, and drop combining accents."""
    value = value.lower().translate(_TRANSLITERATION)
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def longest_common_subsequence(a: str, b: str) -> int:
    previous = [0] * (len(b) + 1)
    for ch_a in a:
        current = [0] * (len(b) + 1)
        for j, ch_b in enumerate(b, start=1):
            if ch_a == ch_b:
                current[j] = previous[j - 1] + 1
            else:
                current[j] = max(previous[j], current[j - 1])
        previous = current
    return previous[-1]


def fuzzy_score(query: str, target: str) -> int:
    """
    Similarity of ``target`` to ``query`` on a 0-100 scale.

    Exact match 100, substring 80, a word of the target starting with the
    query 60, otherwise up to 40 from the longest common subsequence.
    """
    q = normalize_text(query)
    t = normalize_text(target)

    if t == q:
        return EXACT_SCORE
    if q in t:
        return SUBSTRING_SCORE
    # Unreachable after the substring check; kept so the tiers stay complete
    for word in t.split():
        if word.startswith(q):
            return WORD_PREFIX_SCORE

    total_length = len(q) + len(t)
    if total_length == 0:
        return 0
    similarity = 2 * longest_common_subsequence(q, t) / total_length
    # round half up
    return int(similarity * SUBSEQUENCE_WEIGHT + 0.5)


def sequence_score(query: str, sequence: SequenceRecord) -> int:
    title_score = fuzzy_score(query, sequence.title)
    description_score = fuzzy_score(query, sequence.description) if sequence.description else 0
    return max(title_score, description_score)


def fts_query(query: str) -> str:
    """Quote every whitespace-separated term; FTS5 then requires all of them."""
    terms = []
    for term in query.split():
        terms.append('"' + term.replace('"', '""') + '"')
    return " ".join(terms)


def list_sequences(db: Session, limit: int) -> List[SequenceRecord]:
    return storage.list_sequences(db, limit)


def search(db: Session, query: Optional[str], limit: int, content_search: bool = False) -> List[SequenceRecord]:
    """
    Find sequences for ``query``. A missing or blank query lists the most
    recently modified sequences.
    """
    if query is None or not query.strip():
        return list_sequences(db, limit)
    if content_search:
        return search_content(db, query, limit)
    return search_fuzzy(db, query, limit)


def search_fuzzy(db: Session, query: str, limit: int) -> List[SequenceRecord]:
    scored = []
    for sequence in storage.all_sequences(db):
        score = sequence_score(query, sequence)
        if score > MIN_SCORE:
            scored.append((score, sequence))

    scored.sort(key=lambda item: (item[0], item[1].last_modified), reverse=True)
    return [sequence for _, sequence in scored[:limit]]


def search_content(db: Session, query: str, limit: int) -> List[SequenceRecord]:
    """Sequences holding at least one thought that contains every query term."""
    if db.get_bind().dialect.name == "sqlite":
        rows = db.execute(
            text(
                "SELECT t.sequence_id FROM thoughts_fts "
                "JOIN thoughts t ON t.rowid = thoughts_fts.rowid "
                "WHERE thoughts_fts MATCH :query "
                "GROUP BY t.sequence_id"
            ),
            {"query": fts_query(query)},
        ).all()
        sequence_ids = [row[0] for row in rows]
    else:
        # No FTS5 index outside SQLite: fall back to a scan
        filters = [ThoughtRow.thought.ilike(f"%{term}%") for term in query.split()]
        sequence_ids = [
            row[0]
            for row in db.query(ThoughtRow.sequence_id).filter(*filters).distinct().all()
        ]

    logger.debug(
        "Content search",
        extra={"query": query, "matches": len(sequence_ids)},
    )
    return storage.sequences_by_id(db, sequence_ids, limit)
