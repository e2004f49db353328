"""Text helpers shared by scoring, filtering and caching."""

import hashlib
import json
import re

_WORD_RE = re.compile(r"\w+", re.UNICODE)

EXCERPT_SEPARATOR = "\n\n---\n\n"

STOPWORDS = frozenset(
    {
        # German
        "aber", "alle", "auch", "auf", "aus", "bei", "dass", "dem", "den", "der",
        "des", "die", "dies", "diese", "dieser", "durch", "eine", "einem", "einen",
        "einer", "eines", "für", "hat", "haben", "ist", "mit", "nach", "nicht",
        "noch", "oder", "sich", "sind", "über", "und", "unter", "vom", "von",
        "werden", "wird", "wie", "wir", "zum", "zur",
        # English
        "about", "also", "been", "from", "have", "into", "more", "other", "such",
        "than", "that", "their", "there", "these", "they", "this", "those",
        "what", "when", "where", "which", "will", "with", "would", "your",
    }
)


def tokenize(text: str) -> list[str]:
    """Lowercase word tokens in order of appearance."""
    if not text:
        return []
    return _WORD_RE.findall(text.lower())


def query_terms(query: str, min_length: int = 3) -> list[str]:
    """Distinct query tokens usable for lexical matching."""
    seen: set[str] = set()
    terms = []
    for token in tokenize(query):
        if len(token) < min_length or token in seen:
            continue
        seen.add(token)
        terms.append(token)
    return terms


def key_terms(text: str, limit: int = 10, min_length: int = 4) -> list[str]:
    """Content words of a text, first `limit` by first occurrence."""
    seen: set[str] = set()
    terms = []
    for token in tokenize(text):
        if len(token) < min_length or token in STOPWORDS or token in seen:
            continue
        seen.add(token)
        terms.append(token)
        if len(terms) >= limit:
            break
    return terms


def count_occurrences(term: str, text_lower: str) -> int:
    """Non-overlapping substring matches of term in an already-lowercased text."""
    if not term:
        return 0
    return text_lower.count(term)


def extract_excerpt(text: str, max_length: int = 300) -> str:
    """Trim text to max_length, preferring a sentence boundary."""
    if not text or len(text) <= max_length:
        return text or ""

    truncated = text[:max_length]
    last_punctuation = max(
        truncated.rfind("."), truncated.rfind("?"), truncated.rfind("!")
    )

    if last_punctuation > max_length * 0.7:
        return truncated[: last_punctuation + 1]

    return truncated + "..."


def extract_around_query(text: str, query: str, max_length: int = 500) -> str:
    """Cut a window of text around the first occurrence of the query."""
    if not text:
        return ""

    index = text.lower().find(query.lower().strip()) if query.strip() else -1
    if index == -1:
        # Fall back to the first matching query term
        lowered = text.lower()
        for term in query_terms(query):
            index = lowered.find(term)
            if index != -1:
                break

    if index == -1:
        return text[:max_length] + "..." if len(text) > max_length else text

    start = max(0, index - max_length // 3)
    end = min(len(text), start + max_length)

    excerpt = text[start:end]
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(text):
        excerpt = excerpt + "..."
    return excerpt


def stable_hash(*parts: object) -> str:
    """Deterministic SHA-256 over JSON-serializable parts."""
    payload = json.dumps(parts, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
