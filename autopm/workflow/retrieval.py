# autopm/workflow/retrieval.py
"""
Lexical chunk scoring used to pick generation context out of a long document.

`select_top_k` is a pure, total function. Whether to bypass scoring for a small
corpus is decided by the caller (see `use_full_context`), never in here.
"""
from __future__ import annotations

import string
from dataclasses import dataclass
from typing import List, Mapping, Sequence

from langchain_text_splitters import RecursiveCharacterTextSplitter

STOP_WORDS = frozenset({"what", "when", "where", "which", "does", "have", "that", "this", "with", "from"})
MIN_TOKEN_LEN = 4

# Domain terms that mark OKR-like content; applied to every chunk the same way.
DEFAULT_BOOSTS: Mapping[str, int] = {
    "objective": 2,
    "key result": 2,
    "target": 1,
    "metric": 1,
}

_SEPARATORS = ("\n\n", "\n", " ", "")


@dataclass(frozen=True)
class ScoredChunk:
    text: str
    index: int
    score: int


def tokenize(query: str) -> List[str]:
    tokens = []
    for raw in query.lower().split():
        tok = raw.strip(string.punctuation)
        if len(tok) < MIN_TOKEN_LEN or tok in STOP_WORDS:
            continue
        tokens.append(tok)
    return tokens


def score_chunk(chunk: str, tokens: Sequence[str], boosts: Mapping[str, int] = DEFAULT_BOOSTS) -> int:
    lower = chunk.lower()
    score = sum(lower.count(tok) for tok in tokens)
    for term, bonus in boosts.items():
        if term in lower:
            score += bonus
    return score


def select_top_k(
    chunks: Sequence[str],
    query: str,
    k: int,
    boosts: Mapping[str, int] = DEFAULT_BOOSTS,
) -> List[ScoredChunk]:
    if not chunks or k <= 0:
        return []
    tokens = tokenize(query)
    scored = [ScoredChunk(text=c, index=i, score=score_chunk(c, tokens, boosts)) for i, c in enumerate(chunks)]
    # sorted() is stable, so equal scores keep their original order
    scored = sorted(scored, key=lambda sc: sc.score, reverse=True)
    return scored[:k]


def use_full_context(chunks: Sequence[str], threshold: int) -> bool:
    """Caller policy: small corpora go to the model whole instead of top-K."""
    return len(chunks) <= threshold


def split_into_chunks(text: str, size: int = 1500, overlap: int = 300) -> List[str]:
    """Overlapping chunks that prefer to cut at paragraph, line, then word boundaries."""
    if size <= 0:
        raise ValueError("size must be positive")
    text = text.strip()
    if not text:
        return []
    splitter = RecursiveCharacterTextSplitter(
        chunk_size=size,
        chunk_overlap=max(0, min(overlap, size // 2)),
        separators=list(_SEPARATORS),
    )
    return [c for c in splitter.split_text(text) if c.strip()]


def reorder_by_source(selected: Sequence[ScoredChunk]) -> List[ScoredChunk]:
    return sorted(selected, key=lambda sc: sc.index)


def chunk_texts(selected: Sequence[ScoredChunk]) -> List[str]:
    return [sc.text for sc in selected]
