# Similarity-based result cache
# services/semantic_cache.py
"""
In-process semantic cache matching near-duplicate questions.
Questions are embedded as hashed unigram/bigram count vectors and compared
with cosine similarity, so rephrasings that share most terms hit the same answer.
"""

import asyncio
import re
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional
import numpy as np
import structlog
from models.responses import QueryResponse
from services.interfaces import SemanticCache
from utils.config import settings
from utils.sql import normalize_question


logger = structlog.get_logger()

TOKEN_PATTERN = re.compile(r"[a-z0-9_]+")


def embed_question(question: str, dimensions: int = 1024, bigram_weight: float = 0.5) -> np.ndarray:
    """L2-normalized hashed bag of words; empty questions map to the zero vector"""

    vector = np.zeros(dimensions, dtype=np.float64)
    tokens = TOKEN_PATTERN.findall(normalize_question(question))

    for token in tokens:
        vector[zlib.crc32(token.encode("utf-8")) % dimensions] += 1.0
    for first, second in zip(tokens, tokens[1:]):
        vector[zlib.crc32(f"{first}_{second}".encode("utf-8")) % dimensions] += bigram_weight

    norm = np.linalg.norm(vector)
    return vector / norm if norm else vector


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    # Inputs are already normalized
    return float(np.clip(np.dot(a, b), 0.0, 1.0))


@dataclass
class SemanticEntry:
    question: str
    sql: str
    vector: np.ndarray
    response_json: str
    expires_at: datetime


@dataclass
class SemanticMatch:
    question: str
    similarity: float
    response: QueryResponse


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SemanticCacheService(SemanticCache):

    def __init__(self, max_entries: Optional[int] = None, clock: Callable[[], datetime] = _utcnow):
        self.max_entries = max_entries or settings.semantic_cache_max_entries
        self._clock = clock
        self._entries: List[SemanticEntry] = []
        self._lock = asyncio.Lock()
        self.logger = logger.bind(service="SemanticCacheService")

    async def find_matches(self, question: str, similarity_threshold: float,
                           max_results: int) -> List[SemanticMatch]:
        """Non-expired entries at or above the threshold, best first"""

        probe = embed_question(question)
        now = self._clock()

        async with self._lock:
            self._entries = [e for e in self._entries if e.expires_at > now]
            scored = [(cosine_similarity(probe, e.vector), e) for e in self._entries]

        scored = [(s, e) for s, e in scored if s >= similarity_threshold]
        scored.sort(key=lambda item: item[0], reverse=True)

        return [
            SemanticMatch(
                question=entry.question,
                similarity=similarity,
                response=QueryResponse.model_validate_json(entry.response_json)
            )
            for similarity, entry in scored[:max_results]
        ]

    async def get_semantic_cache_result(self, question: str, similarity_threshold: float,
                                        max_results: int) -> Optional[QueryResponse]:
        matches = await self.find_matches(question, similarity_threshold, max_results)
        if not matches:
            return None

        best = matches[0]
        self.logger.info("Semantic cache hit",
                       similarity=round(best.similarity, 4),
                       matched_question=best.question[:100],
                       candidates=len(matches))
        return best.response

    async def store_semantic_cache_result(self, question: str, sql: str,
                                          response: QueryResponse, ttl: timedelta):
        entry = SemanticEntry(
            question=normalize_question(question),
            sql=sql,
            vector=embed_question(question),
            response_json=response.model_dump_json(),
            expires_at=self._clock() + ttl
        )

        async with self._lock:
            # Same normalized question replaces the older answer
            self._entries = [e for e in self._entries if e.question != entry.question]
            self._entries.append(entry)
            if len(self._entries) > self.max_entries:
                self._entries = self._entries[-self.max_entries:]

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)
