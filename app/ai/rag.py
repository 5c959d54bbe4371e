"""
RAG Pipeline — retrieval over the platform knowledge file (docs/info.txt).

Line-based chunking + vector search with MMR re-ranking.

Features:
    - Chunks of ~700 tokens (4 chars ≈ 1 token) on line boundaries, with overlap
    - Embeddings via the LLM Gateway; hashed term-count vectors when no
      embedding provider is available
    - Cosine similarity + MMR diversity penalty
    - Index rebuilt when the knowledge file changes

Usage:
    from app.ai.rag import InfoIndex
    index = InfoIndex("docs/info.txt", gateway)
    hits = index.retrieve("提出方法を教えて", k=5)
"""

import hashlib
import logging
import math
import os
import re

logger = logging.getLogger(__name__)

# ── Chunking Constants ────────────────────────────────────────────────────────

CHARS_PER_TOKEN = 4
MAX_CHUNK_TOKENS = 700
OVERLAP_TOKENS = 100
TERM_VECTOR_DIM = 256
MMR_PENALTY = 0.3
SNIPPET_TOKENS = 400

_TERM_RE = re.compile(r"[a-z0-9\u3040-\u30ff\u3400-\u9fff]+")


def split_into_chunks(text: str, max_tokens: int = MAX_CHUNK_TOKENS,
                      overlap: int = OVERLAP_TOKENS) -> list[dict]:
    """Split text on line boundaries into overlapping chunks.

    Returns:
        [{text, start_line, end_line}] with 1-based inclusive line numbers.
    """
    max_chars = max_tokens * CHARS_PER_TOKEN
    overlap_chars = overlap * CHARS_PER_TOKEN
    lines = text.splitlines()

    chunks = []
    buf: list[str] = []
    start_line = 1
    size = 0

    def flush(end_line: int):
        nonlocal buf, start_line, size
        if not buf:
            return
        joined = "\n".join(buf)
        chunks.append({"text": joined, "start_line": start_line, "end_line": end_line})
        keep = joined[-overlap_chars:].split("\n") if overlap_chars else []
        buf = keep
        start_line = end_line - len(keep) + 1
        size = len("\n".join(buf))

    for i, line in enumerate(lines):
        if buf and size + len(line) + 1 > max_chars:
            flush(i)
        buf.append(line)
        size += len(line) + 1
    flush(len(lines))
    return [c for c in chunks if c["text"].strip()]


def term_vector(text: str, dim: int = TERM_VECTOR_DIM) -> list[float]:
    """Hashed bag-of-terms vector (latin, kana and CJK runs)."""
    vec = [0.0] * dim
    for term in _TERM_RE.findall(text.lower()):
        bucket = int.from_bytes(hashlib.md5(term.encode("utf-8")).digest()[:4], "big") % dim
        vec[bucket] += 1.0
    return vec


def cosine(a: list[float], b: list[float]) -> float:
    n = min(len(a), len(b))
    dot = sum(a[i] * b[i] for i in range(n))
    na = math.sqrt(sum(x * x for x in a[:n]))
    nb = math.sqrt(sum(x * x for x in b[:n]))
    return dot / (na * nb + 1e-8)


def truncate_tokens(text: str, max_tokens: int = SNIPPET_TOKENS) -> str:
    limit = max_tokens * CHARS_PER_TOKEN
    return text if len(text) <= limit else text[:limit]


class InfoIndex:
    """In-memory vector index over one knowledge file."""

    def __init__(self, path: str, gateway=None):
        self.path = path
        self.gateway = gateway
        self.chunks: list[dict] = []
        self.mode = "empty"
        self._mtime: float | None = None

    def _embed(self, texts: list[str]) -> tuple[list[list[float]], str]:
        if self.gateway is not None and texts:
            vectors = self.gateway.embed(texts)
            if vectors is not None:
                return vectors, "embedding"
        return [term_vector(t) for t in texts], "terms"

    def build(self) -> int:
        """(Re)index the file. A missing file yields an empty index."""
        try:
            with open(self.path, encoding="utf-8") as fh:
                raw = fh.read()
            self._mtime = os.path.getmtime(self.path)
        except OSError:
            logger.warning("Knowledge file not found: %s", self.path)
            self.chunks, self.mode, self._mtime = [], "empty", None
            return 0

        pieces = split_into_chunks(raw)
        vectors, self.mode = self._embed([p["text"] for p in pieces])
        self.chunks = [
            {"id": f"info_{i}", **piece, "embedding": vectors[i]}
            for i, piece in enumerate(pieces)
        ]
        logger.info("Knowledge index built: %d chunks (%s)", len(self.chunks), self.mode)
        return len(self.chunks)

    def _stale(self) -> bool:
        try:
            return os.path.getmtime(self.path) != self._mtime
        except OSError:
            return self._mtime is not None

    def retrieve(self, query: str, k: int = 5) -> list[dict]:
        """Top-k chunks by cosine similarity, re-ranked with an MMR penalty."""
        if not self.chunks or self._stale():
            self.build()
        if not self.chunks or not query.strip():
            return []

        if self.mode == "embedding":
            vectors, _ = self._embed([query])
            if len(vectors[0]) != len(self.chunks[0]["embedding"]):
                vectors = [term_vector(query)]
        else:
            vectors = [term_vector(query)]
        q = vectors[0]

        scored = sorted(
            ((cosine(q, ch["embedding"]), ch) for ch in self.chunks),
            key=lambda pair: pair[0],
            reverse=True,
        )
        picked: list[tuple[float, dict]] = []
        for score, ch in scored:
            if len(picked) >= k:
                break
            diversity = max((cosine(p["embedding"], ch["embedding"]) for _, p in picked), default=0.0)
            picked.append((score - MMR_PENALTY * diversity, ch))
        picked.sort(key=lambda pair: pair[0], reverse=True)

        return [
            {
                "text": truncate_tokens(ch["text"]),
                "score": round(score, 4),
                "meta": {"source": "docs/info.txt", "startLine": ch["start_line"], "endLine": ch["end_line"]},
            }
            for score, ch in picked
        ]
