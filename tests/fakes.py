"""Deterministic test doubles: embedding providers and a virtual clock."""

import asyncio
import zlib

from hybrid_rag.providers.base import EmbeddingProvider


class FakeEmbeddingProvider(EmbeddingProvider):
    """
    Bag-of-words embeddings hashed into a small vector.

    Identical texts get identical vectors. Texts listed in `vectors` get
    that exact vector instead (an empty list simulates an empty embedding).

    Args:
        dimensions: Vector size
        vectors: Fixed vectors by exact text
        fail_on_call: 1-based call number that raises RuntimeError
        drop_last: Return one vector fewer than requested
    """

    def __init__(
        self,
        dimensions: int = 8,
        vectors: dict[str, list[float]] | None = None,
        fail_on_call: int | None = None,
        drop_last: bool = False,
    ) -> None:
        self._dimensions = dimensions
        self.vectors = vectors or {}
        self.fail_on_call = fail_on_call
        self.drop_last = drop_last
        self.calls: list[list[str]] = []

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on_call == len(self.calls):
            raise RuntimeError("embedding service unavailable")
        vectors = [self.vectors[t] if t in self.vectors else self._bag(t) for t in texts]
        if self.drop_last:
            vectors = vectors[:-1]
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def _bag(self, text: str) -> list[float]:
        vec = [0.0] * self._dimensions
        for word in text.lower().split():
            vec[zlib.crc32(word.encode()) % self._dimensions] += 1.0
        return vec

    @property
    def call_sizes(self) -> list[int]:
        return [len(c) for c in self.calls]

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def model_name(self) -> str:
        return "fake-bag-of-words"


class GatedEmbeddingProvider(FakeEmbeddingProvider):
    """FakeEmbeddingProvider whose embed() blocks until release() is called."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.started = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.started.set()
        await self._gate.wait()
        return await super().embed(texts)


class FakeClock:
    """Virtual monotonic clock; sleep() advances it instead of waiting."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Yield so timeouts around a spinning caller can fire
        await asyncio.sleep(0)

