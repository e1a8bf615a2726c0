"""
Digests de conteúdo (plugáveis) do prov_capture.

Rules:
- O conjunto de algoritmos é fixo e registrado explicitamente na importação.
- Mesmo conteúdo + mesmo algoritmo => mesmo digest (determinístico), o que
  permite detectar arquivos inalterados entre execuções.
- Nenhum default implícito dentro deste módulo: o chamador escolhe o algoritmo
  (o default de sessão, "md5", vive em `core.config.settings`).

Algoritmos registrados:
- "md5", "sha1", "sha256", "sha512", "blake2b": hashlib
- "crc32": zlib (hex de 8 caracteres)
"""

from __future__ import annotations

import hashlib
import zlib
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, FrozenSet, Union

from prov_capture.core.exceptions import ConfigurationError


_CHUNK_SIZE = 8192


class DigestAlgorithm(ABC):
    """Abstract base class para algoritmos de digest."""

    name: str

    @abstractmethod
    def new(self) -> Any:
        """Retorna um hasher incremental com `update(bytes)` e `hexdigest()`."""
        raise NotImplementedError


class HashlibAlgorithm(DigestAlgorithm):
    def __init__(self, name: str):
        self.name = name

    def new(self) -> Any:
        return hashlib.new(self.name)


class _Crc32Hasher:
    def __init__(self) -> None:
        self._value = 0

    def update(self, data: bytes) -> None:
        self._value = zlib.crc32(data, self._value)

    def hexdigest(self) -> str:
        return format(self._value & 0xFFFFFFFF, "08x")


class Crc32Algorithm(DigestAlgorithm):
    name = "crc32"

    def new(self) -> Any:
        return _Crc32Hasher()


# -----------------------------------------------------------------------------
# Registry (explícito)
# -----------------------------------------------------------------------------

ALGORITHM_REGISTRY: Dict[str, DigestAlgorithm] = {}


def register_algorithm(algorithm: DigestAlgorithm) -> None:
    if not algorithm or not getattr(algorithm, "name", None):
        raise ValueError("Invalid DigestAlgorithm: missing name")
    ALGORITHM_REGISTRY[algorithm.name] = algorithm


def get_algorithm(name: str) -> DigestAlgorithm:
    try:
        return ALGORITHM_REGISTRY[name]
    except KeyError:
        raise ConfigurationError(
            message=f"Algoritmo de hash não registrado: {name}",
            details={"hash_algorithm": name, "available": sorted(ALGORITHM_REGISTRY)},
        )


def available_algorithms() -> FrozenSet[str]:
    return frozenset(ALGORITHM_REGISTRY)


def digest_bytes(data: bytes, algorithm: str) -> str:
    h = get_algorithm(algorithm).new()
    h.update(data)
    return h.hexdigest()


def digest_text(text: str, algorithm: str) -> str:
    return digest_bytes(text.encode("utf-8"), algorithm)


def digest_file(path: Union[str, Path], algorithm: str) -> str:
    """Digest do conteúdo atual do arquivo, lido em blocos."""
    h = get_algorithm(algorithm).new()
    with Path(path).open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


for _name in ("md5", "sha1", "sha256", "sha512", "blake2b"):
    register_algorithm(HashlibAlgorithm(_name))
register_algorithm(Crc32Algorithm())
