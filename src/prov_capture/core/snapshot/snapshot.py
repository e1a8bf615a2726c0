"""Snapshot de valores (v1).

No prov_capture, cada versão de variável registrada como nó Data pode ser
acompanhada de um snapshot do valor, gravado em `data/` do diretório da sessão.

Política (SnapshotPolicy):
- none: apenas referência simbólica (sem artefato, sem digest)
- full: valor completo serializado
- truncate: prefixo do valor que nunca excede o orçamento em bytes, cortado em
  fronteira estrutural (linhas inteiras de tabelas, elementos inteiros de
  listas/dicts, caracteres inteiros de texto, linhas inteiras de repr ou,
  quando o repr tem uma linha só, itens inteiros separados por ", ")

Formatos:
- pandas DataFrame/Series e numpy arrays (até 2-D): CSV via pandas
- containers compatíveis com JSON: JSON
- texto: .txt
- demais objetos: joblib (full) ou repr em texto (truncate / não serializável)

Limites explícitos:
- Não decide quais variáveis são capturadas (responsabilidade do Builder)
- Não suspende o tracing de I/O (o chamador grava com tracing suspenso)
"""

from __future__ import annotations

import inspect
import json
import re
import types
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import joblib
import numpy as np
import pandas as pd

from prov_capture.core.exceptions import CaptureError

from .digest import digest_bytes, digest_file, digest_text


_INLINE_TEXT_LIMIT = 80
_SAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]")


class SnapshotMode(str, Enum):
    NONE = "none"
    TRUNCATE = "truncate"
    FULL = "full"


@dataclass(frozen=True)
class SnapshotPolicy:
    """Modo de snapshot + orçamento em bytes (apenas para truncate)."""

    mode: SnapshotMode = SnapshotMode.NONE
    budget_bytes: Optional[int] = None

    @classmethod
    def from_size(cls, snapshot_size: int) -> "SnapshotPolicy":
        """0 → none, -1 → full, N > 0 → truncate em N kilobytes."""
        if snapshot_size == 0:
            return cls(mode=SnapshotMode.NONE)
        if snapshot_size == -1:
            return cls(mode=SnapshotMode.FULL)
        if snapshot_size > 0:
            return cls(mode=SnapshotMode.TRUNCATE, budget_bytes=snapshot_size * 1024)
        raise ValueError(f"snapshot_size inválido: {snapshot_size}")


@dataclass(frozen=True)
class SnapshotResult:
    """Resultado da captura de um valor (zero ou um artefato + digest)."""

    value: str
    value_type: str
    digest: Optional[str] = None
    artifact: Optional[str] = None
    truncated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "value_type": self.value_type,
            "digest": self.digest,
            "artifact": self.artifact,
            "truncated": self.truncated,
        }


# -----------------------------------------------------------------------------
# Classificação de valores
# -----------------------------------------------------------------------------

def type_name(value: Any) -> str:
    t = type(value)
    module = t.__module__
    if module in ("builtins", None):
        return t.__qualname__
    return f"{module.split('.')[0]}.{t.__qualname__}"


def symbolic_text(value: Any) -> Optional[str]:
    """Texto simbólico estável para valores "escalares"; None para valores compostos."""
    if value is None or isinstance(value, (bool, int, float, complex)):
        return repr(value)
    if isinstance(value, np.generic):
        return repr(value.item())
    if isinstance(value, str) and len(value) <= _INLINE_TEXT_LIMIT:
        return repr(value)
    if isinstance(value, bytes) and len(value) <= _INLINE_TEXT_LIMIT:
        return repr(value)
    if isinstance(value, types.ModuleType):
        return f"<module {value.__name__}>"
    if inspect.isclass(value):
        return f"<class {value.__qualname__}>"
    if inspect.isroutine(value):
        return f"<function {getattr(value, '__qualname__', getattr(value, '__name__', '?'))}>"
    return None


def describe(value: Any) -> str:
    """Etiqueta curta para valores compostos (modo none)."""
    if isinstance(value, pd.DataFrame):
        return f"<DataFrame {value.shape[0]}x{value.shape[1]}>"
    if isinstance(value, pd.Series):
        return f"<Series len={len(value)}>"
    if isinstance(value, np.ndarray):
        return f"<ndarray shape={value.shape}>"
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return f"<{type(value).__name__} len={len(value)}>"
    return f"<{type_name(value)}>"


# -----------------------------------------------------------------------------
# Serialização (bytes) com corte estrutural
# -----------------------------------------------------------------------------

def _largest_prefix(count: int, render: Callable[[int], bytes], budget: int) -> Tuple[bytes, int]:
    """Maior k em [0, count] tal que len(render(k)) <= budget (render monotônico)."""
    lo, hi = 0, count
    best = render(0)
    if len(best) > budget:
        return b"", 0
    while lo < hi:
        mid = (lo + hi + 1) // 2
        data = render(mid)
        if len(data) <= budget:
            lo, best = mid, data
        else:
            hi = mid - 1
    return best, lo


def _as_frame(value: Any) -> Optional[pd.DataFrame]:
    if isinstance(value, pd.DataFrame):
        return value
    if isinstance(value, pd.Series):
        return value.to_frame()
    if isinstance(value, np.ndarray) and value.ndim in (1, 2):
        return pd.DataFrame(value)
    return None


def _frame_bytes(frame: pd.DataFrame) -> bytes:
    return frame.to_csv(index=True).encode("utf-8")


def _json_compatible(value: Any) -> bool:
    if not isinstance(value, (list, tuple, dict)):
        return False
    try:
        json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return False
    return True


def _json_bytes(value: Any) -> bytes:
    return json.dumps(value, ensure_ascii=False).encode("utf-8")


def _text_prefix(text: str, budget: int) -> bytes:
    raw = text.encode("utf-8")
    if len(raw) <= budget:
        return raw
    # corta em fronteira de caractere
    return raw[:budget].decode("utf-8", errors="ignore").encode("utf-8")


def _lines_prefix(text: str, budget: int) -> bytes:
    out = []
    used = 0
    for line in text.splitlines(keepends=True):
        size = len(line.encode("utf-8"))
        if used + size > budget:
            break
        out.append(line)
        used += size
    if out:
        return "".join(out).encode("utf-8")
    # linha única maior que o orçamento: corta no último separador de itens
    head = _text_prefix(text, budget).decode("utf-8")
    cut = text.rfind(", ", 0, len(head) + 2)
    if cut > 0:
        return text[:cut].encode("utf-8")
    # sem separador que caiba: fronteira de caractere como último recurso
    return head.encode("utf-8")


class SnapshotManager:
    """Captura valores segundo a SnapshotPolicy ativa e calcula digests."""

    def __init__(self, *, data_dir: Path, policy: SnapshotPolicy, hash_algorithm: str):
        self.data_dir = Path(data_dir)
        self.policy = policy
        self.hash_algorithm = hash_algorithm

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------
    def artifact_path(self, node_id: int, name: str, ext: str) -> Path:
        safe = _SAFE_NAME.sub("_", name) or "value"
        return self.data_dir / f"{node_id}-{safe}.{ext}"

    def artifact_rel_path(self, path: Path) -> str:
        return f"{self.data_dir.name}/{path.name}"

    # ------------------------------------------------------------------
    # Captura
    # ------------------------------------------------------------------
    def capture(self, *, node_id: int, name: str, value: Any) -> SnapshotResult:
        """Captura um binding; levanta CaptureError em falha de serialização/digest."""
        vtype = type_name(value)
        inline = symbolic_text(value)

        if self.policy.mode == SnapshotMode.NONE:
            return SnapshotResult(value=inline if inline is not None else describe(value), value_type=vtype)

        try:
            if inline is not None:
                return SnapshotResult(
                    value=inline,
                    value_type=vtype,
                    digest=digest_text(inline, self.hash_algorithm),
                )
            return self._capture_artifact(node_id=node_id, name=name, value=value, vtype=vtype)
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(
                message="Falha ao capturar snapshot",
                details={"name": name, "node_id": node_id, "exc_type": e.__class__.__name__, "exc_message": str(e)},
            ) from e

    def _capture_artifact(self, *, node_id: int, name: str, value: Any, vtype: str) -> SnapshotResult:
        truncate = self.policy.mode == SnapshotMode.TRUNCATE
        budget = self.policy.budget_bytes or 0
        truncated = False

        frame = _as_frame(value)
        if frame is not None:
            ext = "csv"
            if truncate:
                data, rows = _largest_prefix(len(frame), lambda k: _frame_bytes(frame.head(k)), budget)
                truncated = rows < len(frame)
            else:
                data = _frame_bytes(frame)

        elif _json_compatible(value):
            ext = "json"
            if isinstance(value, dict):
                items: Sequence[Any] = list(value.items())
                render = lambda k: _json_bytes(dict(items[:k]))  # noqa: E731
            else:
                items = list(value)
                render = lambda k: _json_bytes(items[:k])  # noqa: E731
            if truncate:
                data, kept = _largest_prefix(len(items), render, budget)
                truncated = kept < len(items)
            else:
                data = render(len(items))

        elif isinstance(value, str):
            ext = "txt"
            data = _text_prefix(value, budget) if truncate else value.encode("utf-8")
            truncated = truncate and len(data) < len(value.encode("utf-8"))

        elif isinstance(value, (bytes, bytearray)):
            ext = "bin"
            data = bytes(value[:budget]) if truncate else bytes(value)
            truncated = truncate and len(data) < len(value)

        elif not truncate:
            path = self.artifact_path(node_id, name, "joblib")
            path.parent.mkdir(parents=True, exist_ok=True)
            try:
                joblib.dump(value, path)
            except Exception:
                # objeto não serializável: cai para repr
                if path.exists():
                    path.unlink()
                return self._write(node_id, name, "txt", repr(value).encode("utf-8"), describe(value), vtype, False)
            return SnapshotResult(
                value=describe(value),
                value_type=vtype,
                digest=digest_file(path, self.hash_algorithm),
                artifact=self.artifact_rel_path(path),
            )

        else:
            ext = "txt"
            text = repr(value)
            data = _lines_prefix(text, budget)
            truncated = len(data) < len(text.encode("utf-8"))

        return self._write(node_id, name, ext, data, describe(value), vtype, truncated)

    def _write(
        self,
        node_id: int,
        name: str,
        ext: str,
        data: bytes,
        label: str,
        vtype: str,
        truncated: bool,
    ) -> SnapshotResult:
        path = self.artifact_path(node_id, name, ext)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return SnapshotResult(
            value=label,
            value_type=vtype,
            digest=digest_bytes(data, self.hash_algorithm),
            artifact=self.artifact_rel_path(path),
            truncated=truncated,
        )
