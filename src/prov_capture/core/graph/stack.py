# src/prov_capture/core/graph/stack.py
"""
Pilha de frames abertos (CallStack).

Um frame é aberto para cada nó que precisa ser fechado: o Procedure de um
statement em execução, um Procedure de início (loop, inclusão, chamada de
função, segmento de console) ou um Control de início.

A pilha permite que o caminho de cleanup feche, da folha para a raiz, tudo
o que ficou aberto quando uma exceção interrompe a execução.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

from prov_capture.core.exceptions import GraphConsistencyError

from .model import ControlKind, SourceSpan


class FrameKind(str, Enum):
    STATEMENT = "statement"
    START = "start"
    CONTROL = "control"


@dataclass(frozen=True)
class Frame:
    node_id: int
    kind: FrameKind
    name: str
    span: Optional[SourceSpan] = None
    scope_id: int = 1
    control: Optional[ControlKind] = None
    iteration: Optional[int] = None
    pushes_scope: bool = False


class CallStack:
    def __init__(self) -> None:
        self._frames: List[Frame] = []

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        """Itera do frame mais interno para o mais externo."""
        return reversed(self._frames)

    def is_empty(self) -> bool:
        return not self._frames

    @property
    def top(self) -> Optional[Frame]:
        return self._frames[-1] if self._frames else None

    def push(self, frame: Frame) -> Frame:
        self._frames.append(frame)
        return frame

    def pop(self, node_id: Optional[int] = None) -> Frame:
        """Remove o frame do topo; se `node_id` for informado, ele deve ser o topo."""
        if not self._frames:
            raise GraphConsistencyError(message="CallStack vazia", details={"node_id": node_id})
        if node_id is not None and self._frames[-1].node_id != node_id:
            raise GraphConsistencyError(
                message="Frame fechado fora de ordem",
                details={"expected": self._frames[-1].node_id, "got": node_id},
            )
        return self._frames.pop()

    def innermost(self, *kinds: FrameKind) -> Optional[Frame]:
        for frame in self:
            if not kinds or frame.kind in kinds:
                return frame
        return None
