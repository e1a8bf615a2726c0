# src/prov_capture/core/session/context.py
"""
Contexto de uma sessão de captura.

Este módulo define o `SessionContext`, a estrutura que concentra todo o
estado de uma sessão ativa: grafo em memória, cadeia de escopos, pilha de
frames, registro de scripts, snapshots, tracers de I/O e o log estruturado
de eventos.

Princípios fundamentais:
    - Não existe estado global de sessão: tudo é acessado via contexto
    - O único mutador do grafo é o Builder (diretamente ou via Snapshot
      Manager e tracers que ele aciona)
    - Logs e warnings são estruturados e rastreáveis

Invariantes:
    - Eventos incluem sempre `session_id`, `scope`, `level` e timestamp UTC
    - Warnings são agrupados por `scope`
    - Depois de `active = False` o contexto não volta a ficar ativo

Limites explícitos:
    - Não executa statements
    - Não cria nem remove diretórios
    - Não persiste o grafo
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from prov_capture.core.config import CaptureSettings
from prov_capture.core.errors import capture_error
from prov_capture.core.graph import CallStack, FrameKind, ProvenanceGraph, ScopeChain
from prov_capture.core.snapshot import SnapshotManager

from .paths import SessionPaths
from .scripts import ScriptRegistry

if TYPE_CHECKING:  # pragma: no cover
    from prov_capture.core.iotrace import DisplayTracer, FileTracer


@dataclass
class SessionContext:
    """
    Estado canônico de uma sessão de captura.

    Campos principais:
        - session_id / created_at: identidade da sessão
        - settings: configuração validada (CaptureSettings)
        - paths: layout de diretórios da sessão
        - script_path: script principal (None em modo console/callable)
        - console_mode: sessão alimentada por notificações do console

    Decisões arquiteturais:
        - `silent_depth` > 0 indica região silenciosa (iteração fora da
          janela): o fluxo de controle continua, mas nenhum nó é criado
        - `suppress_entry_points` faz o Builder descartar chamadas a
          initialize_session/run_script/finalize_session dentro do script
    """

    session_id: str
    created_at: datetime
    settings: CaptureSettings
    paths: SessionPaths
    script_path: Optional[str] = None
    console_mode: bool = False
    suppress_entry_points: bool = False
    meta: Dict[str, Any] = field(default_factory=dict)

    graph: ProvenanceGraph = field(default_factory=ProvenanceGraph)
    scopes: ScopeChain = field(default_factory=ScopeChain)
    stack: CallStack = field(default_factory=CallStack)
    scripts: ScriptRegistry = field(init=False)
    snapshots: SnapshotManager = field(init=False)
    files: Optional["FileTracer"] = field(default=None, init=False)
    display: Optional["DisplayTracer"] = field(default=None, init=False)

    active: bool = field(default=True, init=False)
    silent_depth: int = field(default=0, init=False)
    console_start_id: Optional[int] = field(default=None, init=False)
    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)

    def __post_init__(self) -> None:
        self.scripts = ScriptRegistry(self.paths.scripts)
        self.snapshots = SnapshotManager(
            data_dir=self.paths.data,
            policy=self.settings.snapshot_policy(),
            hash_algorithm=self.settings.hash_algorithm,
        )

    # -----------------------------
    # Estado
    # -----------------------------
    @property
    def silent(self) -> bool:
        return self.silent_depth > 0

    @contextmanager
    def quiet(self) -> Iterator[None]:
        """Região silenciosa: o código executa, nenhum nó é criado."""
        self.silent_depth += 1
        try:
            yield
        finally:
            self.silent_depth -= 1

    @property
    def hash_algorithm(self) -> str:
        return self.settings.hash_algorithm

    def current_procedure_id(self) -> Optional[int]:
        """Procedure ativo (statement ou bloco mais interno); fallback: último nó de atividade."""
        frame = self.stack.innermost(FrameKind.STATEMENT, FrameKind.START)
        if frame is not None:
            return frame.node_id
        return self.graph.last_activity

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, scope: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "session_id": self.session_id,
            "scope": scope,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        self.events.append(event)

    def add_warning(self, *, scope: str, message: str) -> None:
        if scope not in self.warnings:
            self.warnings[scope] = []
        self.warnings[scope].append(message)

    def report_capture_error(self, *, scope: str, what: str, exc: BaseException, target: Optional[str] = None) -> None:
        """Registra uma falha de captura não fatal (evento + warning)."""
        payload = capture_error(what=what, exc=exc, target=target)
        self.log(scope=scope, level="warning", message=payload.message, error=payload.to_dict())
        self.add_warning(scope=scope, message=f"{payload.message} ({target or '-'}): {exc}")
