# src/prov_capture/core/graph/model.py
"""
Modelo canônico do grafo de proveniência (v1).

Este módulo define os tipos de nós e arestas e o `ProvenanceGraph`, a
estrutura em memória construída pelo Builder durante uma sessão de captura.

Tipos de nó (variante etiquetada por `NodeKind`):
    - Procedure → um statement executado, ou o início/fim de um bloco
    - Data      → uma versão de uma variável em um escopo
    - File      → um arquivo lido/escrito, ou uma imagem de figura ("plot")
    - Device    → uma superfície de exibição (figura matplotlib)
    - Control   → entrada/saída de iteração de loop ou de condicional

Tipos de aresta:
    - data-in  → Data/File/Device → Procedure/Control
    - data-out → Procedure/Control → Data/File/Device
    - control  → entre nós de atividade quando um dos lados é Control
    - sequence → entre nós de atividade Procedure consecutivos

Decisões arquiteturais:
    - Ids de nós e de arestas são inteiros monotônicos (contadores separados)
    - Nós de atividade são encadeados na ordem de criação
    - Atributos de conclusão (status, digest, término) podem ser preenchidos depois

Invariantes:
    - Toda aresta referencia nós existentes
    - O grafo é append-only: nada é removido
    - Nós de término referenciam o nó de início correspondente (`start_id`)

Limites explícitos:
    - Não executa statements
    - Não calcula digests nem grava snapshots
    - Não persiste em disco (responsabilidade do Serializer)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from prov_capture.core.exceptions import GraphConsistencyError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class NodeKind(str, Enum):
    PROCEDURE = "procedure"
    DATA = "data"
    FILE = "file"
    DEVICE = "device"
    CONTROL = "control"


class OperationKind(str, Enum):
    """Papel de um nó Procedure: statement simples, início ou término de bloco."""
    OPERATION = "operation"
    START = "start"
    FINISH = "finish"


class ProcedureStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    RUNNING = "running"


class FileDirection(str, Enum):
    READ = "read"
    WRITE = "write"
    APPEND = "append"
    UNKNOWN = "unknown"


class ControlKind(str, Enum):
    LOOP = "loop"
    CONDITIONAL = "conditional"


class ControlPhase(str, Enum):
    START = "start"
    FINISH = "finish"


class EdgeKind(str, Enum):
    DATA_IN = "data-in"
    DATA_OUT = "data-out"
    CONTROL = "control"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class SourceSpan:
    """Posição de um statement no script (linhas e colunas 1-based)."""

    script_num: int
    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "script_num": self.script_num,
            "start_line": self.start_line,
            "start_col": self.start_col,
            "end_line": self.end_line,
            "end_col": self.end_col,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SourceSpan"]:
        if not data:
            return None
        return cls(**{k: int(data[k]) for k in ("script_num", "start_line", "start_col", "end_line", "end_col")})


# -----------------------------------------------------------------------------
# Nós
# -----------------------------------------------------------------------------

@dataclass
class ProcedureNode:
    id: int
    name: str
    operation: OperationKind
    span: Optional[SourceSpan] = None
    scope_id: int = 1
    status: ProcedureStatus = ProcedureStatus.OK
    error: Optional[Dict[str, Any]] = None
    start_id: Optional[int] = None
    started_at: str = field(default_factory=_now)
    finished_at: Optional[str] = None
    kind: NodeKind = field(default=NodeKind.PROCEDURE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "operation": self.operation.value,
            "span": self.span.to_dict() if self.span else None,
            "scope_id": self.scope_id,
            "status": self.status.value,
            "error": self.error,
            "start_id": self.start_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


@dataclass
class ControlNode:
    id: int
    name: str
    control: ControlKind
    phase: ControlPhase
    iteration: Optional[int] = None
    scope_id: int = 1
    start_id: Optional[int] = None
    created_at: str = field(default_factory=_now)
    kind: NodeKind = field(default=NodeKind.CONTROL, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "control": self.control.value,
            "phase": self.phase.value,
            "iteration": self.iteration,
            "scope_id": self.scope_id,
            "start_id": self.start_id,
            "created_at": self.created_at,
        }


@dataclass
class DataNode:
    id: int
    name: str
    scope_id: int
    version: int
    value: Optional[str] = None
    value_type: Optional[str] = None
    digest: Optional[str] = None
    artifact: Optional[str] = None
    truncated: bool = False
    created_at: str = field(default_factory=_now)
    kind: NodeKind = field(default=NodeKind.DATA, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "scope_id": self.scope_id,
            "version": self.version,
            "value": self.value,
            "value_type": self.value_type,
            "digest": self.digest,
            "artifact": self.artifact,
            "truncated": self.truncated,
            "created_at": self.created_at,
        }


@dataclass
class FileNode:
    id: int
    name: str
    path: str
    direction: FileDirection = FileDirection.UNKNOWN
    file_type: str = "file"
    digest: Optional[str] = None
    mode: Optional[str] = None
    created_at: str = field(default_factory=_now)
    closed_at: Optional[str] = None
    kind: NodeKind = field(default=NodeKind.FILE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "path": self.path,
            "direction": self.direction.value,
            "file_type": self.file_type,
            "digest": self.digest,
            "mode": self.mode,
            "created_at": self.created_at,
            "closed_at": self.closed_at,
        }


@dataclass
class DeviceNode:
    id: int
    name: str
    surface_id: str
    created_at: str = field(default_factory=_now)
    kind: NodeKind = field(default=NodeKind.DEVICE, init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "surface_id": self.surface_id,
            "created_at": self.created_at,
        }


Node = Union[ProcedureNode, ControlNode, DataNode, FileNode, DeviceNode]

ACTIVITY_KINDS = (NodeKind.PROCEDURE, NodeKind.CONTROL)
ENTITY_KINDS = (NodeKind.DATA, NodeKind.FILE, NodeKind.DEVICE)


@dataclass(frozen=True)
class Edge:
    id: int
    source: int
    target: int
    kind: EdgeKind

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "from": self.source, "to": self.target, "kind": self.kind.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(id=int(data["id"]), source=int(data["from"]), target=int(data["to"]), kind=EdgeKind(data["kind"]))


def node_from_dict(data: Dict[str, Any]) -> Node:
    """Reconstrói um nó a partir de sua forma serializada."""
    kind = NodeKind(data["kind"])
    if kind == NodeKind.PROCEDURE:
        node: Node = ProcedureNode(
            id=int(data["id"]),
            name=data["name"],
            operation=OperationKind(data["operation"]),
            span=SourceSpan.from_dict(data.get("span")),
            scope_id=int(data.get("scope_id", 1)),
            status=ProcedureStatus(data.get("status", "ok")),
            error=data.get("error"),
            start_id=data.get("start_id"),
            started_at=data.get("started_at") or _now(),
            finished_at=data.get("finished_at"),
        )
    elif kind == NodeKind.CONTROL:
        node = ControlNode(
            id=int(data["id"]),
            name=data["name"],
            control=ControlKind(data["control"]),
            phase=ControlPhase(data["phase"]),
            iteration=data.get("iteration"),
            scope_id=int(data.get("scope_id", 1)),
            start_id=data.get("start_id"),
            created_at=data.get("created_at") or _now(),
        )
    elif kind == NodeKind.DATA:
        node = DataNode(
            id=int(data["id"]),
            name=data["name"],
            scope_id=int(data["scope_id"]),
            version=int(data["version"]),
            value=data.get("value"),
            value_type=data.get("value_type"),
            digest=data.get("digest"),
            artifact=data.get("artifact"),
            truncated=bool(data.get("truncated", False)),
            created_at=data.get("created_at") or _now(),
        )
    elif kind == NodeKind.FILE:
        node = FileNode(
            id=int(data["id"]),
            name=data["name"],
            path=data["path"],
            direction=FileDirection(data.get("direction", "unknown")),
            file_type=data.get("file_type", "file"),
            digest=data.get("digest"),
            mode=data.get("mode"),
            created_at=data.get("created_at") or _now(),
            closed_at=data.get("closed_at"),
        )
    else:
        node = DeviceNode(
            id=int(data["id"]),
            name=data["name"],
            surface_id=str(data["surface_id"]),
            created_at=data.get("created_at") or _now(),
        )
    return node


# -----------------------------------------------------------------------------
# Grafo
# -----------------------------------------------------------------------------

@dataclass
class ProvenanceGraph:
    """
    Grafo de proveniência append-only de uma sessão.

    Decisões arquiteturais:
        - Cada novo nó de atividade (Procedure/Control) é ligado ao nó de
          atividade anterior: `control` se um dos lados é Control, senão `sequence`
        - Versões de Data são contadas por (scope_id, nome)
        - Ids de escopo também são emitidos pelo grafo (1 = escopo global do script principal)

    Invariantes:
        - `nodes[i].id == i + 1` e `edges[i].id == i + 1`
        - add_edge rejeita referências a nós inexistentes
    """

    meta: Dict[str, Any] = field(default_factory=dict)
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    last_activity: Optional[int] = None

    _versions: Dict[Tuple[int, str], int] = field(default_factory=dict, init=False, repr=False)
    _scope_counter: int = field(default=0, init=False, repr=False)

    # -----------------------------
    # Acesso
    # -----------------------------
    def node(self, node_id: int) -> Node:
        if not isinstance(node_id, int) or node_id < 1 or node_id > len(self.nodes):
            raise GraphConsistencyError(
                message="Referência a nó inexistente",
                details={"node_id": node_id, "node_count": len(self.nodes)},
            )
        return self.nodes[node_id - 1]

    def has_node(self, node_id: int) -> bool:
        return isinstance(node_id, int) and 1 <= node_id <= len(self.nodes)

    def nodes_of(self, kind: NodeKind) -> List[Node]:
        return [n for n in self.nodes if n.kind == kind]

    def edges_of(self, kind: EdgeKind) -> List[Edge]:
        return [e for e in self.edges if e.kind == kind]

    def iter_edges(self, *, source: Optional[int] = None, target: Optional[int] = None) -> Iterator[Edge]:
        for e in self.edges:
            if source is not None and e.source != source:
                continue
            if target is not None and e.target != target:
                continue
            yield e

    # -----------------------------
    # Escopos e versões
    # -----------------------------
    def new_scope_id(self) -> int:
        self._scope_counter += 1
        return self._scope_counter

    def next_version(self, scope_id: int, name: str) -> int:
        key = (scope_id, name)
        self._versions[key] = self._versions.get(key, 0) + 1
        return self._versions[key]

    # -----------------------------
    # Mutação
    # -----------------------------
    def _append(self, node: Node) -> Node:
        self.nodes.append(node)
        if node.kind in ACTIVITY_KINDS:
            self._link_activity(node)
        return node

    def _link_activity(self, node: Node) -> None:
        previous = self.last_activity
        self.last_activity = node.id
        if previous is None:
            return
        prev = self.node(previous)
        kind = EdgeKind.CONTROL if NodeKind.CONTROL in (prev.kind, node.kind) else EdgeKind.SEQUENCE
        self.add_edge(previous, node.id, kind)

    def add_procedure(
        self,
        *,
        name: str,
        operation: OperationKind,
        span: Optional[SourceSpan] = None,
        scope_id: int = 1,
        status: ProcedureStatus = ProcedureStatus.OK,
        start_id: Optional[int] = None,
    ) -> ProcedureNode:
        node = ProcedureNode(
            id=len(self.nodes) + 1,
            name=name,
            operation=operation,
            span=span,
            scope_id=scope_id,
            status=status,
            start_id=start_id,
        )
        if status != ProcedureStatus.RUNNING:
            node.finished_at = node.started_at
        self._append(node)
        return node

    def add_control(
        self,
        *,
        name: str,
        control: ControlKind,
        phase: ControlPhase,
        iteration: Optional[int] = None,
        scope_id: int = 1,
        start_id: Optional[int] = None,
    ) -> ControlNode:
        node = ControlNode(
            id=len(self.nodes) + 1,
            name=name,
            control=control,
            phase=phase,
            iteration=iteration,
            scope_id=scope_id,
            start_id=start_id,
        )
        self._append(node)
        return node

    def add_data(self, *, name: str, scope_id: int) -> DataNode:
        node = DataNode(
            id=len(self.nodes) + 1,
            name=name,
            scope_id=scope_id,
            version=self.next_version(scope_id, name),
        )
        self._append(node)
        return node

    def add_file(
        self,
        *,
        name: str,
        path: str,
        direction: FileDirection = FileDirection.UNKNOWN,
        file_type: str = "file",
        mode: Optional[str] = None,
    ) -> FileNode:
        node = FileNode(
            id=len(self.nodes) + 1,
            name=name,
            path=path,
            direction=direction,
            file_type=file_type,
            mode=mode,
        )
        self._append(node)
        return node

    def add_device(self, *, name: str, surface_id: str) -> DeviceNode:
        node = DeviceNode(id=len(self.nodes) + 1, name=name, surface_id=surface_id)
        self._append(node)
        return node

    def add_edge(self, source: int, target: int, kind: EdgeKind) -> Edge:
        for ref in (source, target):
            if not self.has_node(ref):
                raise GraphConsistencyError(
                    message="Aresta referencia nó inexistente",
                    details={"from": source, "to": target, "kind": kind.value, "missing": ref},
                )
        edge = Edge(id=len(self.edges) + 1, source=source, target=target, kind=kind)
        self.edges.append(edge)
        return edge

    # -----------------------------
    # Serialização
    # -----------------------------
    @classmethod
    def from_collections(
        cls,
        *,
        nodes: List[Dict[str, Any]],
        edges: List[Dict[str, Any]],
        meta: Optional[Dict[str, Any]] = None,
    ) -> "ProvenanceGraph":
        """Reconstrói um grafo a partir das coleções serializadas (ordem por id)."""
        graph = cls(meta=dict(meta or {}))
        for data in sorted(nodes, key=lambda d: int(d["id"])):
            graph.nodes.append(node_from_dict(data))
        for data in sorted(edges, key=lambda d: int(d["id"])):
            edge = Edge.from_dict(data)
            if not (graph.has_node(edge.source) and graph.has_node(edge.target)):
                raise GraphConsistencyError(
                    message="Aresta referencia nó inexistente",
                    details={"edge": data},
                )
            graph.edges.append(edge)
        for i, node in enumerate(graph.nodes, start=1):
            if node.id != i:
                raise GraphConsistencyError(
                    message="Ids de nós não são contíguos",
                    details={"expected": i, "found": node.id},
                )
        activities = [n.id for n in graph.nodes if n.kind in ACTIVITY_KINDS]
        graph.last_activity = activities[-1] if activities else None
        return graph


# -----------------------------------------------------------------------------
# Balanceamento
# -----------------------------------------------------------------------------

def unmatched_starts(graph: ProvenanceGraph) -> List[Dict[str, Any]]:
    """Lista nós de início (Procedure start / Control start) sem término."""
    closed = set()
    for node in graph.nodes:
        if isinstance(node, ProcedureNode) and node.operation == OperationKind.FINISH and node.start_id:
            closed.add(node.start_id)
        elif isinstance(node, ControlNode) and node.phase == ControlPhase.FINISH and node.start_id:
            closed.add(node.start_id)

    unmatched: List[Dict[str, Any]] = []
    for node in graph.nodes:
        is_start = (
            (isinstance(node, ProcedureNode) and node.operation == OperationKind.START)
            or (isinstance(node, ControlNode) and node.phase == ControlPhase.START)
        )
        if is_start and node.id not in closed:
            unmatched.append({"id": node.id, "name": node.name, "kind": node.kind.value})
    return unmatched


def check_balance(graph: ProvenanceGraph) -> None:
    """
    Verifica que todo nó de início possui término.

    Raises:
        GraphConsistencyError: Há nós de início sem término correspondente.
    """
    unmatched = unmatched_starts(graph)
    if unmatched:
        raise GraphConsistencyError(
            message="Nós de início sem término correspondente",
            details={"unmatched": unmatched},
            hint="Feche os blocos abertos antes de finalizar a sessão.",
        )
