"""
Grafo de proveniência do prov_capture.

Componentes:
    - model → nós, arestas, ProvenanceGraph e verificação de balanceamento
    - scope → ScopeChain (busca do escopo mais interno para o mais externo)
    - stack → CallStack de frames abertos
"""

from .model import (
    ControlKind,
    ControlNode,
    ControlPhase,
    DataNode,
    DeviceNode,
    Edge,
    EdgeKind,
    FileDirection,
    FileNode,
    NodeKind,
    OperationKind,
    ProcedureNode,
    ProcedureStatus,
    ProvenanceGraph,
    SourceSpan,
    check_balance,
    unmatched_starts,
)
from .scope import Binding, Scope, ScopeChain
from .stack import CallStack, Frame, FrameKind

__all__ = [
    "ControlKind",
    "ControlNode",
    "ControlPhase",
    "DataNode",
    "DeviceNode",
    "Edge",
    "EdgeKind",
    "FileDirection",
    "FileNode",
    "NodeKind",
    "OperationKind",
    "ProcedureNode",
    "ProcedureStatus",
    "ProvenanceGraph",
    "SourceSpan",
    "check_balance",
    "unmatched_starts",
    "Binding",
    "Scope",
    "ScopeChain",
    "CallStack",
    "Frame",
    "FrameKind",
]
