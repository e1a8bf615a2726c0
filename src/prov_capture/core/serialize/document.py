# src/prov_capture/core/serialize/document.py
"""
Documento de intercâmbio do grafo de proveniência (prov.json).

O documento consolida, de forma determinística e auditável:
    - manifest: identidade da ferramenta, script (ou console), tabela de
      scripts, início da sessão (UTC), algoritmo de hash, configuração
      ativa + hash canônico, warnings
    - nodes: nós de atividade (Procedure e Control)
    - data: nós de entidade (Data, File e Device)
    - edges: todas as arestas

Princípios fundamentais:
    - Serialização idempotente e não incremental: cada chamada reemite o
      grafo inteiro e sobrescreve o documento anterior
    - Escrita atômica: arquivo temporário no mesmo diretório + `os.replace`,
      de modo que uma falha no meio da escrita nunca deixa um documento
      truncado
    - Ids inteiros estáveis, na ordem de criação

Limites explícitos:
    - Não executa statements
    - Não grava snapshots (responsabilidade do Snapshot Manager)
    - Não realiza migração de versões de schema
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Union

from prov_capture.core.config.hashing import compute_config_hash
from prov_capture.core.graph.model import ACTIVITY_KINDS, ProvenanceGraph

if TYPE_CHECKING:  # pragma: no cover
    from prov_capture.core.session.context import SessionContext


TOOL_NAME = "prov_capture"
TOOL_VERSION = "0.1.0"
SCHEMA_VERSION = "1"
CONSOLE_MARKER = "console"


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


@dataclass
class ProvDocument:
    """Representação em memória do documento de intercâmbio."""

    manifest: Dict[str, Any]
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    data: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "manifest": dict(self.manifest),
            "nodes": [dict(n) for n in self.nodes],
            "data": [dict(d) for d in self.data],
            "edges": [dict(e) for e in self.edges],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=2, sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvDocument":
        return cls(
            manifest=dict(data.get("manifest", {}) or {}),
            nodes=[dict(n) for n in (data.get("nodes", []) or [])],
            data=[dict(d) for d in (data.get("data", []) or [])],
            edges=[dict(e) for e in (data.get("edges", []) or [])],
        )

    def to_graph(self) -> ProvenanceGraph:
        """Reconstrói o grafo (valida referências e contiguidade dos ids)."""
        return ProvenanceGraph.from_collections(
            nodes=self.nodes + self.data,
            edges=self.edges,
            meta=self.manifest,
        )


def build_manifest(ctx: "SessionContext") -> Dict[str, Any]:
    config = ctx.settings.to_dict()
    return {
        "tool": TOOL_NAME,
        "tool_version": TOOL_VERSION,
        "schema_version": SCHEMA_VERSION,
        "session_id": ctx.session_id,
        "script": ctx.script_path if ctx.script_path else CONSOLE_MARKER,
        "scripts": ctx.scripts.to_list(),
        "started_at": _iso(ctx.created_at),
        "hash_algorithm": ctx.hash_algorithm,
        "config": config,
        "config_hash": compute_config_hash(config),
        "active": ctx.active,
        "warnings": {k: list(v) for k, v in ctx.warnings.items()},
    }


def build_document(ctx: "SessionContext") -> ProvDocument:
    """Reemite o grafo inteiro da sessão como documento."""
    graph = ctx.graph
    nodes = [n.to_dict() for n in graph.nodes if n.kind in ACTIVITY_KINDS]
    data = [n.to_dict() for n in graph.nodes if n.kind not in ACTIVITY_KINDS]
    edges = [e.to_dict() for e in graph.edges]
    return ProvDocument(manifest=build_manifest(ctx), nodes=nodes, data=data, edges=edges)


def write_atomic(path: Path, text: str) -> None:
    """Escreve `text` em `path` via arquivo temporário + rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def save_document(document: Union[ProvDocument, Dict[str, Any]], path: Path) -> Path:
    """
    Persiste o documento em JSON (chaves ordenadas, escrita atômica).

    Raises:
        OSError: Falha ao criar diretórios ou escrever o arquivo.
    """
    doc = document if isinstance(document, ProvDocument) else ProvDocument.from_dict(document)
    path = Path(path)
    write_atomic(path, doc.to_json())
    return path


def load_document(path: Union[str, Path]) -> ProvDocument:
    """
    Carrega um documento persistido.

    Raises:
        OSError: Falha de leitura.
        json.JSONDecodeError: JSON inválido.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return ProvDocument.from_dict(data)
