# src/prov_capture/core/serialize/debug.py
"""
Tabelas de depuração da sessão (`save_debug=True`).

Arquivos gerados em `<sessão>/debug/`:
    - nodes.csv   → nós de atividade (Procedure e Control)
    - data.csv    → nós de entidade (Data, File e Device)
    - edges.csv   → arestas
    - scripts.csv → tabela de scripts
    - events.json → log estruturado de eventos

As tabelas são derivadas do mesmo `ProvDocument` emitido em prov.json, de
modo que as duas visões nunca divergem.

Limites explícitos:
    - Não suspende o rastreamento de arquivos (responsabilidade do chamador)
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

import pandas as pd

from .document import ProvDocument


DEBUG_TABLES = ("nodes.csv", "data.csv", "edges.csv", "scripts.csv")
EVENTS_FILE = "events.json"


def _flatten(row: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in row.items():
        if isinstance(value, dict):
            for sub, inner in value.items():
                out[f"{key}.{sub}"] = inner
        else:
            out[key] = value
    return out


def _frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame([_flatten(r) for r in rows])


def write_debug_tables(document: ProvDocument, debug_dir: Path, events: List[Dict[str, Any]]) -> List[Path]:
    """
    Grava as tabelas de depuração e o log de eventos.

    Returns:
        List[Path]: Arquivos gravados, na ordem de DEBUG_TABLES + events.

    Raises:
        OSError: Falha de escrita.
    """
    debug_dir = Path(debug_dir)
    debug_dir.mkdir(parents=True, exist_ok=True)

    tables = {
        "nodes.csv": _frame(document.nodes),
        "data.csv": _frame(document.data),
        "edges.csv": _frame(document.edges),
        "scripts.csv": _frame(document.manifest.get("scripts", [])),
    }
    written: List[Path] = []
    for name in DEBUG_TABLES:
        path = debug_dir / name
        tables[name].to_csv(path, index=False)
        written.append(path)

    events_path = debug_dir / EVENTS_FILE
    events_path.write_text(json.dumps(events, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    written.append(events_path)
    return written
