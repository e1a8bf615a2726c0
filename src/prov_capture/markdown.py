# src/prov_capture/markdown.py
"""
Pré-processamento de documentos Markdown.

Extrai os blocos cercados ```python (ou ```py / ```{python}) de um
documento Markdown para um script plano, preservando a ordem dos blocos.
O script gerado é o que a sessão executa e registra.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import List, Union

from prov_capture.core.exceptions import SessionEnvironmentError


MARKDOWN_SUFFIXES = (".md", ".markdown")

_FENCE_OPEN = re.compile(r"^(?P<fence>`{3,}|~{3,})\s*\{?\s*(?P<lang>[A-Za-z0-9_+-]*)")
_PYTHON_LANGS = {"python", "py", "python3"}


def is_markdown(path: Union[str, Path]) -> bool:
    return Path(path).suffix.lower() in MARKDOWN_SUFFIXES


def extract_chunks(text: str) -> List[str]:
    """Retorna o conteúdo de cada bloco Python cercado, na ordem do documento."""
    chunks: List[str] = []
    current: List[str] = []
    fence = None
    keep = False

    for line in text.splitlines():
        if fence is None:
            m = _FENCE_OPEN.match(line.strip())
            if m:
                fence = m.group("fence")
                keep = m.group("lang").lower() in _PYTHON_LANGS
                current = []
            continue
        if line.strip().startswith(fence) and line.strip().strip(fence[0]) == "":
            if keep:
                chunks.append("\n".join(current))
            fence = None
            continue
        current.append(line)

    return chunks


def markdown_to_script(md_path: Union[str, Path], out_path: Union[str, Path]) -> Path:
    """
    Converte um documento Markdown em script Python.

    Raises:
        SessionEnvironmentError: Documento ausente ou ilegível, ou destino
            não gravável.
    """
    src = Path(md_path)
    try:
        text = src.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise SessionEnvironmentError(message="Documento Markdown não encontrado", details={"path": str(src)}) from e
    except (OSError, UnicodeDecodeError) as e:
        raise SessionEnvironmentError(
            message="Documento Markdown ilegível",
            details={"path": str(src), "exc_type": e.__class__.__name__, "exc_message": str(e)},
        ) from e

    chunks = extract_chunks(text)
    body = "\n\n".join(chunk.rstrip() for chunk in chunks)

    out = Path(out_path)
    try:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(body + "\n" if body else "", encoding="utf-8")
    except OSError as e:
        raise SessionEnvironmentError(
            message="Não foi possível gravar o script convertido",
            details={"path": str(out), "exc_message": str(e)},
        ) from e
    return out
