"""
prov_capture — Canonical Error Structures (v1)

Este módulo define o padrão canônico de payloads de erro do prov_capture.
Payloads são gravados no grafo (nós Procedure com status `failed`) e no
Event Log da sessão, devendo ser:

- explícitos
- serializáveis
- rastreáveis

Nenhum payload contém stack trace cru.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .exceptions import ProvException


# ---------------------------------------------------------------------------
# Payload canônico
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProvErrorPayload:
    """
    Payload canônico de erro do prov_capture.

    Campos:
    - type: código estável do erro (não é texto livre)
    - message: mensagem curta, humana e objetiva
    - details: dados estruturados relevantes para diagnóstico
    - hint: ação sugerida ao operador
    """

    type: str
    message: str
    details: Dict[str, Any]
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Retorna representação serializável do erro."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Catálogo canônico de tipos de erro (v1)
# ---------------------------------------------------------------------------

SCRIPT_EXECUTION_ERROR = "SCRIPT_EXECUTION_ERROR"
CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
SESSION_ENVIRONMENT_ERROR = "SESSION_ENVIRONMENT_ERROR"
GRAPH_CONSISTENCY_ERROR = "GRAPH_CONSISTENCY_ERROR"
CAPTURE_ERROR = "CAPTURE_ERROR"
SAVE_ERROR = "SAVE_ERROR"


# ---------------------------------------------------------------------------
# Helpers de fábrica
# ---------------------------------------------------------------------------

def script_execution_error(
    *,
    exc: BaseException,
    script_num: Optional[int] = None,
    line: Optional[int] = None,
    hint: str = "O erro foi levantado pelo próprio script observado; o grafo registra o estado até a falha.",
) -> ProvErrorPayload:
    return ProvErrorPayload(
        type=SCRIPT_EXECUTION_ERROR,
        message=str(exc) or exc.__class__.__name__,
        details={
            "exception_class": exc.__class__.__name__,
            "script_num": script_num,
            "line": line,
        },
        hint=hint,
    )


def graph_consistency_error(
    *,
    unmatched: List[Dict[str, Any]],
    hint: str = "Verifique se todos os blocos abertos foram fechados pelo caminho de cleanup.",
) -> ProvErrorPayload:
    return ProvErrorPayload(
        type=GRAPH_CONSISTENCY_ERROR,
        message="Nós de início sem término correspondente",
        details={"unmatched": unmatched},
        hint=hint,
    )


def capture_error(
    *,
    what: str,
    exc: BaseException,
    target: Optional[str] = None,
    hint: str = "A captura deste item foi ignorada; a sessão continua.",
) -> ProvErrorPayload:
    return ProvErrorPayload(
        type=CAPTURE_ERROR,
        message=f"Falha de captura: {what}",
        details={
            "target": target,
            "exc_type": exc.__class__.__name__,
            "exc_message": str(exc) or None,
        },
        hint=hint,
    )


def save_error(
    *,
    exc: BaseException,
    path: Optional[str] = None,
    hint: str = "Verifique permissões e espaço em disco do diretório da sessão.",
) -> ProvErrorPayload:
    return ProvErrorPayload(
        type=SAVE_ERROR,
        message="Falha ao persistir o grafo de proveniência",
        details={
            "path": path,
            "exc_type": exc.__class__.__name__,
            "exc_message": str(exc) or None,
        },
        hint=hint,
    )


def exception_to_error(exc: BaseException) -> ProvErrorPayload:
    """Converte exceções em ProvErrorPayload (serializável).

    Regras:
    - ProvException: já vem com message/details/hint; o código é o nome da classe.
    - Outras exceções: SCRIPT_EXECUTION_ERROR sem expor stack trace.
    """
    if isinstance(exc, ProvException):
        return ProvErrorPayload(
            type=exc.__class__.__name__,
            message=exc.message or "Erro do coletor",
            details=dict(exc.details or {}),
            hint=exc.hint,
        )
    return script_execution_error(exc=exc)
