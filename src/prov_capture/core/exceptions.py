"""
prov_capture — Canonical Exceptions (v1)

Este módulo define as exceções tipadas internas do prov_capture.

Objetivo:
- Permitir que Builder, Session Manager e tracers levantem exceções semânticas tipadas
- Facilitar o mapeamento determinístico para ProvErrorPayload
- Separar falhas do coletor de falhas do script observado

Regras:
- Exceções do script observado NUNCA são encapsuladas nestas classes:
  elas propagam inalteradas ao chamador.
- Exceções devem carregar apenas dados estruturados (serializáveis).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class ProvException(Exception):
    """Base class para exceções internas do prov_capture.

    Importante:
    - Sempre carregar dados estruturados em `details`
    - Não embedar stack trace em payloads de erro
    - Mensagem deve ser curta e humana
    """

    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    hint: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover
        return self.message


# ---------------------------------------------------------------------------
# Configuração (rejeitada antes de qualquer execução)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ConfigurationError(ProvException):
    """Parâmetros de captura inválidos ou inconsistentes (script/callable, janela de loops, snapshot)."""


# ---------------------------------------------------------------------------
# Ambiente (diretórios, encoding do script)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SessionEnvironmentError(ProvException):
    """Diretório de saída não pode ser criado ou o script não pode ser lido."""


# ---------------------------------------------------------------------------
# Grafo
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class GraphConsistencyError(ProvException):
    """Nó de início sem nó de término correspondente (verificação defensiva no finalize)."""


# ---------------------------------------------------------------------------
# Captura (não fatal)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CaptureError(ProvException):
    """Falha ao calcular digest, gravar snapshot ou capturar superfície de exibição."""
