# src/prov_capture/__init__.py
"""
prov_capture — captura de proveniência para scripts Python.

O pacote instrumenta a execução de um script (ou de uma sessão de console,
ou de um callable) e registra um grafo de proveniência: quais statements
executaram, em que ordem, quais valores leram e produziram, e quais
arquivos e superfícies de exibição tocaram.

Arquitetura em alto nível:
    - core.config    → configuração de captura (YAML/JSON, merge, hash)
    - core.graph     → modelo do grafo, cadeia de escopos e pilha de frames
    - core.builder   → parser de statements e Graph Builder
    - core.snapshot  → snapshots e digests de valores
    - core.iotrace   → rastreamento de arquivos e figuras
    - core.serialize → documento de intercâmbio (prov.json)
    - core.session   → ciclo de vida da sessão
    - api            → pontos de entrada públicos

Limites explícitos:
    - Não visualiza o grafo
    - Não oferece depuração interativa
"""

from .api import (
    ConsoleNotifier,
    console_notifier,
    finalize_session,
    graph_document,
    initialize_session,
    run_script,
    save_graph,
)
from .core.exceptions import (
    CaptureError,
    ConfigurationError,
    GraphConsistencyError,
    ProvException,
    SessionEnvironmentError,
)

__all__ = [
    "ConsoleNotifier",
    "console_notifier",
    "finalize_session",
    "graph_document",
    "initialize_session",
    "run_script",
    "save_graph",
    "CaptureError",
    "ConfigurationError",
    "GraphConsistencyError",
    "ProvException",
    "SessionEnvironmentError",
]
