# tests/conftest.py
"""
Fixtures compartilhados para testes do prov_capture.

Este módulo define fixtures reutilizáveis que fornecem:
- configurações de captura em YAML (defaults + override local)
- um SessionContext isolado em `tmp_path`
- um GraphBuilder pronto para executar código-fonte em memória
- isolamento de diretório de trabalho e da variável PROV_DIR

Decisões arquiteturais:
    - Imports do core são realizados de forma lazy para melhorar a
      clareza de erros durante falhas
    - Sessões criadas pela API pública são sempre finalizadas ao fim do
      teste (o tracer de `open()` nunca vaza entre testes)

Invariantes:
    - Nenhuma fixture escreve fora de `tmp_path`
    - Nenhuma fixture depende de PROV_DIR do ambiente
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest


# =====================================================
# Config fixtures
# =====================================================

@pytest.fixture
def capture_defaults_yaml() -> str:
    """
    YAML de defaults de captura semelhante ao uso real do projeto.

    Returns:
        str: Conteúdo YAML com as seções `capture` e `output`.
    """
    return """\
capture:
  snapshot_size: 10
  hash_algorithm: sha256
  max_loops: 5
output:
  save_debug: false
"""


@pytest.fixture
def capture_local_yaml() -> str:
    """YAML de override local (apenas as chaves alteradas)."""
    return """\
capture:
  max_loops: -1
output:
  save_debug: true
"""


# =====================================================
# Ambiente
# =====================================================

@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Remove PROV_DIR do ambiente e garante que a sessão global termina."""
    monkeypatch.delenv("PROV_DIR", raising=False)
    yield
    from prov_capture.api import session_manager

    manager = session_manager()
    if manager.active:
        manager.finalize()


@pytest.fixture
def in_tmp_cwd(tmp_path, monkeypatch) -> Path:
    """Executa o teste com `tmp_path` como diretório de trabalho."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


# =====================================================
# Sessão / Builder
# =====================================================

@pytest.fixture
def make_ctx(tmp_path):
    """
    Factory de SessionContext isolado (sem tracers instalados).

    Aceita overrides de CaptureSettings por keyword.
    """
    from prov_capture.core.config import CaptureSettings
    from prov_capture.core.session import SessionContext, create_session_dirs

    def _make(**settings):
        paths = create_session_dirs(tmp_path / "prov_test")
        return SessionContext(
            session_id="session-test-001",
            created_at=datetime(2026, 1, 16, 0, 0, 0, tzinfo=timezone.utc),
            settings=CaptureSettings(**settings),
            paths=paths,
            script_path=None,
            meta={"source": "pytest"},
        )

    return _make


@pytest.fixture
def run_source(make_ctx):
    """
    Executa código-fonte pelo GraphBuilder e retorna `(ctx, namespace)`.

    O script roda entre um par start/finish, como no modo de execução
    direta. Exceções do código observado propagam depois do cleanup; o
    contexto da última execução fica em `run_source.ctx`.
    """
    from prov_capture.core.builder import GraphBuilder, ScriptState, parse_source

    def _run(source: str, **settings):
        ctx = make_ctx(**settings)
        _run.ctx = ctx
        builder = GraphBuilder(ctx)
        namespace = {"__name__": "__main__"}
        state = ScriptState(ns=namespace, filename="<test>", script_num=0, source=source)
        try:
            builder.run_script(parse_source(source, filename="<test>"), state, name="test.py")
        except BaseException as e:
            builder.abort(e)
            raise
        return ctx, namespace

    return _run


@pytest.fixture
def write_script(tmp_path):
    """Grava um script em `tmp_path/scripts_src/<name>` e retorna o caminho."""

    def _write(name: str, source: str) -> Path:
        folder = tmp_path / "scripts_src"
        folder.mkdir(exist_ok=True)
        path = folder / name
        path.write_text(source, encoding="utf-8")
        return path

    return _write
