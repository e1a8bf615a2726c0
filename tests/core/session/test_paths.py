# tests/core/session/test_paths.py
"""
Testes do layout de diretórios da sessão.

Cobre:
- resolução da base: argumento > PROV_DIR > diretório temporário
- nome da sessão (script, console, sufixo de timestamp)
- flush recusado no diretório de trabalho
- criação idempotente dos subdiretórios
"""

import tempfile
from datetime import datetime
from pathlib import Path

import pytest

try:
    from prov_capture.core.session import (
        create_session_dirs,
        flush_session_dir,
        resolve_base_dir,
        session_dir_name,
    )
except Exception as e:  # noqa: BLE001
    resolve_base_dir = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing session paths API. Implement:"
            "- src/prov_capture/core/session/paths.py"
            f"Import error: {_IMPORT_ERR}"
        )


def test_base_dir_precedence(tmp_path, in_tmp_cwd):
    _require_imports()
    env = {"PROV_DIR": str(tmp_path / "from_env")}
    assert resolve_base_dir(tmp_path / "arg", environ=env) == (tmp_path / "arg").resolve()
    assert resolve_base_dir(None, environ=env) == (tmp_path / "from_env").resolve()
    assert resolve_base_dir(None, environ={}) == Path(tempfile.gettempdir()).resolve()
    assert resolve_base_dir(".", environ={}) == Path.cwd()
    assert resolve_base_dir(None, environ={"PROV_DIR": "."}) == Path.cwd()


def test_session_dir_name():
    _require_imports()
    now = datetime(2026, 1, 16, 9, 30, 5)
    assert session_dir_name("/x/analysis.py") == "prov_analysis"
    assert session_dir_name(None) == "prov_console"
    assert session_dir_name("/x/analysis.py", overwrite=False, now=now) == "prov_analysis_2026-01-16T09.30.05"


def test_create_is_idempotent_and_flush_clears_files(tmp_path):
    _require_imports()
    paths = create_session_dirs(tmp_path / "prov_demo")
    (paths.data / "1-x.json").write_text("{}", encoding="utf-8")
    (paths.root / "prov.json").write_text("{}", encoding="utf-8")
    (paths.root / "keep").mkdir()
    (paths.root / "keep" / "file.txt").write_text("kept", encoding="utf-8")

    assert create_session_dirs(paths.root) == paths
    assert flush_session_dir(paths) is True
    assert list(paths.data.iterdir()) == []
    assert not paths.document.exists()
    assert (paths.root / "keep" / "file.txt").exists()


def test_flush_refused_in_working_directory(tmp_path, monkeypatch):
    _require_imports()
    paths = create_session_dirs(tmp_path / "prov_demo")
    marker = paths.root / "prov.json"
    marker.write_text("{}", encoding="utf-8")

    monkeypatch.chdir(paths.root)
    assert flush_session_dir(paths) is False
    monkeypatch.chdir(paths.data)
    assert flush_session_dir(paths) is False
    assert marker.exists()
