# tests/core/session/test_scripts.py
"""
Testes do ScriptRegistry e da leitura de código-fonte.

Invariantes:
    - Script principal (ou console) é o número 0
    - Todo script registrado é copiado byte a byte para scripts/
    - Nomes repetidos não sobrescrevem cópias anteriores
"""

import pytest

try:
    from prov_capture.core.exceptions import SessionEnvironmentError
    from prov_capture.core.session import ScriptRegistry, read_source
except Exception as e:  # noqa: BLE001
    ScriptRegistry = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing script registry API. Implement:"
            "- src/prov_capture/core/session/scripts.py (ScriptRegistry, read_source)"
            f"Import error: {_IMPORT_ERR}"
        )


def test_register_numbers_and_copies(tmp_path, write_script):
    _require_imports()
    main = write_script("main.py", "x = 1\n")
    registry = ScriptRegistry(tmp_path / "session" / "scripts")

    entry = registry.register(main)
    assert entry.num == 0
    assert entry.name == "main.py"
    assert (tmp_path / "session" / "scripts" / "main.py").read_bytes() == main.read_bytes()

    other = tmp_path / "other" / "main.py"
    other.parent.mkdir()
    other.write_text("y = 2\n", encoding="utf-8")
    second = registry.register(other)
    assert second.num == 1
    assert second.copy_path.endswith("1-main.py")
    assert [e["num"] for e in registry.to_list()] == [0, 1]


def test_console_entry(tmp_path):
    _require_imports()
    registry = ScriptRegistry(tmp_path / "scripts")
    entry = registry.register_console()
    assert (entry.num, entry.name, entry.path) == (0, "console", None)


def test_missing_script_is_environment_error(tmp_path):
    _require_imports()
    registry = ScriptRegistry(tmp_path / "scripts")
    with pytest.raises(SessionEnvironmentError):
        registry.register(tmp_path / "nope.py")


def test_read_source_honours_encoding_cookie(tmp_path):
    _require_imports()
    path = tmp_path / "latin.py"
    path.write_bytes("# -*- coding: latin-1 -*-\nname = 'José'\n".encode("latin-1"))
    assert "José" in read_source(path)


def test_read_source_unknown_encoding(tmp_path):
    _require_imports()
    path = tmp_path / "bad.py"
    path.write_bytes(b"# -*- coding: no-such-codec -*-\nx = 1\n")
    with pytest.raises(SessionEnvironmentError):
        read_source(path)
