# tests/core/config/test_merge.py
"""
Testes do deep-merge de configuração (deep_merge).

Os testes asseguram que:
- escalares são sobrescritos
- dicts são mesclados recursivamente
- listas são substituídas por inteiro
- conflitos de tipo são rejeitados com o caminho pontuado da chave
- valores nulos no override não apagam a camada anterior
- nenhum input é mutado

Limites explícitos:
    - Não valida leitura de arquivos
    - Não valida semântica dos parâmetros de captura
"""

import pytest

try:
    from prov_capture.core.config.merge import deep_merge
    from prov_capture.core.config.errors import ConfigTypeConflictError
except Exception as e:  # noqa: BLE001
    deep_merge = None
    ConfigTypeConflictError = None
    _IMPORT_ERR = e
else:
    _IMPORT_ERR = None


def _require_imports():
    if _IMPORT_ERR is not None:
        pytest.fail(
            "Missing config merge API. Implement:"
            "- src/prov_capture/core/config/merge.py (deep_merge)"
            "- src/prov_capture/core/config/errors.py (ConfigTypeConflictError)"
            f"Import error: {_IMPORT_ERR}"
        )


def test_merge_simple_override():
    """Escalares do override vencem e os inputs permanecem intactos."""
    _require_imports()
    base = {"snapshot_size": 0, "max_loops": 0}
    override = {"max_loops": 3}
    out = deep_merge(base, override)
    assert out == {"snapshot_size": 0, "max_loops": 3}
    assert base == {"snapshot_size": 0, "max_loops": 0}
    assert override == {"max_loops": 3}


def test_merge_nested_dict():
    _require_imports()
    base = {"capture": {"first_loop": 1, "max_loops": 0}}
    override = {"capture": {"max_loops": -1}}
    assert deep_merge(base, override) == {"capture": {"first_loop": 1, "max_loops": -1}}


def test_merge_list_override_total():
    _require_imports()
    base = {"ignore": {"names": ["a", "b"]}}
    override = {"ignore": {"names": ["c"]}}
    assert deep_merge(base, override) == {"ignore": {"names": ["c"]}}


def test_merge_type_conflict_raises():
    """
    Conflito de tipo (int vs str) é erro estrutural explícito.

    Invariantes:
        - Nenhum merge parcial é produzido
    """
    _require_imports()
    base = {"capture": {"max_loops": 0}}
    override = {"capture": {"max_loops": "all"}}
    with pytest.raises(ConfigTypeConflictError):
        deep_merge(base, override)


def test_merge_conflict_reports_dotted_key():
    _require_imports()
    base = {"capture": {"max_loops": 0}, "output": {"overwrite": True}}
    with pytest.raises(ConfigTypeConflictError, match=r"'output\.overwrite'"):
        deep_merge(base, {"output": {"overwrite": "no"}})


def test_merge_rejects_bool_for_int_key():
    """`bool` é subclasse de `int`, mas `max_loops: true` não é uma janela válida."""
    _require_imports()
    with pytest.raises(ConfigTypeConflictError, match=r"'capture\.max_loops'"):
        deep_merge({"capture": {"max_loops": 0}}, {"capture": {"max_loops": True}})
    with pytest.raises(ConfigTypeConflictError, match=r"'output\.display'"):
        deep_merge({"output": {"display": False}}, {"output": {"display": 1}})


def test_merge_null_override_keeps_previous_layer():
    """Chave vazia no YAML (`max_loops:`) equivale a não informada."""
    _require_imports()
    base = {"capture": {"first_loop": 2, "max_loops": 5}}
    assert deep_merge(base, {"capture": {"max_loops": None}}) == base
    assert deep_merge(base, {"capture": {"extra": None}}) == {"capture": {"first_loop": 2, "max_loops": 5, "extra": None}}
    assert deep_merge({"capture": {"extra": None}}, {"capture": {"extra": 3}}) == {"capture": {"extra": 3}}
