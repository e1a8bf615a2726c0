# src/prov_capture/core/config/merge.py
"""
Deep-merge das camadas de configuração de captura.

As camadas (defaults do pacote, arquivo do projeto, overrides locais)
chegam com a forma `{"capture": {...}, "output": {...}}` e são combinadas
chave a chave.

Política de merge (v1):
    - dict → merge recursivo por chave
    - list → sobrescrita total (sem merge elemento a elemento)
    - escalar → sobrescrita direta
    - valor nulo no override (`max_loops:` vazio no YAML) → chave não
      informada, a camada anterior prevalece
    - valor nulo na base → aceita qualquer tipo do override
    - conflito de tipos → erro estrutural com o caminho pontuado da chave
      (ex.: `capture.max_loops`)

Invariantes:
    - A mesma entrada sempre produz a mesma saída
    - Nenhum input é mutado durante o processo
    - `bool` não é aceito onde a camada anterior tem `int` (e vice-versa),
      apesar de `bool` ser subclasse de `int`
"""

from copy import deepcopy
from typing import Any, Dict

from .errors import ConfigTypeConflictError


def _same_kind(base_value: Any, override_value: Any) -> bool:
    if base_value is None:
        return True
    return type(base_value) is type(override_value)


def _merge(base: Dict[str, Any], override: Dict[str, Any], prefix: str) -> Dict[str, Any]:
    result: Dict[str, Any] = deepcopy(base)

    for key, override_value in override.items():
        path = f"{prefix}{key}"
        if override_value is None:
            result.setdefault(key, None)
            continue
        if key not in result:
            result[key] = deepcopy(override_value)
            continue

        base_value = result[key]

        if isinstance(base_value, dict) and isinstance(override_value, dict):
            result[key] = _merge(base_value, override_value, f"{path}.")
            continue

        if isinstance(override_value, list) and (base_value is None or isinstance(base_value, list)):
            result[key] = deepcopy(override_value)
            continue

        if not _same_kind(base_value, override_value):
            raise ConfigTypeConflictError(
                f"Conflito de tipo em '{path}': "
                f"{type(base_value).__name__} vs {type(override_value).__name__} "
                f"(valor recebido: {override_value!r})"
            )

        result[key] = deepcopy(override_value)

    return result


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Combina uma camada de configuração sobre a anterior.

    Raises:
        ConfigTypeConflictError: Raiz não-dict ou conflito de tipo em alguma chave.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )
    return _merge(base, override, "")
