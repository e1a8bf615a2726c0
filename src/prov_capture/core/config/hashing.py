# src/prov_capture/core/config/hashing.py
"""
Hashing canônico de configuração do prov_capture.

O hash gerado representa a identidade estrutural da configuração de captura
ativa e é gravado no manifest do documento de proveniência, permitindo
comparar execuções capturadas com parâmetros diferentes.

Política de hashing (v1):
    - Serialização JSON canônica (chaves ordenadas, separadores compactos)
    - Codificação UTF-8
    - SHA-256 (independente do algoritmo escolhido para arquivos)
"""

import hashlib
import json
from typing import Any, Dict


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera um hash determinístico da configuração de captura.

    Args:
        config (Dict[str, Any]): Configuração efetiva (ex.: `CaptureSettings.to_dict()`).

    Returns:
        str: Hash SHA-256 hexadecimal (64 caracteres).

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )

    canonical_json = json.dumps(
        config,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()
