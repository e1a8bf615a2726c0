# src/prov_capture/core/config/__init__.py

"""
Camada de configuração do prov_capture.

Este pacote contém as estruturas e utilitários responsáveis por carregar,
mesclar, validar e identificar as configurações de captura de proveniência.

A configuração no prov_capture é:
    - declarativa
    - determinística
    - validada antes de qualquer execução do script observado

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + overrides locais)
    - Resolução de configuração final via deep-merge determinístico
    - Validação dos parâmetros de captura (snapshot, janela de loops, hash)
    - Geração de hash canônico para o manifest do grafo

Limites explícitos:
    - Não executa scripts
    - Não cria diretórios de sessão
    - Não interage com o Builder diretamente
"""

from .settings import CaptureSettings, DEFAULT_SETTINGS, load_settings

__all__ = ["CaptureSettings", "DEFAULT_SETTINGS", "load_settings"]
