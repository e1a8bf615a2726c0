# src/prov_capture/core/config/errors.py
"""
Exceções canônicas de arquivos de configuração do prov_capture.

Este módulo define a hierarquia de exceções levantadas durante o
carregamento e o merge de arquivos de configuração (YAML/JSON).

Parâmetros de captura inválidos (janela de loops, tamanho de snapshot,
algoritmo de hash) NÃO pertencem a esta hierarquia: são reportados como
`ConfigurationError` (ver `core.exceptions`).

Invariantes:
    - Todas as exceções de arquivo de configuração herdam de `ConfigError`
    - Nenhuma exceção representa erro do script observado
"""


class ConfigError(Exception):
    """
    Exceção base para erros de arquivos de configuração do prov_capture.

    Limites explícitos:
        - Não representa erro do script observado
        - Não representa falha de captura
    """


class SettingsFileNotFoundError(ConfigError):
    """
    Exceção levantada quando um arquivo de configuração explicitamente
    informado não existe.

    Decisões arquiteturais:
        - Arquivos de defaults informados pelo chamador são obrigatórios
        - Overrides locais ausentes são tolerados pelo loader
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo de configuração
    não é suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"capture": {"max_loops": 0}}
        - override: {"capture": {"max_loops": "all"}}

    Invariantes:
        - Nenhum merge parcial é produzido em caso de conflito
    """
