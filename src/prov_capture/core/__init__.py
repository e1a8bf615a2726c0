# src/prov_capture/core/__init__.py
"""
Core do prov_capture.

Componentes (das folhas para a raiz):
    - snapshot  → digests plugáveis e artefatos de snapshot
    - graph     → nós, arestas, escopos e pilha de frames
    - iotrace   → nós File/Device para arquivos e figuras
    - builder   → execução instrumentada e montagem do grafo
    - serialize → documento de intercâmbio e tabelas de debug
    - session   → contexto, diretórios e ciclo de vida da sessão
    - config    → configuração de captura

Princípios fundamentais:
    - O único mutador do grafo é o Builder
    - Falhas de captura nunca alteram o comportamento do script observado
    - Erros do script observado propagam inalterados
"""
