# drn/__init__.py
from drn.assembler import assemble_graph, build_network, plan_network
from drn.config import (
    BlockKind,
    BlockType,
    ConfigurationError,
    DatasetFamily,
    NetConfig,
    NetVariant,
    ShortcutPolicy,
    STAGE_CONFIG,
)

__all__ = [
    'assemble_graph', 'build_network', 'plan_network',
    'BlockKind', 'BlockType', 'ConfigurationError', 'DatasetFamily',
    'NetConfig', 'NetVariant', 'ShortcutPolicy', 'STAGE_CONFIG',
]
