# drn/assembler.py
"""
Network assembler: resolves a NetConfig into a stage plan, wires the stem,
stages and head through a GraphBuilder, then compiles, initializes and casts
the result.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import torch
import torch.nn as nn

from architectures.builder import INPUT, GraphBuilder
from architectures.compiler import CompiledModel
from drn.config import (
    BlockType,
    ConfigurationError,
    DatasetFamily,
    NetConfig,
    NetVariant,
    depth_config,
    small_image_units,
)
from drn.stages import dilated_stage, terminal_dilated_stage, uniform_stage
from initialization.policy import apply_initialization
from utils.logger import get_logger

logger = get_logger("assembler", logfile="builder.log")


class StageKind(Enum):
    UNIFORM = 'uniform'
    DILATED = 'dilated'
    TERMINAL = 'terminal'


@dataclass(frozen=True)
class StagePlan:
    kind: StageKind
    block: BlockType
    width: int
    count: int
    stride: int = 1
    scale: int = 1
    first_dilated: bool = False
    with_residual: bool = True


@dataclass(frozen=True)
class StemPlan:
    out_channels: int
    kernel: int
    stride: int
    max_pool: bool


@dataclass(frozen=True)
class NetPlan:
    name: str
    stem: StemPlan
    stages: Tuple[StagePlan, ...]
    final_width: int
    num_classes: int
    # spatial size the head pools over at the nominal input resolution
    pool_size: int


def _small_image_plan(config):
    n = small_image_units(config.depth)
    stages = (
        StagePlan(StageKind.UNIFORM, BlockType.BASIC, 16, n),
        StagePlan(StageKind.DILATED, BlockType.DILATED_BASIC, 32, n, scale=2, first_dilated=True),
        StagePlan(StageKind.DILATED, BlockType.DILATED_BASIC, 64, n, scale=4, first_dilated=False),
    )
    family = 'CIFAR-10' if config.dataset is DatasetFamily.CIFAR10 else 'CIFAR-100'
    return NetPlan(
        name=f"DRN-{config.depth} {family}",
        stem=StemPlan(16, kernel=3, stride=1, max_pool=False),
        stages=stages,
        final_width=64,
        num_classes=config.dataset.num_classes,
        pool_size=32,
    )


def _imagenet_body(cfg):
    counts = cfg.unit_counts
    return (
        StagePlan(StageKind.DILATED, cfg.dilated_block, 256, counts[2], scale=2, first_dilated=True),
        StagePlan(StageKind.DILATED, cfg.dilated_block, 512, counts[3], scale=4, first_dilated=False),
    )


def _imagenet_plan(config):
    cfg = depth_config(config.depth)
    counts = cfg.unit_counts

    if config.variant is NetVariant.A:
        stem = StemPlan(64, kernel=7, stride=2, max_pool=True)
        stages = (
            StagePlan(StageKind.UNIFORM, cfg.block, 64, counts[0]),
            StagePlan(StageKind.UNIFORM, cfg.block, 128, counts[1], stride=2),
        ) + _imagenet_body(cfg)
    elif config.variant in (NetVariant.B, NetVariant.C):
        with_residual = config.variant is NetVariant.B
        stem = StemPlan(16, kernel=7, stride=1, max_pool=False)
        stages = (
            StagePlan(StageKind.UNIFORM, BlockType.BASIC, 16, 1),
            StagePlan(StageKind.UNIFORM, BlockType.BASIC, 32, 1, stride=2),
            StagePlan(StageKind.UNIFORM, cfg.block, 64, counts[0], stride=2),
            StagePlan(StageKind.UNIFORM, cfg.block, 128, counts[1], stride=2),
        ) + _imagenet_body(cfg) + (
            StagePlan(StageKind.TERMINAL, cfg.dilated_block, 512, 1, scale=2, with_residual=with_residual),
            StagePlan(StageKind.TERMINAL, cfg.dilated_block, 512, 1, scale=1, with_residual=with_residual),
        )
    else:
        raise ConfigurationError(f"Undefined netType: {config.variant!r}")

    return NetPlan(
        name=f"DRN-{config.depth} ImageNet ({config.variant.value})",
        stem=stem,
        stages=stages,
        final_width=cfg.final_width,
        num_classes=config.dataset.num_classes,
        pool_size=28,
    )


def plan_network(config: NetConfig) -> NetPlan:
    """Resolve the stage plan for a configuration, without building anything."""
    if config.dataset in (DatasetFamily.CIFAR10, DatasetFamily.CIFAR100):
        return _small_image_plan(config)
    if config.dataset is DatasetFamily.IMAGENET:
        return _imagenet_plan(config)
    raise ConfigurationError(f"invalid dataset: {config.dataset!r}")


def _build_stage(builder, x, channels, stage, policy):
    if stage.kind is StageKind.UNIFORM:
        return uniform_stage(builder, x, channels, stage.block, stage.width, stage.count,
                             stage.stride, policy)
    if stage.kind is StageKind.DILATED:
        return dilated_stage(builder, x, channels, stage.block, stage.width, stage.count,
                             stage.scale, stage.first_dilated, policy)
    if stage.kind is StageKind.TERMINAL:
        return terminal_dilated_stage(builder, x, channels, stage.block, stage.width, stage.count,
                                      stage.scale, stage.with_residual, policy)
    raise ConfigurationError(f"Unsupported stage kind: {stage.kind!r}")


def assemble_graph(config: NetConfig, plan: Optional[NetPlan] = None):
    """Wire stem -> stages -> head and return the finished ArchitectureGraph."""
    plan = plan or plan_network(config)
    logger.info(" | %s (pooled at %dx%d)", plan.name, plan.pool_size, plan.pool_size)

    builder = GraphBuilder()
    stem = plan.stem
    x = builder.conv_bn_relu(INPUT, 3, stem.out_channels, kernel=stem.kernel,
                             stride=stem.stride, padding=stem.kernel // 2)
    if stem.max_pool:
        x = builder.maxpool(x, kernel=3, stride=2, padding=1)

    channels = stem.out_channels
    for i, stage in enumerate(plan.stages, start=1):
        channels, x = _build_stage(builder, x, channels, stage, config.shortcut)
        logger.debug("stage %d (%s) done: channels=%d", i, stage.kind.value, channels)

    assert channels == plan.final_width, \
        f"Body produced {channels} channels, expected {plan.final_width}"

    x = builder.global_avgpool(x)
    x = builder.flatten(x)
    x = builder.linear(x, channels, plan.num_classes)
    graph = builder.finish(x)
    logger.info("Assembled graph: %d nodes, %d stages, feature width %d",
                len(graph), len(plan.stages), channels)
    return graph


def build_network(config: NetConfig):
    """
    Build, initialize and cast a network. Returns ``(model, criterion)``
    where ``model.graph`` is the architecture graph it was compiled from.
    """
    if config.seed is not None:
        torch.manual_seed(config.seed)
    if config.deterministic:
        torch.backends.cudnn.deterministic = True
        torch.backends.cudnn.benchmark = False

    graph = assemble_graph(config)
    model = CompiledModel(graph)

    generator = None
    if config.seed is not None:
        generator = torch.Generator().manual_seed(config.seed)
    apply_initialization(model, generator=generator)

    model = model.to(device=config.device, dtype=getattr(torch, config.dtype))
    criterion = nn.CrossEntropyLoss().to(config.device)
    return model, criterion
