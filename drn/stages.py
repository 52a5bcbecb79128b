# drn/stages.py
from drn.blocks import DILATED_BLOCKS, STRIDED_BLOCKS
from drn.config import BlockKind, BlockType, ConfigurationError, ShortcutPolicy
from utils.logger import get_logger

logger = get_logger("stages", logfile="builder.log")


def _lookup(block, dilated, stage):
    if not isinstance(block, BlockType) or block.is_dilated is not dilated:
        raise ConfigurationError(f"{stage} does not accept {block!r} blocks")
    return (DILATED_BLOCKS if dilated else STRIDED_BLOCKS)[block]


def _check_count(count):
    if not isinstance(count, int) or count < 1:
        raise ConfigurationError(f"A stage needs at least one unit, got {count!r}")


def dilated_kinds(count, first_dilated):
    first = BlockKind.TRANSITION if first_dilated else BlockKind.RAMP
    return [first] + [BlockKind.STEADY] * (count - 1)


def terminal_kinds(count, with_residual):
    return [BlockKind.STEADY if with_residual else BlockKind.NO_RESIDUAL] * count


def uniform_stage(builder, x, channels, block, width, count, stride=1, policy=ShortcutPolicy.PROJECT_ON_MISMATCH):
    """`count` strided units; only the first one gets `stride`."""
    _check_count(count)
    ctor = _lookup(block, False, "uniform stage")
    logger.debug("uniform stage: %s x%d width=%d stride=%d", block.value, count, width, stride)
    for i in range(count):
        channels, x = ctor(builder, x, channels, width, stride if i == 0 else 1, policy)
    return channels, x


def _dilated_run(builder, x, channels, block, width, scale, kinds, policy):
    ctor = _lookup(block, True, "dilated stage")
    for kind in kinds:
        channels, x = ctor(builder, x, channels, width, scale, kind, policy)
    return channels, x


def dilated_stage(builder, x, channels, block, width, count, scale, first_dilated, policy=ShortcutPolicy.PROJECT_ON_MISMATCH):
    _check_count(count)
    logger.debug("dilated stage: %s x%d width=%d scale=%d first=%s",
                 block.value, count, width, scale, first_dilated)
    return _dilated_run(builder, x, channels, block, width, scale,
                        dilated_kinds(count, first_dilated), policy)


def terminal_dilated_stage(builder, x, channels, block, width, count, scale, with_residual, policy=ShortcutPolicy.PROJECT_ON_MISMATCH):
    _check_count(count)
    logger.debug("terminal dilated stage: %s x%d width=%d scale=%d residual=%s",
                 block.value, count, width, scale, with_residual)
    return _dilated_run(builder, x, channels, block, width, scale,
                        terminal_kinds(count, with_residual), policy)
