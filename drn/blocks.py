# drn/blocks.py
"""
Residual unit constructors.

Each constructor appends one unit to the builder and returns
``(next_channels, handle)``: the channel count the unit produces, which the
caller feeds to the next unit, and the unit's output handle.
"""
from drn.config import BlockKind, BlockType, ConfigurationError
from drn.shortcut import shortcut
from utils.logger import get_logger

logger = get_logger("blocks", logfile="builder.log")


def _dilations(kind, scale):
    """(first, second) dilation of the spatial convs for a dilated unit kind."""
    if not isinstance(scale, int) or scale < 1:
        raise ConfigurationError(f"Dilation scale must be a positive integer, got {scale!r}")
    if kind is BlockKind.TRANSITION:
        return 1, scale
    if kind is BlockKind.RAMP:
        if scale % 2:
            raise ConfigurationError(f"Ramp unit needs an even scale, got {scale}")
        return scale // 2, scale
    if kind in (BlockKind.STEADY, BlockKind.NO_RESIDUAL):
        return scale, scale
    raise ConfigurationError(f"Unsupported dilated block kind: {kind!r}")


def _residual(builder, x, transform, in_channels, out_channels, stride, policy):
    main, skip = builder.branch(
        x,
        transform,
        lambda src: shortcut(builder, src, in_channels, out_channels, stride, policy),
    )
    return builder.merge(main, skip)


def basic(builder, x, in_channels, n, stride, policy):
    def transform(src):
        y = builder.conv_bn_relu(src, in_channels, n, kernel=3, stride=stride, padding=1)
        return builder.conv_bn(y, n, n, kernel=3, stride=1, padding=1)

    logger.debug("basic block %d->%d stride=%d", in_channels, n, stride)
    return n, _residual(builder, x, transform, in_channels, n, stride, policy)


def bottleneck(builder, x, in_channels, n, stride, policy):
    out_channels = n * BlockType.BOTTLENECK.expansion

    def transform(src):
        y = builder.conv_bn_relu(src, in_channels, n, kernel=1)
        y = builder.conv_bn_relu(y, n, n, kernel=3, stride=stride, padding=1)
        return builder.conv_bn(y, n, out_channels, kernel=1)

    logger.debug("bottleneck block %d->%d stride=%d", in_channels, out_channels, stride)
    return out_channels, _residual(builder, x, transform, in_channels, out_channels, stride, policy)


def dilated_basic(builder, x, in_channels, n, scale, kind, policy):
    first, second = _dilations(kind, scale)

    def transform(src):
        y = builder.conv_bn_relu(src, in_channels, n, kernel=3, padding=first, dilation=first)
        return builder.conv_bn(y, n, n, kernel=3, padding=second, dilation=second)

    logger.debug("dilated basic block %d->%d scale=%d kind=%s", in_channels, n, scale, kind.name)
    if kind is BlockKind.NO_RESIDUAL:
        return n, builder.relu(transform(x))
    return n, _residual(builder, x, transform, in_channels, n, 1, policy)


def dilated_bottleneck(builder, x, in_channels, n, scale, kind, policy):
    out_channels = n * BlockType.DILATED_BOTTLENECK.expansion
    # the single spatial conv takes the first dilation of the pattern
    dilation, _ = _dilations(kind, scale)

    def transform(src):
        y = builder.conv_bn_relu(src, in_channels, n, kernel=1)
        y = builder.conv_bn_relu(y, n, n, kernel=3, padding=dilation, dilation=dilation)
        return builder.conv_bn(y, n, out_channels, kernel=1)

    logger.debug("dilated bottleneck block %d->%d scale=%d kind=%s",
                 in_channels, out_channels, scale, kind.name)
    if kind is BlockKind.NO_RESIDUAL:
        return out_channels, builder.relu(transform(x))
    return out_channels, _residual(builder, x, transform, in_channels, out_channels, 1, policy)


STRIDED_BLOCKS = {
    BlockType.BASIC: basic,
    BlockType.BOTTLENECK: bottleneck,
}

DILATED_BLOCKS = {
    BlockType.DILATED_BASIC: dilated_basic,
    BlockType.DILATED_BOTTLENECK: dilated_bottleneck,
}
