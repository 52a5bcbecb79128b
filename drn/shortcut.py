# drn/shortcut.py
from drn.config import ConfigurationError, ShortcutPolicy
from utils.logger import get_logger

logger = get_logger("shortcut", logfile="builder.log")


def uses_projection(in_channels, out_channels, policy):
    if policy is ShortcutPolicy.PROJECT_ALWAYS:
        return True
    if policy is ShortcutPolicy.PROJECT_ON_MISMATCH:
        return in_channels != out_channels
    if policy is ShortcutPolicy.ZERO_PAD:
        return False
    raise ConfigurationError(f"Unsupported shortcut policy: {policy!r}")


def shortcut(builder, source, in_channels, out_channels, stride, policy):
    """
    Build the skip path of a residual unit starting at `source` and return
    its tail handle. Identity shortcuts add no nodes and return `source`.
    """
    if uses_projection(in_channels, out_channels, policy):
        logger.debug("Projection shortcut %d->%d stride=%d", in_channels, out_channels, stride)
        return builder.conv_bn(source, in_channels, out_channels, kernel=1, stride=stride)

    if in_channels == out_channels and stride == 1:
        return source

    if out_channels < in_channels:
        raise ConfigurationError(
            f"Shortcut policy {policy.name} cannot reduce {in_channels} channels to {out_channels}")

    # strided, zero-padded identity
    logger.debug("Zero-padded shortcut %d->%d stride=%d", in_channels, out_channels, stride)
    out = source
    if stride > 1:
        out = builder.avgpool(out, kernel=1, stride=stride)
    if out_channels != in_channels:
        out = builder.zero_pad(out, in_channels, out_channels)
    return out
