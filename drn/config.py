# drn/config.py
"""
Configuration types for the dilated residual network builder.

Every configuration axis is a closed Enum. String options coming from the
command line (or from older configs that use the single-letter symbols) are
parsed once by `NetConfig.from_options`; the builders only ever see enums.
"""
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

import torch


class ConfigurationError(ValueError):
    """Raised for any unsupported network configuration."""


class DatasetFamily(Enum):
    CIFAR10 = 'cifar10'
    CIFAR100 = 'cifar100'
    IMAGENET = 'imagenet'

    @property
    def is_small_image(self) -> bool:
        return self is not DatasetFamily.IMAGENET

    @property
    def num_classes(self) -> int:
        return {
            DatasetFamily.CIFAR10: 10,
            DatasetFamily.CIFAR100: 100,
            DatasetFamily.IMAGENET: 1000,
        }[self]


class NetVariant(Enum):
    A = 'A'
    B = 'B'
    C = 'C'


class ShortcutPolicy(Enum):
    ZERO_PAD = 'A'
    PROJECT_ON_MISMATCH = 'B'
    PROJECT_ALWAYS = 'C'


class BlockType(Enum):
    BASIC = 'basic'
    BOTTLENECK = 'bottleneck'
    DILATED_BASIC = 'dilated_basic'
    DILATED_BOTTLENECK = 'dilated_bottleneck'

    @property
    def is_dilated(self) -> bool:
        return self in (BlockType.DILATED_BASIC, BlockType.DILATED_BOTTLENECK)

    @property
    def expansion(self) -> int:
        return 4 if self in (BlockType.BOTTLENECK, BlockType.DILATED_BOTTLENECK) else 1


class BlockKind(IntEnum):
    """Dilation pattern of a dilated residual unit."""
    TRANSITION = 1   # standard conv, then dilated at full scale
    RAMP = 2         # half scale, then full scale
    STEADY = 3       # full scale throughout
    NO_RESIDUAL = 4  # full scale, no shortcut merge


@dataclass(frozen=True)
class DepthConfig:
    unit_counts: tuple
    final_width: int
    block: BlockType
    dilated_block: BlockType


# depth -> (units per stage, final feature width, block pair)
STAGE_CONFIG = {
    18: DepthConfig((2, 2, 2, 2), 512, BlockType.BASIC, BlockType.DILATED_BASIC),
    34: DepthConfig((3, 4, 6, 3), 512, BlockType.BASIC, BlockType.DILATED_BASIC),
    50: DepthConfig((3, 4, 6, 3), 2048, BlockType.BOTTLENECK, BlockType.DILATED_BOTTLENECK),
    101: DepthConfig((3, 4, 23, 3), 2048, BlockType.BOTTLENECK, BlockType.DILATED_BOTTLENECK),
    152: DepthConfig((3, 8, 36, 3), 2048, BlockType.BOTTLENECK, BlockType.DILATED_BOTTLENECK),
}

DTYPES = ('float32', 'float64', 'float16', 'bfloat16')

_DATASET_ALIASES = {
    'cifar10': DatasetFamily.CIFAR10,
    'small-10': DatasetFamily.CIFAR10,
    'cifar100': DatasetFamily.CIFAR100,
    'small-100': DatasetFamily.CIFAR100,
    'imagenet': DatasetFamily.IMAGENET,
    'full': DatasetFamily.IMAGENET,
}

_SHORTCUT_ALIASES = {
    'A': ShortcutPolicy.ZERO_PAD,
    'zero-pad': ShortcutPolicy.ZERO_PAD,
    'B': ShortcutPolicy.PROJECT_ON_MISMATCH,
    'projection-on-mismatch': ShortcutPolicy.PROJECT_ON_MISMATCH,
    'C': ShortcutPolicy.PROJECT_ALWAYS,
    'projection-always': ShortcutPolicy.PROJECT_ALWAYS,
}


def _parse(value, enum_cls, aliases, what):
    if isinstance(value, enum_cls):
        return value
    try:
        return aliases[value]
    except (KeyError, TypeError):
        raise ConfigurationError(f"Unsupported {what}: {value!r}") from None


def small_image_units(depth: int) -> int:
    """Residual units per stage for the CIFAR networks (6n + 2 layers)."""
    if not isinstance(depth, int) or depth < 8 or (depth - 2) % 6 != 0:
        raise ConfigurationError(
            f"Invalid depth {depth!r}: should be one of 20, 32, 44, 56, 110, 1202")
    return (depth - 2) // 6


def depth_config(depth: int) -> DepthConfig:
    try:
        return STAGE_CONFIG[depth]
    except (KeyError, TypeError):
        raise ConfigurationError(
            f"Invalid depth {depth!r}: supported depths are {sorted(STAGE_CONFIG)}") from None


@dataclass(frozen=True)
class NetConfig:
    dataset: DatasetFamily = DatasetFamily.CIFAR10
    depth: int = 20
    variant: NetVariant = NetVariant.A
    shortcut: ShortcutPolicy = ShortcutPolicy.PROJECT_ON_MISMATCH
    dtype: str = 'float32'
    device: str = 'cpu'
    seed: Optional[int] = None
    deterministic: bool = False

    def __post_init__(self):
        if not isinstance(self.dataset, DatasetFamily):
            raise ConfigurationError(f"Unsupported dataset family: {self.dataset!r}")
        if not isinstance(self.variant, NetVariant):
            raise ConfigurationError(f"Undefined netType: {self.variant!r}")
        if not isinstance(self.shortcut, ShortcutPolicy):
            raise ConfigurationError(f"Unsupported shortcut policy: {self.shortcut!r}")
        if self.dtype not in DTYPES:
            raise ConfigurationError(f"Unsupported dtype {self.dtype!r}, expected one of {DTYPES}")
        try:
            torch.device(self.device)
        except (RuntimeError, TypeError):
            raise ConfigurationError(f"Invalid device: {self.device!r}") from None
        if self.dataset.is_small_image:
            small_image_units(self.depth)
        else:
            depth_config(self.depth)

    @classmethod
    def from_options(cls, dataset='cifar10', depth=20, variant='A', shortcut='B', **kwargs):
        """Build a config from the string symbols used on the command line."""
        variant = _parse(variant, NetVariant, {v.value: v for v in NetVariant}, "netType")
        return cls(
            dataset=_parse(dataset, DatasetFamily, _DATASET_ALIASES, "dataset family"),
            depth=depth,
            variant=variant,
            shortcut=_parse(shortcut, ShortcutPolicy, _SHORTCUT_ALIASES, "shortcut policy"),
            **kwargs,
        )
