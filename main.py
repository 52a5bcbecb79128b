# main.py
import argparse

from drn.assembler import build_network
from drn.config import DTYPES, ConfigurationError, NetConfig
from objectives.cheap import summarize
from utils.logger import get_logger

logger = get_logger("main", logfile="main.log")

INPUT_SIZES = {
    'cifar10': (1, 3, 32, 32),
    'cifar100': (1, 3, 32, 32),
    'imagenet': (1, 3, 224, 224),
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Build a dilated residual network")
    parser.add_argument('--dataset', default='cifar10',
                        help="cifar10 | cifar100 | imagenet (aliases: small-10, small-100, full)")
    parser.add_argument('--depth', type=int, default=20)
    parser.add_argument('--variant', default='A', help="ImageNet netType: A | B | C")
    parser.add_argument('--shortcut', default='B',
                        help="A (zero-pad) | B (projection-on-mismatch) | C (projection-always)")
    parser.add_argument('--dtype', default='float32', choices=DTYPES)
    parser.add_argument('--device', default='cpu')
    parser.add_argument('--seed', type=int, default=0)
    parser.add_argument('--deterministic', action='store_true')
    parser.add_argument('--flops', action='store_true', help="also estimate mult-adds")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        config = NetConfig.from_options(
            dataset=args.dataset,
            depth=args.depth,
            variant=args.variant,
            shortcut=args.shortcut,
            dtype=args.dtype,
            device=args.device,
            seed=args.seed,
            deterministic=args.deterministic,
        )
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    model, criterion = build_network(config)
    input_size = INPUT_SIZES[config.dataset.value] if args.flops else None
    summary = summarize(model, input_size=input_size)
    logger.info("Nodes=%d params=%d feature_width=%d criterion=%s",
                summary['nodes'], summary['params'], summary['feature_width'],
                type(criterion).__name__)
    for role, count in sorted(summary['roles'].items()):
        logger.info("  %-14s %d", role, count)
    if 'flops' in summary:
        logger.info("FLOPs (mult-adds) at %s: %d", input_size, summary['flops'])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
