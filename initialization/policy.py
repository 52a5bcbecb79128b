# initialization/policy.py
import math

import torch

from architectures.node import Role
from utils.logger import get_logger

logger = get_logger("init_policy", logfile="builder.log")


def conv_std(conv):
    """Fan-out scaled std: sqrt(2 / (kH * kW * out_channels))."""
    kh, kw = conv.kernel_size
    return math.sqrt(2.0 / (kh * kw * conv.out_channels))


@torch.no_grad()
def _init_conv(conv, generator):
    conv.weight.normal_(0.0, conv_std(conv), generator=generator)
    if conv.bias is not None:
        conv.bias.zero_()


@torch.no_grad()
def _init_norm(bn):
    bn.weight.fill_(1.0)
    bn.bias.zero_()


@torch.no_grad()
def _init_classifier(linear):
    linear.bias.zero_()


_RULES = {
    Role.CONV_KERNEL: lambda m, g: _init_conv(m, g),
    Role.NORM_SCALE: lambda m, g: _init_norm(m),
    Role.CLASSIFIER: lambda m, g: _init_classifier(m),
}


def apply_initialization(model, generator=None):
    """
    Initialize every parameterised node of a CompiledModel by its role.
    Returns the number of nodes initialized per role.
    """
    counts = {role: 0 for role in _RULES}
    for node_id in sorted(model.graph.nodes):
        role = model.graph.nodes[node_id].role
        rule = _RULES.get(role)
        if rule is None:
            continue
        rule(model.module_for(node_id), generator)
        counts[role] += 1

    logger.info("Initialized %s",
                ", ".join(f"{counts[r]} {r.value}" for r in _RULES))
    return counts
