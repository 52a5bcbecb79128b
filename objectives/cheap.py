# objectives/cheap.py
from collections import Counter

import torch
from utils.logger import get_logger

logger = get_logger("cheap_obj", logfile="summary.log")


def count_parameters(model):
    total = sum(p.numel() for p in model.parameters())
    trainable = sum(p.numel() for p in model.parameters() if p.requires_grad)
    logger.info("Parameter count: total=%d trainable=%d", total, trainable)
    return total


def estimate_flops(model, input_size=(1, 3, 32, 32), device='cpu'):
    """
    Rough flop estimator using forward hooks for Conv2d and Linear.
    Counts multiply-adds as 1 op. Dilation does not change the count.
    """
    hooks = []
    flops = {'total': 0}
    param = next(model.parameters())

    def conv_hook(self, inp, out):
        out_c, out_h, out_w = out.shape[1], out.shape[2], out.shape[3]
        kernel_ops = self.kernel_size[0] * self.kernel_size[1] * (self.in_channels // self.groups)
        flops['total'] += kernel_ops * out_c * out_h * out_w

    def linear_hook(self, inp, out):
        flops['total'] += self.weight.numel()

    for module in model.modules():
        if isinstance(module, torch.nn.Conv2d):
            hooks.append(module.register_forward_hook(conv_hook))
        elif isinstance(module, torch.nn.Linear):
            hooks.append(module.register_forward_hook(linear_hook))

    was_training = model.training
    model.eval()
    try:
        with torch.no_grad():
            fake = torch.zeros(*input_size, dtype=param.dtype, device=device)
            model(fake)
    except Exception:
        logger.exception("Failed to run flop estimation forward pass")
        raise
    finally:
        for h in hooks:
            h.remove()
        model.train(was_training)
    logger.info("Estimated FLOPs (approx, mult-adds): %d", flops['total'])
    return flops['total']


def role_counts(graph):
    """Number of graph nodes per structural role name."""
    return dict(Counter(n.role.name for n in graph.nodes.values()))


def summarize(model, input_size=None):
    graph = model.graph
    summary = {
        'nodes': len(graph),
        'params': count_parameters(model),
        'feature_width': graph.output_channels(graph.nodes[graph.output_node].parents[0]),
        'roles': role_counts(graph),
    }
    if input_size is not None:
        summary['flops'] = estimate_flops(model, input_size=input_size,
                                          device=next(model.parameters()).device)
    return summary
