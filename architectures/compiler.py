# architectures/compiler.py
import torch.nn as nn
import torch.nn.functional as F
from utils.logger import get_logger

logger = get_logger("compiler", logfile="compiler.log")


class ChannelZeroPad(nn.Module):
    """Append zero-filled channels so the tensor reaches `out_channels`."""

    def __init__(self, in_channels, out_channels):
        super().__init__()
        self.in_channels = in_channels
        self.out_channels = out_channels

    def forward(self, x):
        # F.pad pads dims from the last one backwards: (W, W, H, H, C, C)
        return F.pad(x, (0, 0, 0, 0, 0, self.out_channels - self.in_channels))

    def extra_repr(self):
        return f"{self.in_channels}, {self.out_channels}"


class CompiledModel(nn.Module):
    def __init__(self, graph):
        super().__init__()
        self.graph = graph
        self.layers = nn.ModuleDict()
        logger.info("Initializing CompiledModel")
        self._build()
        self.order = self.graph.topological_sort()

    def _build(self):
        logger.info("Building modules for graph with %d nodes", len(self.graph.nodes))
        for node_id, node in self.graph.nodes.items():
            op = node.op_type.lower()
            key = str(node_id)
            try:
                self.layers[key] = self._make_module(node)
            except Exception:
                logger.exception("Failed creating module for node %s op=%s params=%s", key, op, node.params)
                raise
            logger.debug("Created %s node %s: %s", op, key, self.layers[key])

    @staticmethod
    def _make_module(node):
        op = node.op_type.lower()
        p = node.params
        if op == 'conv':
            # every conv is followed by batch norm, which makes a bias redundant
            return nn.Conv2d(
                p['in_channels'],
                p['out_channels'],
                kernel_size=p.get('kernel', 3),
                stride=p.get('stride', 1),
                padding=p.get('padding', 0),
                dilation=p.get('dilation', 1),
                bias=False,
            )
        if op == 'bn':
            return nn.BatchNorm2d(p['num_features'])
        if op == 'relu':
            return nn.ReLU(inplace=True)
        if op == 'maxpool':
            return nn.MaxPool2d(p['kernel'], stride=p['stride'], padding=p.get('padding', 0))
        if op == 'avgpool':
            if p.get('global'):
                return nn.AdaptiveAvgPool2d(1)
            return nn.AvgPool2d(p['kernel'], stride=p['stride'])
        if op == 'zero_pad':
            return ChannelZeroPad(p['in_channels'], p['out_channels'])
        if op == 'flatten':
            return nn.Flatten(1)
        if op == 'linear':
            return nn.Linear(p['in_features'], p['out_features'])
        if op == 'add':
            # add has no parameters
            return nn.Identity()
        raise ValueError(f"Unknown op_type '{op}' for node {node.id}")

    def module_for(self, node_id):
        return self.layers[str(node_id)]

    def forward(self, x):
        cache = {}

        for node_id in self.order:
            node = self.graph.nodes[node_id]
            op = node.op_type.lower()
            parents = node.parents

            # Gather inputs
            if not parents:
                inp = x
            else:
                missing = [p for p in parents if p not in cache]
                if missing:
                    logger.error("Node %s parent(s) %s not in cache. Available keys: %s", node_id, missing, list(cache.keys()))
                    raise KeyError(f"Missing parents for node {node_id}: {missing}")

                if len(parents) == 1:
                    inp = cache[parents[0]]
                elif op == 'add':
                    tensors = [cache[p] for p in parents]
                    try:
                        inp = tensors[0]
                        for t in tensors[1:]:
                            inp = inp + t
                    except RuntimeError:
                        logger.exception("Add merge failed for node %s with parent shapes: %s", node_id, [t.shape for t in tensors])
                        raise
                else:
                    raise ValueError(f"Node {node_id} op={op} cannot take {len(parents)} inputs")

            layer = self.layers[str(node_id)]
            try:
                out = layer(inp)
            except Exception:
                logger.exception("Layer forward failed at node %s op=%s inp_shape=%s", node_id, op, getattr(inp, 'shape', None))
                raise

            cache[node_id] = out

        if self.graph.output_node not in cache:
            logger.error("Output node %s not computed. Cache keys: %s", self.graph.output_node, list(cache.keys()))
            raise KeyError("Output not computed")

        return cache[self.graph.output_node]
