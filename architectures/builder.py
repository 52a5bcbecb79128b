# architectures/builder.py
from architectures.graph import ArchitectureGraph
from architectures.node import Node, Role
from utils.logger import get_logger

logger = get_logger("builder", logfile="builder.log")

# Handle standing for the network input; nodes fed by it have no parents.
INPUT = None


class GraphBuilder:
    """
    Creates every node of an ArchitectureGraph. Each call appends one node
    (tagged with its Role) and returns its integer id, which later calls use
    as a parent handle. Handles are never rewired once returned.
    """

    def __init__(self):
        self.graph = ArchitectureGraph()
        self._next_id = 0

    def _add(self, op_type, params, parents, role):
        node_id = self._next_id
        self._next_id += 1
        parents = [p for p in parents if p is not INPUT]
        self.graph.add_node(Node(node_id, op_type, params, parents, role))
        logger.debug("Added node %d op=%s role=%s parents=%s params=%s",
                     node_id, op_type, role.name, parents, params)
        return node_id

    def conv(self, x, in_channels, out_channels, kernel, stride=1, padding=0, dilation=1):
        return self._add('conv', {
            'in_channels': in_channels,
            'out_channels': out_channels,
            'kernel': kernel,
            'stride': stride,
            'padding': padding,
            'dilation': dilation,
        }, [x], Role.CONV_KERNEL)

    def bn(self, x, num_features):
        return self._add('bn', {'num_features': num_features}, [x], Role.NORM_SCALE)

    def relu(self, x):
        return self._add('relu', {}, [x], Role.ACTIVATION)

    def conv_bn(self, x, in_channels, out_channels, kernel, stride=1, padding=0, dilation=1):
        y = self.conv(x, in_channels, out_channels, kernel, stride, padding, dilation)
        return self.bn(y, out_channels)

    def conv_bn_relu(self, x, in_channels, out_channels, kernel, stride=1, padding=0, dilation=1):
        return self.relu(self.conv_bn(x, in_channels, out_channels, kernel, stride, padding, dilation))

    def maxpool(self, x, kernel, stride, padding=0):
        return self._add('maxpool', {'kernel': kernel, 'stride': stride, 'padding': padding},
                         [x], Role.POOL)

    def avgpool(self, x, kernel, stride):
        return self._add('avgpool', {'kernel': kernel, 'stride': stride}, [x], Role.POOL)

    def global_avgpool(self, x):
        return self._add('avgpool', {'global': True}, [x], Role.POOL)

    def zero_pad(self, x, in_channels, out_channels):
        if out_channels < in_channels:
            raise ValueError(f"Channel pad cannot shrink {in_channels} channels to {out_channels}")
        return self._add('zero_pad', {'in_channels': in_channels, 'out_channels': out_channels},
                         [x], Role.SHORTCUT_PAD)

    def flatten(self, x):
        return self._add('flatten', {}, [x], Role.RESHAPE)

    def linear(self, x, in_features, out_features):
        return self._add('linear', {'in_features': in_features, 'out_features': out_features},
                         [x], Role.CLASSIFIER)

    def branch(self, source, transform_fn, shortcut_fn):
        """
        Open a two-way branch at `source`. Both callables receive `source`
        and return the tail handle of their path.
        """
        main = transform_fn(source)
        skip = shortcut_fn(source)
        return main, skip

    def merge(self, main, skip):
        """Elementwise add of the two branch tails followed by one relu."""
        added = self._add('add', {}, [main, skip], Role.MERGE)
        return self.relu(added)

    def finish(self, output):
        self.graph.set_output(output)
        self.graph.assert_acyclic()
        logger.debug("Finished graph with %d nodes, output=%d", len(self.graph), output)
        return self.graph
