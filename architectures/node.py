# architectures/node.py
from enum import Enum


class Role(Enum):
    """Structural role of a node, fixed when the node is created."""
    CONV_KERNEL = 'conv_kernel'
    NORM_SCALE = 'norm_scale'
    ACTIVATION = 'activation'
    POOL = 'pool'
    SHORTCUT_PAD = 'shortcut_pad'
    MERGE = 'merge'
    RESHAPE = 'reshape'
    CLASSIFIER = 'classifier'


class Node:
    def __init__(self, node_id, op_type, params, parents, role):
        """
        node_id : int
        op_type : str  ('conv', 'bn', 'relu', 'maxpool', 'avgpool', 'zero_pad',
                        'add', 'flatten', 'linear')
        params  : dict (channels, kernel, stride, padding, dilation, etc.)
        parents : tuple[int]
        role    : Role
        """
        self.id = node_id
        self.op_type = op_type
        self.params = dict(params)
        self.parents = tuple(parents)
        self.role = role

    @property
    def out_channels(self):
        for key in ('out_channels', 'num_features', 'out_features'):
            if key in self.params:
                return self.params[key]
        return None

    def __repr__(self):
        return f"Node({self.id}, {self.op_type!r}, role={self.role.name}, parents={list(self.parents)})"
