# architectures/graph.py
import copy
from collections import defaultdict, deque


class ArchitectureGraph:
    def __init__(self):
        self.nodes = {}          # node_id -> Node
        self.output_node = None

    def add_node(self, node):
        assert node.id not in self.nodes, f"Duplicate node id {node.id}"
        for p in node.parents:
            assert p in self.nodes, f"Unknown parent {p} for node {node.id}"
        self.nodes[node.id] = node

    def set_output(self, node_id):
        assert node_id in self.nodes, "Output node must exist"
        self.output_node = node_id

    def consumers(self, node_id):
        """Ids of every node that reads `node_id`, in id order."""
        return [nid for nid, n in sorted(self.nodes.items()) if node_id in n.parents]

    def nodes_with_role(self, role):
        return [n for _, n in sorted(self.nodes.items()) if n.role is role]

    def nodes_with_op(self, op_type):
        return [n for _, n in sorted(self.nodes.items()) if n.op_type == op_type]

    def topological_sort(self):
        """
        Kahn's algorithm for topological sorting.
        Raises AssertionError if a cycle exists.
        """
        indegree = defaultdict(int)
        children = defaultdict(list)

        # Build graph
        for node_id, node in self.nodes.items():
            for p in node.parents:
                children[p].append(node_id)
                indegree[node_id] += 1

        # Nodes with no incoming edges
        queue = deque([nid for nid in self.nodes if indegree[nid] == 0])

        order = []
        while queue:
            u = queue.popleft()
            order.append(u)
            for v in children[u]:
                indegree[v] -= 1
                if indegree[v] == 0:
                    queue.append(v)

        assert len(order) == len(self.nodes), "Graph has a cycle!"
        return order

    def assert_acyclic(self):
        """
        Explicit validation hook for the builder / compiler.
        """
        try:
            self.topological_sort()
        except AssertionError:
            raise RuntimeError("Invalid architecture: cycle detected")

    def output_channels(self, node_id=None):
        """Channel count produced by `node_id` (default: the output node),
        walking back through parameter-free nodes (relu, add, pooling)."""
        nid = self.output_node if node_id is None else node_id
        assert nid is not None, "Output node not set"
        while True:
            node = self.nodes[nid]
            if node.out_channels is not None:
                return node.out_channels
            if not node.parents:
                return None
            nid = node.parents[0]

    def signature(self):
        """Hashable description of the topology, used to compare builds."""
        return tuple(
            (nid, n.op_type, n.role.name, n.parents, tuple(sorted(n.params.items())))
            for nid, n in sorted(self.nodes.items())
        )

    def clone(self):
        """
        Return a deep copy of the ArchitectureGraph.
        """
        return copy.deepcopy(self)

    def __len__(self):
        return len(self.nodes)

    def __repr__(self):
        lines = ["ArchitectureGraph:"]
        for nid in sorted(self.nodes):
            n = self.nodes[nid]
            lines.append(
                f"  Node {nid}: op={n.op_type}, role={n.role.name}, parents={list(n.parents)}"
            )
        lines.append(f"  Output node: {self.output_node}")
        return "\n".join(lines)
