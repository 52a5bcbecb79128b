# tests/test_graph.py
from architectures.builder import INPUT, GraphBuilder
from architectures.graph import ArchitectureGraph
from architectures.node import Node, Role
import pytest


def build_residual_graph():
    b = GraphBuilder()
    x = b.conv_bn_relu(INPUT, 3, 8, kernel=3, padding=1)          # 0,1,2
    main, skip = b.branch(
        x,
        lambda src: b.conv_bn(b.conv_bn_relu(src, 8, 8, 3, padding=1), 8, 8, 3, padding=1),
        lambda src: src,
    )
    out = b.merge(main, skip)
    return b.finish(out), x, main, out


def test_builder_assigns_sequential_ids_and_roles():
    g, x, main, out = build_residual_graph()
    assert sorted(g.nodes) == list(range(len(g)))
    assert g.nodes[0].parents == ()
    assert g.nodes[0].role is Role.CONV_KERNEL
    assert g.nodes[1].role is Role.NORM_SCALE
    assert g.nodes[out].role is Role.ACTIVATION
    assert g.output_node == out


def test_merge_is_add_then_relu():
    g, x, main, out = build_residual_graph()
    add = g.nodes[out].parents[0]
    assert g.nodes[add].op_type == 'add'
    assert g.nodes[add].parents == (main, x)
    assert g.consumers(add) == [out]
    # branch point: main path conv and the add
    assert len(g.consumers(x)) == 2


def test_topological_sort_and_cycle_detection():
    g, *_ = build_residual_graph()
    order = g.topological_sort()
    pos = {nid: i for i, nid in enumerate(order)}
    for nid, node in g.nodes.items():
        for p in node.parents:
            assert pos[p] < pos[nid]

    broken = g.clone()
    broken.nodes[0].parents = (g.output_node,)
    with pytest.raises(RuntimeError):
        broken.assert_acyclic()
    # original untouched
    g.assert_acyclic()


def test_add_node_rejects_duplicates_and_unknown_parents():
    g = ArchitectureGraph()
    g.add_node(Node(0, 'relu', {}, parents=[], role=Role.ACTIVATION))
    with pytest.raises(AssertionError):
        g.add_node(Node(0, 'relu', {}, parents=[], role=Role.ACTIVATION))
    with pytest.raises(AssertionError):
        g.add_node(Node(1, 'relu', {}, parents=[7], role=Role.ACTIVATION))


def test_role_queries_and_output_channels():
    g, *_ = build_residual_graph()
    assert len(g.nodes_with_role(Role.CONV_KERNEL)) == 3
    assert len(g.nodes_with_op('bn')) == 3
    assert len(g.nodes_with_role(Role.MERGE)) == 1
    assert g.output_channels() == 8


def test_signature_matches_for_identical_builds():
    g1, *_ = build_residual_graph()
    g2, *_ = build_residual_graph()
    assert g1.signature() == g2.signature()
    assert "op=add" in repr(g1)


def test_zero_pad_rejects_shrinking():
    b = GraphBuilder()
    x = b.conv_bn_relu(INPUT, 3, 16, kernel=3, padding=1)
    with pytest.raises(ValueError):
        b.zero_pad(x, 16, 8)
