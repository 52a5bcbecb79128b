# tests/test_assembler.py
from architectures.node import Role
from drn.assembler import StageKind, assemble_graph, build_network, plan_network
from drn.config import (
    STAGE_CONFIG,
    BlockType,
    ConfigurationError,
    DatasetFamily,
    NetConfig,
    NetVariant,
)
import pytest
import torch
import torch.nn as nn

ALL_FULL = [(depth, variant) for depth in sorted(STAGE_CONFIG) for variant in NetVariant]


def classifier(graph):
    (linear,) = graph.nodes_with_role(Role.CLASSIFIER)
    return linear


@pytest.mark.parametrize("depth,variant", ALL_FULL)
def test_full_family_feature_width(depth, variant):
    config = NetConfig(dataset=DatasetFamily.IMAGENET, depth=depth, variant=variant)
    graph = assemble_graph(config)
    linear = classifier(graph)
    width = STAGE_CONFIG[depth].final_width
    assert linear.params == {'in_features': width, 'out_features': 1000}
    assert graph.output_channels(linear.parents[0]) == width


@pytest.mark.parametrize("dataset,classes", [
    (DatasetFamily.CIFAR10, 10),
    (DatasetFamily.CIFAR100, 100),
])
def test_small_family_head(dataset, classes):
    graph = assemble_graph(NetConfig(dataset=dataset, depth=20))
    assert classifier(graph).params == {'in_features': 64, 'out_features': classes}


def test_depth_50_plan():
    plan = plan_network(NetConfig(dataset=DatasetFamily.IMAGENET, depth=50))
    assert tuple(s.count for s in plan.stages) == (3, 4, 6, 3)
    assert plan.final_width == 2048
    assert [s.kind for s in plan.stages] == [StageKind.UNIFORM, StageKind.UNIFORM,
                                            StageKind.DILATED, StageKind.DILATED]
    assert [s.block for s in plan.stages] == [BlockType.BOTTLENECK] * 2 + [BlockType.DILATED_BOTTLENECK] * 2
    assert [(s.scale, s.first_dilated) for s in plan.stages[2:]] == [(2, True), (4, False)]
    assert plan.stem.kernel == 7 and plan.stem.stride == 2 and plan.stem.max_pool


def test_depth_20_small_plan():
    plan = plan_network(NetConfig(dataset=DatasetFamily.CIFAR10, depth=20))
    assert [s.count for s in plan.stages] == [3, 3, 3]
    assert plan.stages[0].kind is StageKind.UNIFORM
    assert plan.stages[0].block is BlockType.BASIC
    assert [s.width for s in plan.stages] == [16, 32, 64]
    graph = assemble_graph(NetConfig(dataset=DatasetFamily.CIFAR10, depth=20))
    assert len(graph.nodes_with_op('add')) == 9
    # 3x3 stem + two 3x3 convs per unit + two projections
    assert len(graph.nodes_with_role(Role.CONV_KERNEL)) == 1 + 18 + 2


def test_variant_b_c_tail():
    plan = plan_network(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18, variant=NetVariant.C))
    assert [s.width for s in plan.stages] == [16, 32, 64, 128, 256, 512, 512, 512]
    tail = plan.stages[-2:]
    assert [s.kind for s in tail] == [StageKind.TERMINAL] * 2
    assert [s.scale for s in tail] == [2, 1]
    assert not any(s.with_residual for s in tail)
    assert plan.stem.out_channels == 16 and plan.stem.stride == 1 and not plan.stem.max_pool

    adds_b = assemble_graph(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18, variant=NetVariant.B))
    adds_c = assemble_graph(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18, variant=NetVariant.C))
    assert len(adds_b.nodes_with_op('add')) - len(adds_c.nodes_with_op('add')) == 2


def test_no_residual_tail_has_no_merge_downstream():
    graph = assemble_graph(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18, variant=NetVariant.C))
    pool = graph.nodes_with_role(Role.POOL)[-1]
    last_relu = graph.nodes[pool.parents[0]]
    assert graph.nodes[last_relu.parents[0]].op_type == 'bn'
    last_add = graph.nodes_with_op('add')[-1]
    tail_nodes = [n for n in graph.nodes.values() if n.id > last_add.id + 1]
    assert all(n.op_type in ('conv', 'bn', 'relu', 'avgpool', 'flatten', 'linear') for n in tail_nodes)
    # two units of conv-bn-relu x2 after the last merge
    assert len([n for n in tail_nodes if n.op_type == 'conv']) == 4


@pytest.mark.parametrize("config", [
    NetConfig(dataset=DatasetFamily.CIFAR10, depth=20),
    NetConfig(dataset=DatasetFamily.IMAGENET, depth=50, variant=NetVariant.B),
    NetConfig.from_options(dataset='imagenet', depth=34, variant='A', shortcut='A'),
])
def test_graph_invariants(config):
    graph = assemble_graph(config)
    graph.assert_acyclic()
    for node in graph.nodes.values():
        consumers = graph.consumers(node.id)
        assert len(consumers) <= 2
        if node.op_type == 'add':
            assert len(node.parents) == 2
            (relu,) = consumers
            assert graph.nodes[relu].op_type == 'relu'
            skip = graph.nodes[node.parents[1]]
            if skip.op_type == 'relu':
                # identity shortcut: channel count unchanged across the unit
                assert graph.output_channels(skip.id) == graph.output_channels(node.id)
        if len(consumers) == 2:
            assert node.op_type in ('relu', 'maxpool')


def test_configuration_errors():
    with pytest.raises(ConfigurationError):
        NetConfig(dataset=DatasetFamily.IMAGENET, depth=19)
    with pytest.raises(ConfigurationError):
        NetConfig.from_options(dataset='imagenet', depth=50, variant='D')
    with pytest.raises(ConfigurationError):
        NetConfig(dataset=DatasetFamily.IMAGENET, depth=50, variant='D')
    with pytest.raises(ConfigurationError):
        NetConfig.from_options(dataset='mnist', depth=20)
    with pytest.raises(ConfigurationError):
        NetConfig.from_options(dataset='cifar10', depth=21)
    with pytest.raises(ConfigurationError):
        NetConfig.from_options(dataset='cifar10', depth=20, shortcut='D')
    with pytest.raises(ConfigurationError):
        NetConfig(dtype='int8')
    with pytest.raises(ConfigurationError):
        NetConfig(device='gpu0')
    with pytest.raises(ConfigurationError):
        build_network(NetConfig.from_options(dataset='cifar10', depth=8, device='gpu0'))


def test_aliases():
    config = NetConfig.from_options(dataset='small-100', depth=32, shortcut='projection-always')
    assert config.dataset is DatasetFamily.CIFAR100
    assert plan_network(config).stages[0].count == 5
    assert NetConfig.from_options(dataset='full', depth=18).dataset is DatasetFamily.IMAGENET


def test_build_network_forward_small():
    model, criterion = build_network(NetConfig(dataset=DatasetFamily.CIFAR10, depth=20, seed=0))
    assert isinstance(criterion, nn.CrossEntropyLoss)
    model.eval()
    with torch.no_grad():
        out = model(torch.randn(2, 3, 32, 32))
    assert out.shape == (2, 10)
    loss = criterion(out, torch.tensor([1, 3]))
    assert torch.isfinite(loss)


@pytest.mark.parametrize("variant,size", [(NetVariant.A, 64), (NetVariant.B, 32), (NetVariant.C, 32)])
def test_build_network_forward_imagenet(variant, size):
    model, _ = build_network(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18, variant=variant, seed=0))
    model.eval()
    with torch.no_grad():
        assert model(torch.randn(1, 3, size, size)).shape == (1, 1000)


def test_build_is_idempotent_with_same_seed():
    config = NetConfig(dataset=DatasetFamily.CIFAR10, depth=20, seed=7)
    m1, _ = build_network(config)
    m2, _ = build_network(config)
    assert m1.graph.signature() == m2.graph.signature()
    s1, s2 = m1.state_dict(), m2.state_dict()
    assert s1.keys() == s2.keys()
    for k in s1:
        assert torch.equal(s1[k], s2[k]), k

    m3, _ = build_network(NetConfig(dataset=DatasetFamily.CIFAR10, depth=20, seed=8))
    assert not torch.equal(m1.module_for(0).weight, m3.module_for(0).weight)


def test_build_casts_dtype():
    model, _ = build_network(NetConfig(dataset=DatasetFamily.CIFAR10, depth=8, dtype='float64', seed=0))
    assert all(p.dtype == torch.float64 for p in model.parameters())


def test_banner_reports_nominal_pool_size(caplog):
    with caplog.at_level('INFO', logger='assembler'):
        assemble_graph(NetConfig(dataset=DatasetFamily.IMAGENET, depth=18))
    assert 'DRN-18 ImageNet (A) (pooled at 28x28)' in caplog.text
