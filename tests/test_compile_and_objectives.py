# tests/test_compile_and_objectives.py
from drn.assembler import build_network
from drn.config import DatasetFamily, NetConfig
from objectives.cheap import count_parameters, estimate_flops, role_counts, summarize
import main as cli


def small_model():
    model, _ = build_network(NetConfig(dataset=DatasetFamily.CIFAR10, depth=8, seed=0))
    return model


def test_parameter_count():
    model = small_model()
    assert count_parameters(model) == sum(p.numel() for p in model.parameters())


def test_flops_counts_convs_and_linear():
    model = small_model()
    flops = estimate_flops(model, input_size=(1, 3, 32, 32))
    # stem conv alone: 3*3*3 mult-adds for each of 16*32*32 outputs
    assert flops > 27 * 16 * 32 * 32
    assert model.training


def test_summary():
    model = small_model()
    summary = summarize(model, input_size=(1, 3, 32, 32))
    assert summary['feature_width'] == 64
    assert summary['nodes'] == len(model.graph)
    assert summary['roles'] == role_counts(model.graph)
    assert summary['roles']['MERGE'] == 3
    assert summary['roles']['CLASSIFIER'] == 1
    assert summary['flops'] > 0


def test_cli_builds_network():
    assert cli.main(['--dataset', 'cifar100', '--depth', '8', '--flops']) == 0
    assert cli.main(['--dataset', 'full', '--depth', '18', '--variant', 'C']) == 0


def test_cli_rejects_bad_configuration():
    assert cli.main(['--dataset', 'imagenet', '--depth', '19']) == 2
    assert cli.main(['--dataset', 'imagenet', '--depth', '18', '--variant', 'D']) == 2
