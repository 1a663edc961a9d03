import pytest

from tinyml_pipeline import ConfigurationError, Layer, LayerParameters, NeuronState

from utils.pipeline_tester import ComponentTester, floats, small_config

WEIGHTS = [
    [1.0, 1.0, 1.0, 1.0],
    [0.5, -0.5, 0.5, -0.5],
    [-1.0, 0.0, 0.0, 2.0],
]
BIASES = [0.0, 0.25, -0.5]
INPUTS = [0.5, -0.5, 0.25, 0.25]


def make_layer(batch_size=2, pipeline_stages=0, index=0, weights=WEIGHTS, biases=BIASES):
    config = small_config()
    params = LayerParameters.from_floats(weights, biases, config)
    return Layer(params, config, batch_size=batch_size, pipeline_stages=pipeline_stages, index=index)


@pytest.mark.parametrize("stages", [0, 2])
def test_output_index_matches_neuron_index(stages):
    layer = make_layer(pipeline_stages=stages)
    ComponentTester(layer).fire(INPUTS)
    # accumulators: 0.5, 0.5 + 0.25 bias, 0 - 0.5 bias
    assert [n.accumulator.to_float() for n in layer.neurons] == [0.5, 0.75, -0.5]
    assert floats(layer.outputs) == [0.59375, 0.640625, 0.40625]


@pytest.mark.parametrize("stages", [0, 1, 3])
def test_all_neurons_finish_on_the_same_tick(stages):
    layer = make_layer(pipeline_stages=stages)
    tester = ComponentTester(layer)
    tester.tick(fire=True, inputs=INPUTS)
    for _ in range(layer.latency - 1):
        assert not any(n.done for n in layer.neurons)
        tester.tick()
    assert all(n.done for n in layer.neurons)
    assert layer.done
    tester.tick()
    assert not layer.done
    assert layer.states == [NeuronState.IDLE] * 3


def test_latency_and_dims():
    layer = make_layer(batch_size=1, pipeline_stages=2)
    assert layer.dims == (3, 4)
    assert layer.latency == 4 + 3 * 2 - 2
    assert ComponentTester(layer).fire(INPUTS) == layer.latency


def test_busy_while_computing():
    layer = make_layer()
    tester = ComponentTester(layer)
    assert not layer.busy
    tester.tick(fire=True, inputs=INPUTS)
    assert layer.busy


def test_batch_error_names_layer_and_neuron():
    with pytest.raises(ConfigurationError) as excinfo:
        make_layer(batch_size=3, index=4)
    assert excinfo.value.layer == 4
    assert excinfo.value.neuron == 0
    assert "layer 4, neuron 0" in str(excinfo.value)


def test_reset_returns_every_neuron_to_idle():
    layer = make_layer(pipeline_stages=3)
    tester = ComponentTester(layer)
    tester.tick(fire=True, inputs=INPUTS)
    tester.tick()
    layer.reset()
    assert layer.states == [NeuronState.IDLE] * 3
    assert not layer.busy
