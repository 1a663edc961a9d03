""" layer.py - N neurons stepped together over one input vector and fire pulse. """
from tinyml_pipeline.activation import SigmoidApproximation
from tinyml_pipeline.clocking import ClockedComponent
from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.latency import layer_latency
from tinyml_pipeline.neuron import Neuron


class Layer(ClockedComponent):
    def __init__(self, parameters, config, batch_size=None, pipeline_stages=None, index=None):
        super().__init__(config)
        self.index = index
        self.parameters = parameters
        self.batch_size = config.batch_size if batch_size is None else batch_size
        self.pipeline_stages = config.pipeline_stages if pipeline_stages is None else pipeline_stages
        activation = SigmoidApproximation(config)  # pure, shared by all neurons

        self.neurons = []
        for row in range(parameters.rows):
            try:
                neuron = Neuron(parameters.weight_vector(row), parameters.bias(row), config,
                                batch_size=self.batch_size, pipeline_stages=self.pipeline_stages,
                                activation=activation)
            except ConfigurationError as exc:
                raise exc.with_context(layer=index, neuron=row) from None
            self.neurons.append(neuron)

    @property
    def dims(self):
        return self.parameters.dims

    @property
    def latency(self):
        return layer_latency(self.dims, self.batch_size, self.pipeline_stages)

    @property
    def done(self):
        # all neurons share B and P, so they finish on the same tick
        return all(neuron.done for neuron in self.neurons)

    @property
    def busy(self):
        return any(neuron.busy for neuron in self.neurons)

    @property
    def outputs(self):
        return [neuron.output for neuron in self.neurons]

    @property
    def states(self):
        return [neuron.state for neuron in self.neurons]

    def _step(self, fire=False, inputs=None):
        # no cross-neuron dependency within a tick, so order does not matter
        for neuron in self.neurons:
            neuron.tick(fire, inputs)

    def _reset_state(self):
        for neuron in self.neurons:
            neuron.reset()

    def __repr__(self):
        return (f"Layer(index={self.index}, dims={self.dims}, batch_size={self.batch_size}, "
                f"pipeline_stages={self.pipeline_stages})")
