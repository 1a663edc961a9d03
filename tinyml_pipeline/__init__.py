""" tinyml_pipeline - Tick-accurate model of a fixed-point feed-forward inference pipeline. """
from tinyml_pipeline.errors import ConfigurationError, SimulationTimeout
from tinyml_pipeline.fixed_point import FixedPointFormat, FixedPointWord, OverflowPolicy, RoundingPolicy
from tinyml_pipeline.pipeline_config import PipelineConfig
from tinyml_pipeline.activation import SigmoidApproximation
from tinyml_pipeline.neuron import Neuron, NeuronState
from tinyml_pipeline.layer import Layer
from tinyml_pipeline.network import Network
from tinyml_pipeline.parameters import LayerParameters, NetworkParameters, deflate, inflate
from tinyml_pipeline.simulator import InferenceResult, PipelineSimulator

__version__ = "0.1.0"
