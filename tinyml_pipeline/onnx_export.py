""" onnx_export.py - Turns the dense layers of an ONNX model into parameter files.

Walks the graph in topological order and collects one (weights, bias) pair per
fully-connected node:
  * Gemm with an initializer B (transB honoured) and optional initializer C
  * MatMul with an initializer weight, followed by an Add of an initializer bias
Other ops (Relu, Reshape, Flatten, ...) are skipped; the pipeline always
applies its own sigmoid approximation.
"""
import logging
from collections import defaultdict, deque

import numpy as np
import onnx
from onnx import numpy_helper

from tinyml_pipeline.errors import ConfigurationError
from tinyml_pipeline.param_files import save_network_parameters
from tinyml_pipeline.parameters import LayerParameters, NetworkParameters
from tinyml_pipeline.fixed_point import quantize_array

log = logging.getLogger(__name__)


def topological_sort(graph):
    tensor_producer = {}
    for node in graph.node:
        for out in node.output:
            tensor_producer[out] = node
    indegree = {id(node): 0 for node in graph.node}
    deps = defaultdict(list)

    for node in graph.node:
        for input_tensor in node.input:
            if input_tensor in tensor_producer:
                parent = tensor_producer[input_tensor]
                deps[id(parent)].append(node)
                indegree[id(node)] += 1

    queue = deque(node for node in graph.node if indegree[id(node)] == 0)
    ordered = []
    while queue:
        node = queue.popleft()
        ordered.append(node)
        for child in deps[id(node)]:
            indegree[id(child)] -= 1
            if indegree[id(child)] == 0:
                queue.append(child)

    if len(ordered) != len(graph.node):
        raise ConfigurationError("ONNX graph contains cycles")
    return ordered


def load_initializers(graph):
    return {init.name: numpy_helper.to_array(init) for init in graph.initializer}


def _attribute(node, name, default):
    for attr in node.attribute:
        if attr.name == name:
            return onnx.helper.get_attribute_value(attr)
    return default


def extract_dense_layers(model):
    """Return [(weights[out, in], bias[out]), ...] as float arrays, in execution order."""
    if isinstance(model, str):
        model = onnx.load(model)
    graph = model.graph
    initializers = load_initializers(graph)
    ordered = topological_sort(graph)
    consumers = defaultdict(list)
    for node in ordered:
        for name in node.input:
            consumers[name].append(node)

    layers = []
    for node in ordered:
        if node.op_type == "Gemm":
            if node.input[1] not in initializers:
                raise ConfigurationError(f"Gemm node {node.name!r} has no constant weight")
            weights = initializers[node.input[1]].astype(np.float64)
            if not _attribute(node, "transB", 0):
                weights = weights.T
            weights = weights * _attribute(node, "alpha", 1.0)
            if len(node.input) > 2 and node.input[2] in initializers:
                bias = initializers[node.input[2]].astype(np.float64).reshape(-1)
                bias = bias * _attribute(node, "beta", 1.0)
            else:
                bias = np.zeros(weights.shape[0])
            layers.append((weights, bias))
        elif node.op_type == "MatMul" and node.input[1] in initializers:
            weights = initializers[node.input[1]].astype(np.float64).T
            bias = np.zeros(weights.shape[0])
            for consumer in consumers[node.output[0]]:
                if consumer.op_type == "Add":
                    other = [name for name in consumer.input if name != node.output[0]]
                    if other and other[0] in initializers:
                        bias = initializers[other[0]].astype(np.float64).reshape(-1)
            layers.append((weights, bias))
        else:
            log.debug(f"Skipping {node.op_type} node {node.name!r}")
    if not layers:
        raise ConfigurationError("no dense layers found in ONNX model")
    return layers


def quantize_layers(layers, config):
    """Quantize float layers to the word format, keeping clear of the delimiter pattern."""
    fmt = config.word_format
    delimiter_raw = -1  # all-ones in two's complement
    built = []
    for index, (weights, bias) in enumerate(layers):
        q_weights = quantize_array(weights, fmt, config.rounding, config.overflow)
        q_bias = quantize_array(bias, fmt, config.rounding, config.overflow)
        collisions = int(np.sum(q_weights == delimiter_raw) + np.sum(q_bias == delimiter_raw))
        if collisions:
            log.info(f"Layer {index}: {collisions} value(s) equal to the delimiter pattern moved to 0")
            q_weights = np.where(q_weights == delimiter_raw, 0, q_weights)
            q_bias = np.where(q_bias == delimiter_raw, 0, q_bias)
        clipped = sum(int(np.sum((values > fmt.max_value) | (values < fmt.min_value)))
                      for values in (np.asarray(weights), np.asarray(bias)))
        if clipped:
            log.warning(f"Layer {index}: {clipped} value(s) saturated to the {fmt} range")
        try:
            built.append(LayerParameters(q_weights, q_bias, fmt))
        except ConfigurationError as exc:
            raise exc.with_context(layer=index) from None
    return NetworkParameters(built)


def export_onnx_parameters(model_path, output_dir, config):
    parameters = quantize_layers(extract_dense_layers(model_path), config)
    written = save_network_parameters(parameters, output_dir, config)
    log.info(f"Exported {len(parameters)} layer(s) from {model_path} to {output_dir}")
    return parameters, written
