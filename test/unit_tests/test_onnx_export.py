import logging
import os

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper

from tinyml_pipeline import ConfigurationError
from tinyml_pipeline.onnx_export import (
    export_onnx_parameters,
    extract_dense_layers,
    quantize_layers,
    topological_sort,
)
from tinyml_pipeline.param_files import load_network_parameters

from utils.onnx_models import B1, B2, W1, W2, mlp_model
from utils.pipeline_tester import small_config


def test_topological_sort_orders_nodes():
    ordered = [node.name for node in topological_sort(mlp_model().graph)]
    assert ordered == ["fc1", "add1", "relu", "fc2"]


def test_topological_sort_detects_cycle():
    nodes = [
        helper.make_node("Relu", ["b"], ["a"], name="r1"),
        helper.make_node("Relu", ["a"], ["b"], name="r2"),
    ]
    graph = helper.make_graph(nodes, "loop", [], [])
    with pytest.raises(ConfigurationError, match="cycles"):
        topological_sort(graph)


def test_extract_dense_layers():
    layers = extract_dense_layers(mlp_model())
    assert len(layers) == 2
    (w1, b1), (w2, b2) = layers
    np.testing.assert_allclose(w1, W1.T)
    np.testing.assert_allclose(b1, B1)
    np.testing.assert_allclose(w2, W2)
    np.testing.assert_allclose(b2, B2)


def test_gemm_without_transpose_and_scaling():
    w = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]], dtype=np.float32)   # (in=3, out=2)
    graph = helper.make_graph(
        [helper.make_node("Gemm", ["x", "W"], ["y"], name="fc", alpha=0.5)],
        "gemm",
        [helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3])],
        [helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 2])],
        initializer=[numpy_helper.from_array(w, "W")],
    )
    [(weights, bias)] = extract_dense_layers(helper.make_model(graph))
    np.testing.assert_allclose(weights, 0.5 * w.T)
    np.testing.assert_allclose(bias, [0.0, 0.0])


def test_model_without_dense_layers():
    graph = helper.make_graph(
        [helper.make_node("Relu", ["x"], ["y"])], "relu",
        [helper.make_tensor_value_info("x", TensorProto.FLOAT, [1, 3])],
        [helper.make_tensor_value_info("y", TensorProto.FLOAT, [1, 3])],
    )
    with pytest.raises(ConfigurationError):
        extract_dense_layers(helper.make_model(graph))


def test_quantize_moves_delimiter_values(caplog):
    config = small_config()
    layers = [(np.array([[1.0, -1.0 / 256]]), np.array([-1.0 / 256]))]
    with caplog.at_level(logging.INFO, logger="tinyml_pipeline.onnx_export"):
        params = quantize_layers(layers, config)
    assert params[0].weights.tolist() == [[256, 0]]
    assert params[0].biases.tolist() == [0]
    assert "2 value(s) equal to the delimiter" in caplog.text


def test_quantize_warns_on_saturation(caplog):
    config = small_config()
    layers = [(np.array([[20.0, 0.5]]), np.array([0.0]))]
    with caplog.at_level(logging.WARNING, logger="tinyml_pipeline.onnx_export"):
        params = quantize_layers(layers, config)
    assert params[0].weights[0, 0] == config.word_format.max_raw
    assert "saturated" in caplog.text


def test_quantize_range_extremes_are_not_saturation(caplog):
    config = small_config()
    fmt = config.word_format
    layers = [(np.array([[fmt.min_value, fmt.max_value]]), np.array([-8.0]))]
    with caplog.at_level(logging.WARNING, logger="tinyml_pipeline.onnx_export"):
        params = quantize_layers(layers, config)
    assert params[0].weights.tolist() == [[fmt.min_raw, fmt.max_raw]]
    assert "saturated" not in caplog.text

    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="tinyml_pipeline.onnx_export"):
        quantize_layers([(np.array([[-8.01, 1.0]]), np.array([0.0]))], config)
    assert "1 value(s) saturated" in caplog.text


def test_export_writes_loadable_parameter_files(tmp_path):
    config = small_config()
    model_path = os.path.join(tmp_path, "mlp.onnx")
    onnx.save(mlp_model(), model_path)
    out_dir = os.path.join(tmp_path, "params")

    parameters, written = export_onnx_parameters(model_path, out_dir, config)
    assert parameters.layer_dims == [(2, 3), (1, 2)]
    assert len(written) == 4
    assert load_network_parameters(out_dir, config) == parameters
    assert parameters[0].weights.tolist() == [[128, 256, -384], [-64, 0, 192]]
