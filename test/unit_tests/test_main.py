import csv
import os

import onnx
import pytest

from tinyml_pipeline import NetworkParameters, PipelineConfig
from tinyml_pipeline.main import build_parser, config_from_args, main
from tinyml_pipeline.param_files import save_network_parameters

from utils.onnx_models import mlp_model

LAYERS = [
    ([[1.0, 1.0, 1.0, 1.0], [0.5, -0.5, 0.5, -0.5]], [0.0, 0.25]),
    ([[1.0, -1.0]], [0.5]),
]
SMALL = ["--integral-bits", "4", "--fractional-bits", "8"]


@pytest.fixture
def workspace(tmp_path):
    config = PipelineConfig(integral_bits=4, fractional_bits=8)
    params_dir = os.path.join(tmp_path, "params")
    save_network_parameters(NetworkParameters.from_floats(LAYERS, config), params_dir, config)
    input_path = os.path.join(tmp_path, "input.txt")
    with open(input_path, "w") as f:
        f.write("0.5\n-0.5\n0.25\n0.25\n")
    return tmp_path, params_dir, input_path


def test_config_from_args_only_overrides_given_flags():
    args = build_parser().parse_args(["latency", "p", "--batch-size", "4", "--reset-async"])
    config = config_from_args(args)
    assert config.batch_size == 4
    assert not config.reset_synchronous
    assert config.reset_active_high
    assert config.pipeline_stages == PipelineConfig.PIPELINE_STAGES


def test_run_prints_result_and_checks_golden(workspace, capsys):
    _, params_dir, input_path = workspace
    status = main(["run", params_dir, input_path, "--check", "--batch-size", "2"] + SMALL)
    out = capsys.readouterr().out
    assert status == 0
    assert "Outputs:    0.582031" in out
    assert "Prediction: 0" in out
    assert "Ticks:      5 (model: 5)" in out
    assert "Golden model match" in out


def test_run_via_link_with_trace(workspace, capsys):
    tmp_path, params_dir, input_path = workspace
    trace_path = os.path.join(tmp_path, "trace.csv")
    status = main(["run", params_dir, input_path, "--via-link", "--trace", trace_path,
                   "--pipeline-stages", "2"] + SMALL)
    assert status == 0
    assert "Trace written" in capsys.readouterr().out
    with open(trace_path) as f:
        rows = list(csv.DictReader(f))
    assert {"tick", "fire", "reset", "network_state", "done", "layer0_state", "layer1_done",
            "outputs"} <= set(rows[0])
    assert [row["fire"] for row in rows].count("1") == 1
    assert rows[-1]["done"] == "1"
    assert rows[0]["reset"] == "1"


def test_latency_command(workspace, capsys):
    _, params_dir, _ = workspace
    status = main(["latency", params_dir, "--batch-size", "2", "--pipeline-stages", "3",
                   "--clock-frequency", "1000000"] + SMALL)
    out = capsys.readouterr().out
    assert status == 0
    assert "Latency:          17 ticks" in out
    assert "Layers:           [(2, 4), (1, 2)]" in out


def test_configuration_error_exit_code(workspace, capsys):
    _, params_dir, input_path = workspace
    status = main(["run", params_dir, input_path, "--batch-size", "3"] + SMALL)
    assert status == 2
    assert "Configuration error: layer 0, neuron 0" in capsys.readouterr().err


def test_missing_parameters_directory(tmp_path, capsys):
    status = main(["latency", os.path.join(tmp_path, "nowhere")])
    assert status == 2
    assert "Configuration error" in capsys.readouterr().err


def test_wrong_input_length_exit_code(workspace, capsys):
    tmp_path, params_dir, _ = workspace
    short = os.path.join(tmp_path, "short.txt")
    with open(short, "w") as f:
        f.write("0.5\n")
    assert main(["run", params_dir, short] + SMALL) == 1
    assert "expected 4 inputs" in capsys.readouterr().err


def test_export_onnx_command(tmp_path, capsys):
    model_path = os.path.join(tmp_path, "mlp.onnx")
    onnx.save(mlp_model(), model_path)
    out_dir = os.path.join(tmp_path, "out")
    assert main(["export-onnx", model_path, out_dir] + SMALL) == 0
    out = capsys.readouterr().out
    assert "Exported 2 layer(s) [(2, 3), (1, 2)]" in out
    assert os.path.exists(os.path.join(out_dir, "weights_1.txt"))


def test_link_conditioning_flags_reach_config():
    args = build_parser().parse_args(["latency", "p", "--debounce-timeout", "0.002",
                                      "--synchronizer-stages", "3"])
    config = config_from_args(args)
    assert config.debounce_timeout == 0.002
    assert config.synchronizer_stages == 3


def test_run_saturates_out_of_range_inputs(workspace, capsys):
    tmp_path, params_dir, _ = workspace
    huge = os.path.join(tmp_path, "huge.txt")
    with open(huge, "w") as f:
        f.write("1e400\n-1e400\n0.25\n0.25\n")
    assert main(["run", params_dir, huge, "--check"] + SMALL) == 0
    assert "Golden model match" in capsys.readouterr().out


def test_run_paced_link(workspace, capsys):
    _, params_dir, input_path = workspace
    status = main(["run", params_dir, input_path, "--via-link", "--paced", "--check",
                   "--clock-frequency", "1000", "--baud-rate", "250"] + SMALL)
    out = capsys.readouterr().out
    assert status == 0
    assert "Golden model match" in out
