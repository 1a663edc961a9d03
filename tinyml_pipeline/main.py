#!/usr/bin/env python3
"""
main.py - Command line front end for the pipeline model.

Usage:
    tinyml-pipeline run params/ input.txt --batch-size 2 --pipeline-stages 3
    tinyml-pipeline run params/ input.txt --via-link --check --trace trace.csv
    tinyml-pipeline latency params/ --batch-size 4
    tinyml-pipeline export-onnx mlp_model.onnx params/
"""
import argparse
import logging
import sys

from tinyml_pipeline.errors import ConfigurationError, SimulationTimeout
from tinyml_pipeline.golden_model import network_forward
from tinyml_pipeline.latency import throughput
from tinyml_pipeline.param_files import load_network_parameters, read_input_vector
from tinyml_pipeline.pipeline_config import PipelineConfig
from tinyml_pipeline.simulator import PipelineSimulator


def add_config_arguments(parser):
    group = parser.add_argument_group("pipeline configuration")
    group.add_argument("--integral-bits", type=int)
    group.add_argument("--fractional-bits", type=int)
    group.add_argument("--batch-size", type=int)
    group.add_argument("--pipeline-stages", type=int)
    group.add_argument("--accumulator-scale", type=int, choices=[2, 4, 8])
    group.add_argument("--guard-bits", type=int)
    group.add_argument("--rounding", choices=["truncate", "round"])
    group.add_argument("--overflow", choices=["saturate", "wrap"])
    group.add_argument("--clock-frequency", type=int)
    group.add_argument("--baud-rate", type=int)
    group.add_argument("--reset-active-low", dest="reset_active_high", action="store_false", default=None)
    group.add_argument("--reset-async", dest="reset_synchronous", action="store_false", default=None)
    group.add_argument("--debounce-timeout", type=float, help="Seconds")
    group.add_argument("--synchronizer-stages", type=int)


def config_from_args(args):
    options = {name: getattr(args, name, None) for name in (
        "integral_bits", "fractional_bits", "batch_size", "pipeline_stages", "accumulator_scale",
        "guard_bits", "rounding", "overflow", "clock_frequency", "baud_rate",
        "reset_active_high", "reset_synchronous", "debounce_timeout", "synchronizer_stages")}
    return PipelineConfig.from_dict(options)


def cmd_run(args):
    config = config_from_args(args)
    parameters = load_network_parameters(args.params, config)
    inputs = read_input_vector(args.inputs, config)

    sim = PipelineSimulator(parameters, config, record_trace=bool(args.trace))
    sim.reset()
    if args.via_link:
        result = sim.run_byte_stream(sim.encode_inputs(inputs), paced=args.paced)
    else:
        result = sim.run_inference(inputs)

    print(f"Outputs:    {' '.join(f'{v:.6f}' for v in result.as_floats())}")
    print(f"Prediction: {result.prediction}")
    print(f"Ticks:      {result.ticks} (model: {sim.latency})")

    status = 0
    if args.check:
        expected = network_forward(parameters, inputs, config)
        if [w.raw for w in expected] == [w.raw for w in result.outputs]:
            print("✅ Golden model match")
        else:
            print("❌ Golden model mismatch")
            print(f"Expected:   {' '.join(f'{w.to_float():.6f}' for w in expected)}")
            status = 1
    if args.trace:
        sim.write_trace(args.trace)
        print(f"Trace written to {args.trace}")
    return status


def cmd_latency(args):
    config = config_from_args(args)
    parameters = load_network_parameters(args.params, config)
    report = throughput(parameters.layer_dims, config)
    print(f"Layers:           {parameters.layer_dims}")
    print(f"Batch size:       {config.batch_size}")
    print(f"Pipeline stages:  {config.pipeline_stages}")
    print(f"Latency:          {report['latency_ticks']} ticks "
          f"({report['latency_seconds'] * 1e6:.3f} us @ {config.clock_frequency / 1e6:g} MHz)")
    print(f"Throughput:       {report['inferences_per_second']:.1f} inferences/s, "
          f"{report['macs_per_second'] / 1e6:.3f} MMAC/s")
    return 0


def cmd_export_onnx(args):
    from tinyml_pipeline.onnx_export import export_onnx_parameters
    config = config_from_args(args)
    parameters, written = export_onnx_parameters(args.model, args.output_dir, config)
    print(f"Exported {len(parameters)} layer(s) {parameters.layer_dims} -> {args.output_dir}")
    for path in written:
        print(f"  {path}")
    return 0


def build_parser():
    parser = argparse.ArgumentParser(description="Fixed-point feed-forward pipeline model")
    parser.add_argument("-v", "--verbose", action="count", default=0)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run one inference through the clocked model")
    run.add_argument("params", help="Directory with weights_{i}.txt / biases_{i}.txt")
    run.add_argument("inputs", help="Input vector file, one value per line")
    run.add_argument("--via-link", action="store_true", help="Deliver inputs through the byte link assembler")
    run.add_argument("--paced", action="store_true",
                     help="With --via-link, deliver one byte per 8-N-1 frame at the baud rate")
    run.add_argument("--check", action="store_true", help="Compare against the golden model")
    run.add_argument("--trace", help="Write a per-tick CSV trace")
    add_config_arguments(run)
    run.set_defaults(func=cmd_run)

    latency = sub.add_parser("latency", help="Print the latency/throughput model")
    latency.add_argument("params")
    add_config_arguments(latency)
    latency.set_defaults(func=cmd_latency)

    export = sub.add_parser("export-onnx", help="Quantize an ONNX MLP into parameter files")
    export.add_argument("model")
    export.add_argument("output_dir")
    add_config_arguments(export)
    export.set_defaults(func=cmd_export_onnx)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    level = logging.WARNING if args.verbose == 0 else logging.INFO if args.verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return args.func(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except (SimulationTimeout, ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
