"""
Latency / Throughput Model
==========================
Tick counts are measured from the tick that samples fire, inclusive, to the
tick after which done is observed, inclusive.

Neuron (n inputs, batch size B, pipeline depth P):

    fire tick                           1
    initializing (P > 1)                P - 1
    processing (one batch per tick)     n / B
    finalizing (P > 1)                  P - 1
    activating (P > 1)                  P - 1
    ----------------------------------------------
    total                               n / B + 3 * max(P, 1) - 2

P = 1 has the same latency as P = 0: the fire tick primes the single stage.

Layer latency equals neuron latency. In a network, layer i+1 samples layer i's
done pulse on the following tick, so network latency is the sum of the layer
latencies. The network ignores fire while busy, so one inference is in flight
at a time.
"""

from tinyml_pipeline.errors import ConfigurationError


def neuron_latency(n_inputs, batch_size, pipeline_stages):
    if batch_size < 1 or n_inputs % batch_size:
        raise ConfigurationError(f"batch size {batch_size} does not divide input count {n_inputs}")
    return n_inputs // batch_size + 3 * max(pipeline_stages, 1) - 2


def layer_latency(dims, batch_size, pipeline_stages):
    _, cols = dims
    return neuron_latency(cols, batch_size, pipeline_stages)


def network_latency(layer_dims, batch_size, pipeline_stages):
    total = 0
    for index, dims in enumerate(layer_dims):
        try:
            total += layer_latency(dims, batch_size, pipeline_stages)
        except ConfigurationError as exc:
            raise exc.with_context(layer=index) from None
    return total


def mac_operations(layer_dims):
    return sum(rows * cols for rows, cols in layer_dims)


def throughput(layer_dims, config):
    """Return a small report: latency in ticks and seconds, inferences/s, MAC/s."""
    ticks = network_latency(layer_dims, config.batch_size, config.pipeline_stages)
    seconds = ticks / config.clock_frequency
    return {
        "latency_ticks": ticks,
        "latency_seconds": seconds,
        "inferences_per_second": 1.0 / seconds,
        "macs_per_inference": mac_operations(layer_dims),
        "macs_per_second": mac_operations(layer_dims) / seconds,
    }
