"""
Training harness for microprop
Builds a [2, hidden, 2] network, trains it to tell points near the origin from
points far from it, and reports the error on held-out samples.
"""

import dataclasses
import logging
import math
import random
from typing import Callable, List, Optional, Sequence, Tuple

import click

from microprop.engine import MicropropError
from microprop.nn import Network

logger = logging.getLogger("microprop.demo")

Sample = Tuple[List[float], List[float]]


@dataclasses.dataclass(frozen=True)
class TrainingConfig:
    """Everything the demo run is parameterised by."""

    topology: Tuple[int, ...] = (2, 6, 2)
    samples: int = 10_000
    rounds: int = 100
    repeats: int = 10
    batch_size: int = 10
    learning_rate: float = 0.05
    momentum: float = 0.2
    test_samples: int = 100
    inner: float = 0.3
    outer: float = 0.7
    seed: Optional[int] = None

    def validate(self) -> "TrainingConfig":
        """Raise ValueError on settings that cannot describe a run."""
        if len(self.topology) < 2 or self.topology[0] != 2 or self.topology[-1] != 2:
            raise ValueError(f"topology must start and end with 2, got {self.topology}")
        for name in ("samples", "rounds", "repeats", "batch_size", "test_samples"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive")
        if self.learning_rate <= 0:
            raise ValueError("learning_rate must be positive")
        if not 0 <= self.momentum < 1:
            raise ValueError("momentum must be in [0, 1)")
        # Held-out samples come from the end of the dataset, after the trained slice
        needed = self.rounds * self.batch_size + self.test_samples
        if needed > self.samples:
            raise ValueError(
                f"rounds * batch_size + test_samples ({needed}) exceeds samples ({self.samples})"
            )
        # Both classes need room in the unit square, else ring_dataset never finishes
        if not 0 < self.inner < self.outer < math.sqrt(2):
            raise ValueError("ring radii must satisfy 0 < inner < outer < sqrt(2)")
        return self


def seeded_source(seed: Optional[int] = None) -> Callable[[], float]:
    """Return a nullary callable drawing floats in [0, 1) from a private generator."""
    rng = random.Random(seed)
    return rng.random


def ring_dataset(
    count: int, source: Callable[[], float], inner: float = 0.3, outer: float = 0.7
) -> List[Sample]:
    """
    Draw labelled points from the unit square.

    Points whose distance from the origin lies strictly between inner and
    outer are rejected. Far points are labelled [1, 0], near points [0, 1].
    """
    dataset = []
    while len(dataset) < count:
        x, y = source(), source()
        d = math.sqrt(x * x + y * y)
        if inner < d < outer:
            continue
        expected = [1.0, 0.0] if d > inner else [0.0, 1.0]
        dataset.append(([x, y], expected))
    return dataset


def squared_error(expected: Sequence[float], result: Sequence[float]) -> Tuple[List[float], float]:
    """Return the per-unit errors (expected - result) and their sum of squares."""
    errors = [e - r for e, r in zip(expected, result)]
    return errors, sum(e * e for e in errors)


def train(
    network: Network,
    dataset: Sequence[Sample],
    config: TrainingConfig,
    on_round: Optional[Callable[[int, float], None]] = None,
) -> List[float]:
    """
    Train on consecutive batches of the dataset.

    Round i replays dataset[i*batch_size:(i+1)*batch_size] config.repeats
    times, one run()/learn() pair per sample. Returns the mean squared error of
    each round, measured during its last repeat.
    """
    history = []
    for i in range(config.rounds):
        batch = dataset[i * config.batch_size:(i + 1) * config.batch_size]
        total = 0.0
        for _ in range(config.repeats):
            total = 0.0
            for inputs, expected in batch:
                errors, err = squared_error(expected, network.run(inputs))
                network.learn(errors, config.learning_rate, config.momentum)
                total += err
        mse = total / len(batch)
        history.append(mse)
        if on_round is not None:
            on_round(i, mse)
    return history


def evaluate(
    network: Network,
    samples: Sequence[Sample],
    on_sample: Optional[Callable[[Sample, List[float], float], None]] = None,
) -> float:
    """
    Mean squared error of the network over samples, without learning.

    on_sample, if given, is called with each sample, the network's result and
    that sample's squared error.
    """
    if not samples:
        raise ValueError("no samples to evaluate")
    total = 0.0
    for sample in samples:
        inputs, expected = sample
        result = network.run(inputs)
        _, err = squared_error(expected, result)
        total += err
        if on_sample is not None:
            on_sample(sample, result, err)
    return total / len(samples)


def describe(network: Network) -> str:
    """Dump every neuron's weights, one line per neuron."""
    lines = [f"Network {list(network.topology)}"]
    for k, layer in enumerate(network.layers):
        lines.append(f"  layer {k} ({layer.kind.value}, {layer.width()} neurons)")
        for n in layer.neurons:
            lines.append("    " + " ".join(f"{w:+.4f}" for w in n.weights))
    return "\n".join(lines)


def run_demo(config: TrainingConfig, echo: Callable[[str], None] = click.echo) -> float:
    """Build, train and test a network; return the mean held-out squared error."""
    config.validate()
    source = seeded_source(config.seed)
    network = Network(config.topology, source)
    echo(f"Initialized new network\n{describe(network)}\n")

    dataset = ring_dataset(config.samples, source, config.inner, config.outer)
    logger.info("Generated %d samples", len(dataset))

    def report(i, mse):
        if (i + 1) % 10 == 0:
            logger.info("Round %d/%d: mse %.4f", i + 1, config.rounds, mse)

    train(network, dataset, config, on_round=report)

    def show(sample, result, err):
        (x, y), expected = sample
        echo(
            f"x:{x:.2f} y:{y:.2f}, "
            f"r:[{', '.join(f'{r:.2f}' for r in result)}] e:{expected}, err:{err:.1f}"
        )

    mean = evaluate(network, dataset[-config.test_samples:], on_sample=show)
    echo(f"\nTotal test error: {mean}\n")
    echo(f"Network after training\n{describe(network)}")
    return mean


def _parse_topology(ctx, param, value):
    try:
        return tuple(int(v) for v in value.split(","))
    except ValueError:
        raise click.BadParameter("expected comma separated integers, e.g. 2,6,2")


@click.command()
@click.option("--topology", default="2,6,2", show_default=True, callback=_parse_topology,
              help="Layer widths, input first. Must start and end with 2.")
@click.option("--samples", default=TrainingConfig.samples, show_default=True, type=int)
@click.option("--rounds", default=TrainingConfig.rounds, show_default=True, type=int)
@click.option("--repeats", default=TrainingConfig.repeats, show_default=True, type=int)
@click.option("--batch-size", default=TrainingConfig.batch_size, show_default=True, type=int)
@click.option("--learning-rate", default=TrainingConfig.learning_rate, show_default=True, type=float)
@click.option("--momentum", default=TrainingConfig.momentum, show_default=True, type=float)
@click.option("--test-samples", default=TrainingConfig.test_samples, show_default=True, type=int)
@click.option("--inner", default=TrainingConfig.inner, show_default=True, type=float)
@click.option("--outer", default=TrainingConfig.outer, show_default=True, type=float)
@click.option("--seed", default=None, type=int, help="Seed for weights and dataset.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose, **options):
    """Train a small MLP to separate points near the origin from far ones."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        config = TrainingConfig(**options).validate()
        run_demo(config)
    except (ValueError, MicropropError) as e:
        raise click.ClickException(str(e))
