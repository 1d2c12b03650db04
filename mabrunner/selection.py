"""
mabrunner/selection.py - Thompson sampling

Draw one sample from every agent's posterior and pick the highest. Agents
are sampled in index order, two uniforms each, so a select() on N agents
always advances the RNG by exactly 2N draws. Statistics are read, never
written.
"""

import logging
from collections.abc import Sequence

import numpy as np

from mabrunner.model import AgentRecord, ModelParams, posterior
from mabrunner.rng import SeededRandom

logger = logging.getLogger(__name__)


def draw_samples(
    agents: Sequence[AgentRecord], params: ModelParams, rng: SeededRandom
) -> np.ndarray:
    """One posterior sample per agent, in index order."""
    samples = np.empty(len(agents), dtype=np.float64)
    for i, record in enumerate(agents):
        mean, std = posterior(record, params)
        samples[i] = rng.gaussian(mean, std)
    return samples


def select_agent(
    agents: Sequence[AgentRecord], params: ModelParams, rng: SeededRandom
) -> int:
    """Index of the agent to evaluate next.

    Ties go to the lowest index (np.argmax returns the first maximum).
    """
    if not agents:
        raise ValueError("Cannot select from an empty tournament")

    samples = draw_samples(agents, params, rng)
    choice = int(np.argmax(samples))
    if logger.isEnabledFor(logging.DEBUG):
        drawn = ", ".join(f"{a.id}={s:.4f}" for a, s in zip(agents, samples))
        logger.debug(f"Thompson samples: {drawn} -> {agents[choice].id}")
    return choice
