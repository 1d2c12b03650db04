"""
mabrunner/convergence.py - Leader, confidence and stopping signal

The leader is the agent with the highest posterior mean. Its challenger is
whichever other agent is closest in standardized terms:

    z_i = (mu_leader - mu_i) / sqrt(sd_leader^2 + sd_i^2)

so an unevaluated agent, carrying the wide prior, keeps z small until it
has actually been tried. From the challenger's z:

    confidence = Phi(z)
    progress   = clip(z / Z_TARGET, 0, 1) * min(1, min(n_leader, n_challenger) / MIN_EVALUATIONS)
    complete   = progress >= completion_threshold
                 or total_evaluations >= budget_per_agent * agent_count

The core only reports; callers poll `winner` and decide when to stop.
"""

import math
from collections.abc import Sequence
from dataclasses import dataclass

from mabrunner.model import AgentRecord, ModelParams, posterior

# Standardized gap that counts as fully separated (~97.7% one-sided)
Z_TARGET = 2.0
# Both leader and challenger need this many scores before progress can max out
MIN_EVALUATIONS = 5
# 95% two-sided interval for winner_stats
CI_Z = 1.96


@dataclass
class ConvergenceEstimate:
    """Snapshot of how settled the tournament is."""

    leader: int
    challenger: int | None
    z_score: float
    confidence: float
    progress: float
    complete: bool
    remaining: int


def normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def leader_index(agents: Sequence[AgentRecord], params: ModelParams) -> int:
    """Highest posterior mean; lowest index wins ties."""
    best = 0
    best_mean = posterior(agents[0], params)[0]
    for i in range(1, len(agents)):
        mean = posterior(agents[i], params)[0]
        if mean > best_mean:
            best, best_mean = i, mean
    return best


def _closest_challenger(
    agents: Sequence[AgentRecord], params: ModelParams, leader: int
) -> tuple[int | None, float]:
    """Non-leader with the smallest standardized gap to the leader, and that gap.

    This is not simply the second-highest mean: a lower-mean agent with a wide
    posterior can sit closer to the leader in z terms, and it is the one that
    decides whether the leader is settled.
    """
    lead_mean, lead_std = posterior(agents[leader], params)
    closest, closest_z = None, math.inf
    for i, record in enumerate(agents):
        if i == leader:
            continue
        mean, std = posterior(record, params)
        z = (lead_mean - mean) / math.sqrt(lead_std**2 + std**2)
        if z < closest_z:
            closest, closest_z = i, z
    return closest, closest_z


def estimate_remaining(
    progress: float, total: int, complete: bool, agent_count: int, params: ModelParams
) -> int:
    """Rough evaluations left: linear extrapolation of progress per evaluation,
    capped by what's left of the evaluation budget."""
    if complete:
        return 0
    budget_left = max(0, params.budget_per_agent * agent_count - total)
    if progress <= 0.0 or total == 0:
        return budget_left
    rate = progress / total
    needed = math.ceil((params.completion_threshold - progress) / rate)
    return max(0, min(needed, budget_left))


def estimate(agents: Sequence[AgentRecord], params: ModelParams) -> ConvergenceEstimate:
    if not agents:
        raise ValueError("Cannot estimate convergence without agents")

    total = sum(a.evaluation_count for a in agents)
    leader = leader_index(agents, params)

    if len(agents) == 1:
        # Nothing to compare against: the only agent has already won.
        return ConvergenceEstimate(
            leader=leader, challenger=None, z_score=math.inf,
            confidence=1.0, progress=1.0, complete=True, remaining=0,
        )

    challenger, z = _closest_challenger(agents, params, leader)
    n_min = min(agents[leader].evaluation_count, agents[challenger].evaluation_count)

    separation = min(1.0, max(0.0, z / Z_TARGET))
    sampling = min(1.0, n_min / MIN_EVALUATIONS)
    progress = separation * sampling

    over_budget = total >= params.budget_per_agent * len(agents)
    complete = progress >= params.completion_threshold or over_budget

    return ConvergenceEstimate(
        leader=leader,
        challenger=challenger,
        z_score=z,
        confidence=normal_cdf(z),
        progress=progress,
        complete=complete,
        remaining=estimate_remaining(progress, total, complete, len(agents), params),
    )


def confidence_interval(record: AgentRecord, params: ModelParams) -> tuple[float, float]:
    """Posterior mean +/- 1.96 sd, clipped to the score range."""
    mean, std = posterior(record, params)
    return max(0.0, mean - CI_Z * std), min(1.0, mean + CI_Z * std)
