"""
mabrunner/model.py - Per-agent Gaussian posterior

Each agent keeps three numbers (count, running mean, Welford M2) and no
score history. The posterior used for Thompson sampling is derived from
those on demand:

  - never evaluated: N(prior_mean, prior_std^2), deliberately wide so an
    untried agent wins an early draw
  - evaluated n times: mean = running mean,
    std = sqrt(((M2 + obs_variance) / n) / n)

obs_variance acts as one pseudo-observation of spread, so an agent that
always gets the same score still keeps some uncertainty. std is floored at
min_std everywhere.
"""

import math
from dataclasses import asdict, dataclass

# ============================================================================
# Parameters
# ============================================================================


def as_int(value, name: str) -> int:
    """value as an int, refusing bools and floats with a fractional part."""
    if isinstance(value, bool):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be a whole number, got {value!r}")
        return int(value)
    raise TypeError(f"{name} must be an integer, got {value!r}")


@dataclass(frozen=True)
class ModelParams:
    """Model and stopping constants, frozen into the state at init."""

    prior_mean: float = 0.5
    prior_std: float = 1.0
    obs_variance: float = 0.1
    min_std: float = 0.01
    completion_threshold: float = 0.95
    budget_per_agent: int = 50

    def __post_init__(self):
        if not 0.0 <= self.prior_mean <= 1.0:
            raise ValueError(f"prior_mean must be in [0, 1], got {self.prior_mean}")
        if self.prior_std <= 0:
            raise ValueError(f"prior_std must be positive, got {self.prior_std}")
        if self.obs_variance < 0:
            raise ValueError(f"obs_variance must be non-negative, got {self.obs_variance}")
        if self.min_std <= 0:
            raise ValueError(f"min_std must be positive, got {self.min_std}")
        if not 0.0 < self.completion_threshold <= 1.0:
            raise ValueError(
                f"completion_threshold must be in (0, 1], got {self.completion_threshold}"
            )
        if self.budget_per_agent < 1:
            raise ValueError(f"budget_per_agent must be >= 1, got {self.budget_per_agent}")

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ModelParams":
        defaults = cls()
        return cls(
            prior_mean=float(data.get("prior_mean", defaults.prior_mean)),
            prior_std=float(data.get("prior_std", defaults.prior_std)),
            obs_variance=float(data.get("obs_variance", defaults.obs_variance)),
            min_std=float(data.get("min_std", defaults.min_std)),
            completion_threshold=float(
                data.get("completion_threshold", defaults.completion_threshold)
            ),
            budget_per_agent=as_int(
                data.get("budget_per_agent", defaults.budget_per_agent), "budget_per_agent"
            ),
        )


# ============================================================================
# Agent record
# ============================================================================


def agent_id_for(index: int) -> str:
    return f"agent_{index}"


def validate_score(score: float) -> float:
    """Return score as a float, or raise ValueError if it's outside [0, 1].

    NaN fails the range comparison, so it's rejected too.
    """
    score = float(score)
    if not 0.0 <= score <= 1.0:
        raise ValueError(f"Score must be between 0 and 1 (inclusive), got {score}")
    return score


@dataclass
class AgentRecord:
    """Running statistics for one agent."""

    id: str
    evaluation_count: int = 0
    mean: float = 0.0
    m2: float = 0.0

    def observe(self, score: float) -> None:
        """Fold one score into count, mean and M2 in a single Welford step."""
        score = validate_score(score)
        self.evaluation_count += 1
        delta = score - self.mean
        self.mean += delta / self.evaluation_count
        self.m2 += delta * (score - self.mean)

    @property
    def variance(self) -> float:
        """Sample variance (n - 1 denominator). 0.0 below two evaluations."""
        if self.evaluation_count < 2:
            return 0.0
        return max(0.0, self.m2) / (self.evaluation_count - 1)

    def sample_std(self) -> float:
        return math.sqrt(self.variance)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AgentRecord":
        record = cls(
            id=str(data["id"]),
            evaluation_count=as_int(data["evaluation_count"], "evaluation_count"),
            mean=float(data["mean"]),
            m2=float(data["m2"]),
        )
        if record.evaluation_count < 0:
            raise ValueError(f"{record.id}: negative evaluation_count")
        if record.m2 < 0 or not math.isfinite(record.m2):
            raise ValueError(f"{record.id}: invalid m2 {record.m2}")
        if record.evaluation_count and not 0.0 <= record.mean <= 1.0:
            raise ValueError(f"{record.id}: mean {record.mean} outside [0, 1]")
        if record.evaluation_count == 0 and (record.mean != 0.0 or record.m2 != 0.0):
            raise ValueError(f"{record.id}: unevaluated agent carries mean {record.mean}, m2 {record.m2}")
        return record


# ============================================================================
# Posterior
# ============================================================================


def posterior(record: AgentRecord, params: ModelParams) -> tuple[float, float]:
    """Current belief about an agent's true mean score as (mean, std)."""
    n = record.evaluation_count
    if n == 0:
        return params.prior_mean, max(params.prior_std, params.min_std)

    spread = (record.m2 + params.obs_variance) / n
    std = math.sqrt(spread / n)
    return record.mean, max(std, params.min_std)


def reported_mean(record: AgentRecord, params: ModelParams) -> float:
    """Mean to show in status output; the prior mean until the first score."""
    if record.evaluation_count == 0:
        return params.prior_mean
    return record.mean
