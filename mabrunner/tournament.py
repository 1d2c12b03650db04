"""
mabrunner/tournament.py - Command dispatcher

Tournament is the one object the CLI talks to. Each method is one command:
load the slot, validate everything, mutate, save, return a JSON-ready result.
Nothing is written unless every check has passed, so a rejected command
leaves the state file byte-identical.

    Uninitialized --init--> Initialized --reset--> Uninitialized

init and reset work from either state; everything else needs Initialized.
"""

import logging
from typing import Any

from mabrunner.convergence import confidence_interval, estimate
from mabrunner.errors import (
    InvalidScoreError,
    NotInitializedError,
    UnknownAgentError,
    UsageError,
)
from mabrunner.model import ModelParams, reported_mean, validate_score
from mabrunner.rng import entropy_seed
from mabrunner.selection import select_agent
from mabrunner.state import StateStore, TournamentState

logger = logging.getLogger(__name__)


class Tournament:
    """The init/select/update/status/winner/reset state machine."""

    def __init__(self, store: StateStore | None = None, params: ModelParams | None = None):
        self.store = store or StateStore()
        # Only consulted by init(); a running tournament uses its stored params.
        self.params = params or ModelParams()

    def _require_state(self) -> TournamentState:
        state = self.store.load()
        if state is None:
            raise NotInitializedError()
        return state

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def init(self, agents: int, seed: int | None = None) -> dict[str, Any]:
        """Start a new tournament, replacing whatever was there."""
        if isinstance(agents, bool) or not isinstance(agents, int) or agents <= 0:
            raise UsageError("--agents must be a positive integer")
        if seed is not None and (isinstance(seed, bool) or not isinstance(seed, int)):
            raise UsageError("--seed must be an integer")

        if seed is None:
            seed = entropy_seed()
            logger.debug(f"No seed given, drew {seed} from entropy")

        state = TournamentState.create(agents, seed, self.params)
        self.store.save(state)
        logger.info(f"Initialized tournament: {agents} agents, seed {seed}")
        return {"success": True, "agents": agents, "seed": seed}

    def select(self) -> str:
        """Pick the next agent to evaluate. Advances the RNG, nothing else."""
        state = self._require_state()
        rng = state.rng()
        index = select_agent(state.agents, state.params, rng)
        state.rng_state = rng.get_state()
        self.store.save(state)
        return state.agents[index].id

    def update(self, agent_id: str, score: float) -> dict[str, Any]:
        """Record one evaluation score for agent_id."""
        state = self._require_state()

        index = state.find_agent(agent_id)
        if index is None:
            raise UnknownAgentError(agent_id, state.agent_ids())

        try:
            score = validate_score(score)
        except (TypeError, ValueError) as e:
            raise InvalidScoreError(str(e)) from e

        state.agents[index].observe(score)
        state.total_evaluations += 1
        self.store.save(state)
        logger.info(f"{agent_id} scored {score} (total evaluations: {state.total_evaluations})")
        return {
            "success": True,
            "agent_id": agent_id,
            "score": score,
            "total_evaluations": state.total_evaluations,
        }

    def status(self) -> dict[str, Any]:
        state = self._require_state()
        est = estimate(state.agents, state.params)
        return {
            "total_evaluations": state.total_evaluations,
            "agent_stats": [
                {
                    "agent_id": record.id,
                    "evaluations": record.evaluation_count,
                    "mean_score": reported_mean(record, state.params),
                    "std_dev": record.sample_std(),
                }
                for record in state.agents
            ],
            "convergence_progress": est.progress,
            "estimated_evaluations_remaining": est.remaining,
            "leader_id": state.agents[est.leader].id,
        }

    def winner(self) -> dict[str, Any]:
        state = self._require_state()
        est = estimate(state.agents, state.params)
        best = state.agents[est.leader]
        low, high = confidence_interval(best, state.params)
        return {
            "winner_id": best.id,
            "complete": est.complete,
            "confidence": est.confidence,
            "total_evaluations": state.total_evaluations,
            "winner_stats": {
                "evaluations": best.evaluation_count,
                "mean_score": reported_mean(best, state.params),
                "std_dev": best.sample_std(),
                "confidence_interval": [low, high],
            },
        }

    def reset(self) -> dict[str, Any]:
        """Drop the current tournament. Always succeeds, even on a corrupt file."""
        removed = self.store.clear()
        if removed:
            logger.info("Tournament state cleared")
        return {"success": True, "message": "Tournament reset successfully"}
