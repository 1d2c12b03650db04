"""Tests for mabrunner.tournament — the command state machine end to end.

Every command builds a fresh Tournament on the same state file, the way
separate CLI processes would.
"""

import json
import math
from collections import Counter

import pytest

from mabrunner.errors import (
    InvalidScoreError,
    NotInitializedError,
    StateCorruptionError,
    UnknownAgentError,
    UsageError,
)
from mabrunner.model import ModelParams
from mabrunner.state import StateStore
from mabrunner.tournament import Tournament


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "mab-state.json"


@pytest.fixture
def fresh(state_path):
    """Factory: a new Tournament per call, sharing one state file."""

    def _make(params=None):
        return Tournament(StateStore(state_path), params=params)

    return _make


def _play(fresh, rounds, score_for):
    """select -> update loop; returns the selected ids."""
    picks = []
    for _ in range(rounds):
        agent = fresh().select()
        picks.append(agent)
        fresh().update(agent, score_for(agent))
    return picks


# ============================================================================
# State machine
# ============================================================================


class TestUninitialized:
    @pytest.mark.parametrize("command", ["select", "status", "winner"])
    def test_commands_fail_before_init(self, fresh, command):
        with pytest.raises(NotInitializedError):
            getattr(fresh(), command)()

    def test_update_fails_before_init(self, fresh):
        with pytest.raises(NotInitializedError):
            fresh().update("agent_0", 0.5)

    @pytest.mark.parametrize("command", ["select", "status", "winner"])
    def test_commands_fail_after_reset(self, fresh, command):
        fresh().init(3, seed=1)
        fresh().reset()
        with pytest.raises(NotInitializedError):
            getattr(fresh(), command)()

    def test_update_fails_after_reset(self, fresh):
        fresh().init(3, seed=1)
        fresh().reset()
        with pytest.raises(NotInitializedError):
            fresh().update("agent_0", 0.5)

    def test_reset_always_succeeds(self, fresh):
        assert fresh().reset() == {"success": True, "message": "Tournament reset successfully"}
        assert fresh().reset()["success"] is True

    def test_not_initialized_exit_code(self):
        assert NotInitializedError.exit_code == 2


class TestInit:
    def test_ack(self, fresh):
        assert fresh().init(3, seed=42) == {"success": True, "agents": 3, "seed": 42}

    @pytest.mark.parametrize("agents", [0, -1, True, 2.5, "3"])
    def test_bad_agent_count(self, fresh, state_path, agents):
        with pytest.raises(UsageError):
            fresh().init(agents)
        assert not state_path.exists()

    def test_bad_seed(self, fresh):
        with pytest.raises(UsageError):
            fresh().init(3, seed="abc")

    def test_bad_init_keeps_previous_state(self, fresh, state_path):
        fresh().init(2, seed=1)
        before = state_path.read_bytes()
        with pytest.raises(UsageError):
            fresh().init(0)
        assert state_path.read_bytes() == before

    def test_seed_drawn_and_persisted_when_omitted(self, fresh, state_path):
        result = fresh().init(3)
        assert isinstance(result["seed"], int)
        assert json.loads(state_path.read_text())["seed"] == result["seed"]

    def test_replaces_existing_tournament(self, fresh):
        fresh().init(3, seed=1)
        fresh().update("agent_2", 0.4)
        fresh().init(2, seed=1)
        status = fresh().status()
        assert status["total_evaluations"] == 0
        assert [a["agent_id"] for a in status["agent_stats"]] == ["agent_0", "agent_1"]

    def test_params_frozen_at_init(self, fresh):
        fresh(ModelParams(budget_per_agent=1)).init(2, seed=3)
        # Later invocations with default params still use the stored budget.
        fresh().update("agent_0", 0.5)
        fresh().update("agent_1", 0.5)
        assert fresh().winner()["complete"] is True


# ============================================================================
# Commands
# ============================================================================


class TestSelect:
    def test_returns_agent_id(self, fresh):
        fresh().init(3, seed=42)
        assert fresh().select() in {"agent_0", "agent_1", "agent_2"}

    def test_only_advances_rng(self, fresh, state_path):
        fresh().init(3, seed=42)
        fresh().update("agent_1", 0.6)
        before = json.loads(state_path.read_text())
        fresh().select()
        after = json.loads(state_path.read_text())

        assert after["rng_state"] != before["rng_state"]
        del before["rng_state"], after["rng_state"]
        assert after == before

    def test_single_arm(self, fresh):
        fresh().init(1, seed=5)
        for score in (0.0, 0.3, 1.0, 0.2, 0.9):
            assert fresh().select() == "agent_0"
            fresh().update("agent_0", score)
            assert fresh().winner()["winner_id"] == "agent_0"


class TestUpdate:
    @pytest.mark.parametrize("score", [0.0, 0.5, 1.0, 1, 0])
    def test_accepts_unit_interval(self, fresh, score):
        fresh().init(3, seed=1)
        result = fresh().update("agent_1", score)
        assert result == {
            "success": True,
            "agent_id": "agent_1",
            "score": float(score),
            "total_evaluations": 1,
        }

    @pytest.mark.parametrize(
        "score", [-0.0001, 1.0001, -1, 2, float("nan"), float("inf"), -float("inf")]
    )
    def test_rejects_out_of_range_without_writing(self, fresh, state_path, score):
        fresh().init(3, seed=1)
        fresh().update("agent_0", 0.5)
        before = state_path.read_bytes()
        with pytest.raises(InvalidScoreError) as exc:
            fresh().update("agent_1", score)
        assert exc.value.exit_code == 1
        assert state_path.read_bytes() == before

    @pytest.mark.parametrize("agent_id", ["agent_99", "agent_3", "agent_-1", "bogus", "0", ""])
    def test_unknown_agent_without_writing(self, fresh, state_path, agent_id):
        fresh().init(3, seed=1)
        fresh().update("agent_2", 0.8)
        before = state_path.read_bytes()
        with pytest.raises(UnknownAgentError) as exc:
            fresh().update(agent_id, 0.5)
        assert exc.value.exit_code == 3
        assert state_path.read_bytes() == before

    def test_unknown_agent_checked_before_score(self, fresh):
        fresh().init(3, seed=1)
        with pytest.raises(UnknownAgentError):
            fresh().update("agent_99", 7.0)

    def test_unknown_agent_message_lists_valid_ids(self, fresh):
        fresh().init(2, seed=1)
        with pytest.raises(UnknownAgentError) as exc:
            fresh().update("agent_5", 0.5)
        assert "agent_5" in str(exc.value)
        assert "agent_0, agent_1" in str(exc.value)


class TestStatus:
    def test_shape(self, fresh):
        fresh().init(3, seed=1)
        fresh().update("agent_0", 0.2)
        fresh().update("agent_0", 0.4)
        status = fresh().status()

        assert status["total_evaluations"] == 2
        assert status["agent_stats"][0] == {
            "agent_id": "agent_0",
            "evaluations": 2,
            "mean_score": pytest.approx(0.3),
            "std_dev": pytest.approx(math.sqrt(0.02)),
        }
        assert status["agent_stats"][1]["mean_score"] == 0.5
        assert status["agent_stats"][1]["std_dev"] == 0.0
        assert 0.0 <= status["convergence_progress"] <= 1.0
        assert status["estimated_evaluations_remaining"] >= 0
        assert status["leader_id"] in {"agent_1", "agent_2"}

    def test_total_equals_sum(self, fresh):
        fresh().init(4, seed=9)
        _play(fresh, 25, lambda agent: 0.1 * (int(agent.split("_")[1]) + 1))
        status = fresh().status()
        assert status["total_evaluations"] == 25
        assert status["total_evaluations"] == sum(a["evaluations"] for a in status["agent_stats"])

    def test_output_is_json_serializable(self, fresh):
        fresh().init(2, seed=1)
        fresh().update("agent_0", 0.9)
        json.dumps(fresh().status())
        json.dumps(fresh().winner())


class TestWinner:
    def test_shape(self, fresh):
        fresh().init(3, seed=1)
        fresh().update("agent_2", 0.9)
        result = fresh().winner()
        assert result["winner_id"] == "agent_2"
        assert result["complete"] is False
        assert 0.5 <= result["confidence"] <= 1.0
        assert result["total_evaluations"] == 1
        stats = result["winner_stats"]
        assert stats["evaluations"] == 1
        assert stats["mean_score"] == pytest.approx(0.9)
        low, high = stats["confidence_interval"]
        assert 0.0 <= low <= 0.9 <= high <= 1.0


# ============================================================================
# Corruption
# ============================================================================


class TestCorruptState:
    @pytest.mark.parametrize("command", ["select", "status", "winner"])
    def test_surfaced_not_treated_as_absent(self, fresh, state_path, command):
        state_path.write_text("{ half a document")
        with pytest.raises(StateCorruptionError) as exc:
            getattr(fresh(), command)()
        assert exc.value.exit_code == 4

    def test_reset_recovers(self, fresh, state_path):
        state_path.write_text("{ half a document")
        fresh().reset()
        with pytest.raises(NotInitializedError):
            fresh().select()
        fresh().init(2, seed=1)
        assert fresh().select() in {"agent_0", "agent_1"}


# ============================================================================
# Tournament behaviour
# ============================================================================


class TestDeterminism:
    @pytest.mark.parametrize("agents,seed", [(1, 0), (3, 42), (5, 123456789), (4, -17)])
    def test_replay_reproduces_selections(self, fresh, agents, seed):
        def score_for(agent):
            index = int(agent.split("_")[1])
            return (index + 1) / (agents + 1)

        runs = []
        for _ in range(2):
            fresh().reset()
            fresh().init(agents, seed=seed)
            runs.append(_play(fresh, 30, score_for))
        assert runs[0] == runs[1]

    def test_replay_reproduces_state_file(self, fresh, state_path):
        snapshots = []
        for _ in range(2):
            fresh().reset()
            fresh().init(3, seed=7)
            _play(fresh, 10, lambda agent: 0.5)
            data = json.loads(state_path.read_text())
            del data["created_at"]
            snapshots.append(data)
        assert snapshots[0] == snapshots[1]


class TestExploration:
    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_every_agent_tried_within_30(self, fresh, seed):
        fresh().init(3, seed=seed)
        picks = _play(fresh, 30, lambda agent: 0.7)
        assert set(picks) == {"agent_0", "agent_1", "agent_2"}


class TestExploitation:
    SCORES = {"agent_0": 0.9, "agent_1": 0.5, "agent_2": 0.2}

    def test_best_agent_wins_and_is_favored(self, fresh):
        fresh().init(3, seed=11)
        for _ in range(10):
            for agent, score in self.SCORES.items():
                fresh().update(agent, score)

        result = fresh().winner()
        assert result["winner_id"] == "agent_0"
        assert result["complete"] is True

        picks = Counter(fresh().select() for _ in range(30))
        assert picks["agent_0"] > 15

    def test_thompson_loop_converges(self, fresh):
        fresh().init(3, seed=2024)
        picks = _play(fresh, 60, lambda agent: self.SCORES[agent])
        assert fresh().winner()["winner_id"] == "agent_0"
        assert Counter(picks[30:])["agent_0"] > 15
