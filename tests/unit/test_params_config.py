"""
Unit tests for start-auction parameters and engine configuration.
"""

from pathlib import Path

import pytest

from auctionhouse.core.auction.params import StartAuctionParams, parse_start_params
from auctionhouse.core.config import EngineConfig, load_config
from auctionhouse.core.errors import InvalidAmount, MissingFields

VALID = {
    "startPrice": 10000,
    "minIncrement": 500,
    "durationMinutes": 30,
    "inviteeIds": ["alice", "bob", "carol"],
}


def params(**changes):
    raw = dict(VALID)
    raw.update(changes)
    return {k: v for k, v in raw.items() if v is not None}


# =============================================================================
# Parameter Tests
# =============================================================================


class TestStartParams:
    """Tests for start-auction parameter validation."""

    def test_valid_params(self):
        p = parse_start_params(VALID)
        assert p.start_price == 10000
        assert p.min_increment == 500
        assert p.duration_minutes == 30
        assert p.invitee_ids == ["alice", "bob", "carol"]
        assert p.start_at is None

    def test_snake_case_accepted(self):
        p = parse_start_params({
            "start_price": 1, "min_increment": 1, "duration_minutes": 1, "invitee_ids": ["a"],
        })
        assert p.start_price == 1

    def test_model_instance_passes_through(self):
        model = StartAuctionParams.model_validate(VALID)
        assert parse_start_params(model) is model

    def test_all_missing(self):
        with pytest.raises(MissingFields) as exc:
            parse_start_params({})
        assert exc.value.fields == ("startPrice", "minIncrement", "durationMinutes", "inviteeIds")

    def test_none_body(self):
        with pytest.raises(MissingFields):
            parse_start_params(None)

    def test_one_missing(self):
        with pytest.raises(MissingFields) as exc:
            parse_start_params(params(minIncrement=None))
        assert exc.value.fields == ("minIncrement",)
        assert "minIncrement" in exc.value.message

    def test_empty_invitees(self):
        with pytest.raises(MissingFields) as exc:
            parse_start_params(params(inviteeIds=[]))
        assert exc.value.fields == ("inviteeIds",)

    def test_malformed_invitees(self):
        with pytest.raises(MissingFields):
            parse_start_params(params(inviteeIds=["alice", ""]))

    @pytest.mark.parametrize("field", ["startPrice", "minIncrement", "durationMinutes"])
    def test_zero_rejected(self, field):
        with pytest.raises(InvalidAmount):
            parse_start_params(params(**{field: 0}))

    @pytest.mark.parametrize("value", ["100", 10.5, True, -1])
    def test_malformed_price_rejected(self, value):
        with pytest.raises(InvalidAmount):
            parse_start_params(params(startPrice=value))

    def test_duration_limit(self):
        parse_start_params(params(durationMinutes=60), max_duration_minutes=60)
        with pytest.raises(InvalidAmount):
            parse_start_params(params(durationMinutes=61), max_duration_minutes=60)

    def test_invitee_limit(self):
        parse_start_params(params(inviteeIds=["a", "b"]), max_invitees=2)
        with pytest.raises(InvalidAmount):
            parse_start_params(params(inviteeIds=["a", "b", "c"]), max_invitees=2)

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan")])
    def test_non_finite_start_at_rejected(self, value):
        with pytest.raises(InvalidAmount) as exc:
            parse_start_params(params(startAt=value))
        assert "startAt" in exc.value.message


# =============================================================================
# Config Tests
# =============================================================================


class TestConfig:
    """Tests for configuration loading."""

    def test_defaults(self):
        config = load_config(environ={})
        assert config == EngineConfig()
        assert config.db_path == Path("data") / "auctions.db"

    def test_env_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "AUCTIONHOUSE_PERSIST=true\n"
            "AUCTIONHOUSE_API_PORT=9001\n"
            "AUCTIONHOUSE_SCHEDULER_RETRY_DELAY=0.25\n"
            f"AUCTIONHOUSE_DATA_DIR={tmp_path / 'db'}\n"
        )
        config = load_config(str(env_file), environ={})

        assert config.persist is True
        assert config.api_port == 9001
        assert config.scheduler_retry_delay == 0.25
        assert config.data_dir == tmp_path / "db"

    def test_environment_beats_file(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("AUCTIONHOUSE_MAX_INVITEES=10\n")
        config = load_config(str(env_file), environ={"AUCTIONHOUSE_MAX_INVITEES": "20"})
        assert config.max_invitees == 20

    def test_unrelated_environment_ignored(self):
        config = load_config(environ={"API_PORT": "1", "AUCTIONHOUSE_API_PORT": ""})
        assert config.api_port == 8000

    def test_overrides_win(self):
        config = load_config(environ={"AUCTIONHOUSE_PERSIST": "true"}, persist=False)
        assert config.persist is False

    def test_unknown_override(self):
        with pytest.raises(TypeError):
            load_config(environ={}, bogus=1)

    def test_ensure_dirs(self, tmp_path):
        config = EngineConfig(persist=True, data_dir=tmp_path / "d", log_dir=tmp_path / "l")
        config.ensure_dirs()
        assert (tmp_path / "d").is_dir()
        assert not (tmp_path / "l").exists()
