"""
Tests for the sim_cli shell: argument parsing, config overrides and output.
"""

import json
from pathlib import Path

import pytest

from sim_cli import build_config, build_strategy, main, parse_cli_args
from marketsim.strategies import AdaptiveMomentumStrategy, EmaCrossoverStrategy, RuleStrategy

REPO_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run every CLI test from an empty directory with no .env and no log dir."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("MARKETSIM_LOG_DIR", raising=False)
    monkeypatch.delenv("MARKETSIM_LOG_LEVEL", raising=False)
    return tmp_path


# ─────────────────────────────────────────────────────────────────────────────
# Arguments and config
# ─────────────────────────────────────────────────────────────────────────────

class TestArgs:
    """Test parsing and override layering."""

    def test_defaults(self):
        args = parse_cli_args([])
        assert args.strategy == "ema"
        assert args.format == "text"
        assert args.seed is None
        assert args.leverage is None
        assert not args.quiet

    def test_no_flags_gives_default_config(self):
        config = build_config(parse_cli_args([]))
        assert config.market.seed == 42
        assert config.candles == 500

    def test_flags_override_config_file(self, tmp_path):
        path = tmp_path / "run.yml"
        path.write_text("candles: 300\nmarket:\n  seed: 1\n  volatility_pct: 4.0\ntrading:\n  leverage: 5\n")
        args = parse_cli_args([
            "--config", str(path), "--seed", "9", "--candles", "50", "--sl", "2.5", "--taker-fee", "0.05",
        ])
        config = build_config(args)

        assert config.market.seed == 9
        assert config.market.volatility_pct == 4.0
        assert config.candles == 50
        assert config.trading.leverage == 5
        assert config.trading.stop_loss_pct == 2.5
        assert config.trading.taker_fee_pct == 0.05

    def test_market_microstructure_flags(self):
        config = build_config(parse_cli_args(["--switch-pct", "12.5", "--tick-size", "0.05"]))
        assert config.market.switch_pct == 12.5
        assert config.market.tick_size == 0.05

        with pytest.raises(ValueError, match="switch_pct"):
            build_config(parse_cli_args(["--switch-pct", "150"]))

    def test_invalid_override_raises(self):
        with pytest.raises(ValueError, match="leverage"):
            build_config(parse_cli_args(["--leverage", "-2"]))

    def test_invalid_choice_exits(self):
        with pytest.raises(SystemExit):
            parse_cli_args(["--model", "brownian"])

    def test_build_strategy(self):
        assert isinstance(build_strategy(parse_cli_args([])), EmaCrossoverStrategy)
        assert isinstance(build_strategy(parse_cli_args(["--strategy", "arm"])), AdaptiveMomentumStrategy)
        rules = parse_cli_args(["--strategy", "rules", "--rules", str(REPO_ROOT / "configs" / "rules_example.yml")])
        assert isinstance(build_strategy(rules), RuleStrategy)
        with pytest.raises(ValueError, match="--rules"):
            build_strategy(parse_cli_args(["--strategy", "rules"]))


# ─────────────────────────────────────────────────────────────────────────────
# main()
# ─────────────────────────────────────────────────────────────────────────────

class TestMain:
    """Test end-to-end CLI runs."""

    def test_json_output(self, tmp_path):
        out = tmp_path / "result.json"
        code = main(["--candles", "80", "--format", "json", "--output", str(out), "--quiet"])
        assert code == 0

        data = json.loads(out.read_text())
        assert data["seed"] == 42
        assert data["bars"] == 80
        assert len(data["equity_history"]) == 80
        assert "sharpe" in data["metrics"]

    def test_arm_strategy_run(self, tmp_path):
        out = tmp_path / "arm.json"
        code = main(["--strategy", "arm", "--candles", "150", "--format", "json", "--output", str(out), "--quiet"])
        assert code == 0
        assert json.loads(out.read_text())["strategy"] == "arm"

    def test_json_is_reproducible(self, tmp_path):
        first, second = tmp_path / "a.json", tmp_path / "b.json"
        for path in (first, second):
            main(["--seed", "5", "--candles", "120", "--format", "json", "--output", str(path), "--quiet"])
        assert json.loads(first.read_text()) == json.loads(second.read_text())

    def test_csv_output(self, tmp_path):
        code = main(["--candles", "40", "--format", "csv", "--output", str(tmp_path / "csv"), "--quiet"])
        assert code == 0
        assert {p.name for p in (tmp_path / "csv").iterdir()} == {"bars.csv", "trades.csv", "equity.csv"}

    def test_text_output(self, capsys):
        assert main(["--candles", "60"]) == 0
        assert "Performance" in capsys.readouterr().out

    def test_config_error_returns_2(self, capsys):
        assert main(["--volatility", "-1"]) == 2
        assert "FAIL" in capsys.readouterr().out

    def test_missing_config_file_returns_2(self):
        assert main(["--config", "does_not_exist.yml", "--quiet"]) == 2
