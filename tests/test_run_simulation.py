"""Tests for the what-if simulation CLI."""

import json

import pytest

from run_simulation import main, run_scenario


@pytest.fixture
def env_file(tmp_path):
    # Empty override file so a developer's local .env does not leak in
    path = tmp_path / ".env"
    path.write_text("")
    return path


class TestRunScenario:
    def test_deposit_and_partial_withdraw(self, env_file):
        report = run_scenario(10.0, loops=5, ltv_bps=7_000, withdraw=3.0, env_file=env_file)
        assert report["loop"]["iterations"] == 5
        assert report["loop"]["realized_leverage"] == pytest.approx(
            report["projection"]["leverage"], rel=2e-3)
        assert report["withdraw"]["paid"] == pytest.approx(3.0)
        assert report["withdraw"]["unwind_path"] == "partial"
        assert report["position"]["health_factor"] >= report["config"]["min_health_factor"]

    def test_rejected_withdraw_is_reported(self, env_file):
        report = run_scenario(10.0, loops=5, ltv_bps=7_000, withdraw=1.0,
                              shock_bps=-2_200, env_file=env_file)
        assert report["withdraw"]["error"] == "LiquidityError"

    def test_interest_accrual_grows_debt(self, env_file):
        base = run_scenario(10.0, loops=5, ltv_bps=7_000, env_file=env_file)
        aged = run_scenario(10.0, loops=5, ltv_bps=7_000, years=2.0, env_file=env_file)
        assert "interest" not in base
        assert aged["interest"]["accrued"] > 0
        assert aged["position"]["debt_usd"] > base["position"]["debt_usd"]
        assert aged["position"]["health_factor"] < base["position"]["health_factor"]

    def test_exit_impact_grows_with_size(self, env_file):
        report = run_scenario(10.0, env_file=env_file)
        impact = report["exit_impact"]["impact_bps"]
        assert len(impact) == len(report["exit_impact"]["sizes"])
        assert impact == sorted(impact)
        assert impact[-1] > impact[0]
        # Small trades pay roughly the 4 bps fee
        assert impact[0] == pytest.approx(4.0, abs=0.5)

    def test_leverage_grid(self, env_file):
        report = run_scenario(10.0, grid=True, env_file=env_file)
        grid = report["leverage_grid"]
        assert grid["target_ltv_bps"][0] == 5_000
        assert grid["loop_counts"] == list(range(1, 11))
        assert len(grid["leverage"]) == len(grid["target_ltv_bps"])
        # One loop supplies only the deposit
        assert all(row[0] == 1.0 for row in grid["leverage"])
        assert "leverage_grid" not in run_scenario(10.0, env_file=env_file)

    def test_invalid_override_raises(self, env_file):
        with pytest.raises(ValueError):
            run_scenario(10.0, loops=11, env_file=env_file)


class TestMain:
    def test_json_output(self, env_file, capsys):
        main(["--deposit", "5", "--loops", "3", "--json", "--env-file", str(env_file)])
        report = json.loads(capsys.readouterr().out)
        assert report["deposit"] == 5.0
        assert report["config"]["loop_count"] == 3

    def test_text_output(self, env_file, capsys):
        main(["--deposit", "5", "--withdraw", "1", "--env-file", str(env_file)])
        out = capsys.readouterr().out
        assert "LEVERAGE LOOP" in out
        assert "WITHDRAW" in out
        assert "POSITION" in out

    def test_text_output_with_interest_and_grid(self, env_file, capsys):
        main(["--deposit", "5", "--years", "1", "--grid", "--env-file", str(env_file)])
        out = capsys.readouterr().out
        assert "INTEREST" in out
        assert "EXIT PRICE IMPACT" in out
        assert "LEVERAGE GRID" in out
