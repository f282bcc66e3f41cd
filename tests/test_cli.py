"""Tests for settlebench CLI commands."""

from typer.testing import CliRunner

from settlebench.cli.main import app

runner = CliRunner()

FAST_CONFIG = """\
repetitions: 2
dataset_size: 200
poll_interval_ms: 5
settle_timeout_ms: 3000
quiet_ms: 15
stable_window_ms: 15
post_settle_delay_ms: 1
results_dir: results
"""


class TestScenariosCommand:
    """Tests for settlebench scenarios."""

    def test_lists_scenarios(self):
        """Test every scenario id is listed."""
        result = runner.invoke(app, ["scenarios"])

        assert result.exit_code == 0
        for scenario_id in ("filter-change", "bulk-insert", "long-idle"):
            assert scenario_id in result.output
        assert "10s" in result.output


class TestRunCommand:
    """Tests for settlebench run."""

    def test_unknown_app(self, temp_dir, monkeypatch):
        """Test an unknown app name is rejected."""
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(app, ["run", "vue"])

        assert result.exit_code == 1
        assert "Unknown app" in result.output

    def test_unknown_scenario(self, temp_dir, monkeypatch):
        """Test an unknown scenario id is rejected before running."""
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(app, ["run", "--simulate", "-s", "warp-speed"])

        assert result.exit_code == 1
        assert "Unknown scenario" in result.output
        assert not (temp_dir / "bench").exists()

    def test_simulated_run(self, temp_dir, monkeypatch):
        """Test a simulated run writes one record per trial."""
        (temp_dir / "settlebench.yaml").write_text(FAST_CONFIG)
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(
            app,
            ["run", "--simulate", "-s", "filter-change", "--run-id", "2024-01-01T00-00"],
        )

        assert result.exit_code == 0, result.output
        assert "Wrote 4 run record(s)" in result.output
        run_dir = temp_dir / "results" / "2024-01-01T00-00"
        for app_name in ("react", "solid"):
            for i in range(2):
                assert (run_dir / app_name / "filter-change" / f"{i}.json").is_file()

    def test_single_app_with_repetitions(self, temp_dir, monkeypatch):
        """Test selecting one app and overriding repetitions."""
        (temp_dir / "settlebench.yaml").write_text(FAST_CONFIG)
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(
            app,
            [
                "run", "solid", "--simulate", "-n", "1",
                "-s", "bulk-insert", "--run-id", "r1",
            ],
        )

        assert result.exit_code == 0, result.output
        run_dir = temp_dir / "results" / "r1"
        assert [p.name for p in run_dir.iterdir()] == ["solid"]
        assert (run_dir / "solid" / "bulk-insert" / "0.json").is_file()

    def test_existing_run_id_fails(self, temp_dir, monkeypatch):
        """Test re-running into the same run id refuses to overwrite."""
        (temp_dir / "settlebench.yaml").write_text(FAST_CONFIG)
        monkeypatch.chdir(temp_dir)
        args = ["run", "react", "--simulate", "-n", "1", "-s", "bulk-remove", "--run-id", "r1"]

        first = runner.invoke(app, args)
        second = runner.invoke(app, args)

        assert first.exit_code == 0, first.output
        assert second.exit_code == 1
        assert (temp_dir / "results" / "r1" / "debug").is_dir()


class TestAggregateCommand:
    """Tests for settlebench aggregate."""

    def test_no_results(self, temp_dir, monkeypatch):
        """Test aggregating with nothing recorded fails."""
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(app, ["aggregate", "--results-dir", str(temp_dir / "results")])

        assert result.exit_code == 1
        assert "No benchmark results" in result.output

    def test_missing_run(self, temp_dir, monkeypatch):
        """Test an unknown --run is an error."""
        (temp_dir / "results" / "2024-01-01T00-00").mkdir(parents=True)
        monkeypatch.chdir(temp_dir)

        result = runner.invoke(
            app,
            ["aggregate", "--run=missing", "--results-dir", str(temp_dir / "results")],
        )

        assert result.exit_code == 1
        assert "Run not found" in result.output

    def test_run_then_aggregate(self, temp_dir, monkeypatch):
        """Test aggregating the latest run writes the summary tables."""
        (temp_dir / "settlebench.yaml").write_text(FAST_CONFIG)
        monkeypatch.chdir(temp_dir)
        run = runner.invoke(
            app,
            ["run", "--simulate", "-s", "filter-change", "--run-id", "2024-01-01T00-00"],
        )
        assert run.exit_code == 0, run.output

        result = runner.invoke(app, ["aggregate"])

        assert result.exit_code == 0, result.output
        assert "Aggregated 4 run(s)" in result.output
        assert "react/filter-change: 2/2 runs" in result.output
        assert "solid/filter-change: 2/2 runs" in result.output
        summary = temp_dir / "results" / "2024-01-01T00-00" / "summary"
        assert (summary / "aggregated.csv").is_file()
        assert (summary / "raw_data.csv").is_file()
        assert (summary / "updateLatency.csv").is_file()

    def test_short_groups_reported(self, temp_dir, monkeypatch):
        """Test groups with fewer runs than expected are listed with their counts."""
        (temp_dir / "settlebench.yaml").write_text(FAST_CONFIG)
        monkeypatch.chdir(temp_dir)
        run = runner.invoke(
            app,
            ["run", "react", "--simulate", "-n", "1", "-s", "bulk-insert", "--run-id", "r1"],
        )
        assert run.exit_code == 0, run.output

        result = runner.invoke(app, ["aggregate", "--run=r1", "--expected", "3"])

        assert result.exit_code == 0, result.output
        assert "react/bulk-insert: 1/3 runs" in result.output
