"""CLI tests driven through click's CliRunner."""
from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from proofpipe.cli import cli
from proofpipe.cli.exit_codes import EXIT_BAD_INPUT, EXIT_OK, EXIT_PROOF_REJECTED, EXIT_STAGE_FAILED
from proofpipe.reference import MODULUS, make_program


@pytest.fixture(autouse=True)
def _quiet(monkeypatch, tmp_path):
    # keep the root logger untouched between tests
    monkeypatch.setattr("proofpipe.cli.configure_logging", lambda level: None)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def runner():
    return CliRunner()


def _invoke(runner, *args):
    return runner.invoke(cli, ["--isolation", "thread", *args])


class TestRun:
    def test_sample_runs_clean(self, runner):
        result = _invoke(runner, "run", "--sample")
        assert result.exit_code == EXIT_OK, result.output
        assert "proof correct" in result.output

    def test_json_output_and_export(self, runner, tmp_path):
        out = tmp_path / "out"
        result = _invoke(runner, "run", "--sample", "--json", "--export-dir", str(out))
        assert result.exit_code == EXIT_OK, result.output
        data = json.loads(result.stdout)
        assert [s["stage"] for s in data["stages"]] == ["trace_gen", "prove", "verify"]
        assert data["state"]["verdict"] == "true"
        assert data["state"]["resourceMetadata"]["n_steps"] == 1000
        assert (out / "trace.json").exists()
        assert (out / "proof.json").exists()
        assert data["exported"]["proof"] == str(out / "proof.json")

    def test_program_file(self, runner, tmp_path):
        program = tmp_path / "fib.json"
        program.write_bytes(make_program(20))
        result = _invoke(runner, "run", str(program))
        assert result.exit_code == EXIT_OK, result.output

    def test_no_program_is_bad_input(self, runner):
        result = _invoke(runner, "run")
        assert result.exit_code == EXIT_BAD_INPUT

    def test_malformed_program_fails_stage(self, runner, tmp_path):
        program = tmp_path / "bad.json"
        program.write_text("{}")
        result = _invoke(runner, "run", str(program), "--json")
        assert result.exit_code == EXIT_STAGE_FAILED
        data = json.loads(result.stdout)
        assert len(data["stages"]) == 1
        assert data["stages"][0]["error"]["kind"] == "computation"


class TestSingleStages:
    def test_trace_prove_verify_chain(self, runner, tmp_path):
        program = tmp_path / "fib.json"
        program.write_bytes(make_program(30))
        out = tmp_path / "artifacts"

        assert _invoke(runner, "trace", str(program), "-o", str(out)).exit_code == EXIT_OK
        assert _invoke(runner, "prove", str(out / "trace.json"), "-o", str(out)).exit_code == EXIT_OK
        result = _invoke(runner, "verify", str(out / "proof.json"))
        assert result.exit_code == EXIT_OK, result.output

    def test_tampered_proof_is_rejected(self, runner, tmp_path):
        program = tmp_path / "fib.json"
        program.write_bytes(make_program(30))
        out = tmp_path / "artifacts"
        _invoke(runner, "trace", str(program), "-o", str(out))
        _invoke(runner, "prove", str(out / "trace.json"), "-o", str(out))

        proof_path = out / "proof.json"
        doc = json.loads(proof_path.read_bytes())
        doc["public"]["output"] = (doc["public"]["output"] + 1) % MODULUS
        proof_path.write_text(json.dumps(doc))

        result = _invoke(runner, "verify", str(proof_path))
        assert result.exit_code == EXIT_PROOF_REJECTED
        assert "proof wrong" in result.output


def test_sample_command_writes_program(runner, tmp_path):
    result = _invoke(runner, "sample", "-o", str(tmp_path))
    assert result.exit_code == 0, result.output
    doc = json.loads((tmp_path / "fibonacci_1000.json").read_text())
    assert doc["steps"] == 1000


def test_invalid_env_config_is_usage_error(runner, monkeypatch):
    monkeypatch.setenv("PROOFPIPE_STAGE_TIMEOUT", "soon")
    result = runner.invoke(cli, ["run", "--sample"])
    assert result.exit_code == 2


def test_sample_command_fetches_url(runner, tmp_path, fake_urlopen):
    fake_urlopen(body=make_program(7))
    result = _invoke(runner, "sample", "--url", "http://samples.example/fib7.json", "-o", str(tmp_path))
    assert result.exit_code == 0, result.output
    assert json.loads((tmp_path / "fib7.json").read_text())["steps"] == 7
