import pytest

from clipmerge import cli
from clipmerge.executor import MergeError, Stage
from clipmerge.orchestrator import RunResult, RunStatus
from clipmerge.runner import CommandError


_install_interrupt_handler = cli._install_interrupt_handler


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    # basicConfig(force=True) would drop the caplog handler
    monkeypatch.setattr(cli, "_configure_logging", lambda quiet, verbose: None)
    monkeypatch.setattr(cli, "_install_interrupt_handler", lambda ctx: None)


def _argv(dirs, *extra):
    src, out = dirs
    return [str(src), str(out), *extra]


def test_success_exit_code(dirs, monkeypatch):
    seen = {}

    def fake_run(ctx):
        seen["ctx"] = ctx
        return RunResult(RunStatus.SUCCESS, merged=2)

    monkeypatch.setattr(cli, "run", fake_run)
    assert cli.main(_argv(dirs, "-g", "-y")) == cli.EXIT_OK
    assert seen["ctx"].config.group_by_month is True
    assert seen["ctx"].config.overwrite is True


def test_config_error_exit_code(dirs, tmp_path, monkeypatch, caplog):
    monkeypatch.setattr(cli, "run", lambda ctx: pytest.fail("should not run"))
    src, _ = dirs
    assert cli.main([str(src), str(tmp_path / "missing")]) == cli.EXIT_CONFIG
    assert "Invalid output directory" in caplog.text


def test_incomplete_exit_code(dirs, monkeypatch):
    monkeypatch.setattr(cli, "run", lambda ctx: RunResult(RunStatus.INCOMPLETE, merged=1))
    assert cli.main(_argv(dirs)) == cli.EXIT_INCOMPLETE


def test_merge_failure_exit_code_logs_encoder_output(dirs, monkeypatch, caplog):
    def failing_run(ctx):
        try:
            raise CommandError(["ffmpeg", "-i", "x"], 1, "Invalid data found when processing input")
        except CommandError as exc:
            raise MergeError("Garden", Stage.COMBINE, detail=str(exc)) from exc

    monkeypatch.setattr(cli, "run", failing_run)
    assert cli.main(_argv(dirs)) == cli.EXIT_MERGE_FAILED
    assert "Failed to merge clips for camera Garden" in caplog.text
    assert "Invalid data found when processing input" in caplog.text


def test_interrupt_handler_sets_cancel_token(dirs, make_ctx, monkeypatch):
    handlers = {}
    monkeypatch.setattr(cli.signal, "signal", lambda signum, handler: handlers.setdefault(signum, handler))

    ctx = make_ctx()
    _install_interrupt_handler(ctx)
    handlers[cli.signal.SIGINT](cli.signal.SIGINT, None)
    assert ctx.cancelled
