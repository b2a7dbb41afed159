"""Тесты супервизии дочернего процесса на реальном интерпретаторе."""

from __future__ import annotations

import sys

import pytest

from vigil.exceptions import SuiteLaunchError
from vigil.execution.supervisor import ProcessState, SupervisedProcess

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")


def _python(code: str) -> list[str]:
    return [sys.executable, "-c", code]


@pytest.mark.asyncio
async def test_successful_exit_streams_output() -> None:
    """Строки stdout/stderr доходят до колбэков по мере появления."""
    stdout: list[str] = []
    stderr: list[str] = []
    process = SupervisedProcess(
        _python("import sys; print('one'); print('two'); print('oops', file=sys.stderr)"),
        timeout=30, grace_period=1,
        on_stdout=stdout.append, on_stderr=stderr.append,
    )

    outcome = await process.run()

    assert outcome.exit_code == 0
    assert outcome.succeeded is True
    assert outcome.final_state is ProcessState.EXITED
    assert stdout == ["one", "two"]
    assert stderr == ["oops"]
    assert outcome.stdout == "one\ntwo"


@pytest.mark.asyncio
async def test_nonzero_exit_code() -> None:
    outcome = await SupervisedProcess(
        _python("import sys; sys.exit(3)"), timeout=30, grace_period=1,
    ).run()

    assert outcome.exit_code == 3
    assert outcome.succeeded is False
    assert outcome.timed_out is False


@posix_only
@pytest.mark.asyncio
async def test_timeout_terminates_gracefully() -> None:
    """Превышение бюджета: SIGTERM, процесс завершается в окне ожидания."""
    process = SupervisedProcess(
        _python("import time; print('started', flush=True); time.sleep(60)"),
        timeout=1.0, grace_period=5,
    )

    outcome = await process.run()

    assert outcome.timed_out is True
    assert outcome.exit_code is None
    assert outcome.signal == "SIGTERM"
    assert outcome.final_state is ProcessState.EXITED
    assert outcome.tail() == ["started"]
    assert outcome.duration < 10


@posix_only
@pytest.mark.asyncio
async def test_timeout_escalates_to_kill() -> None:
    """Процесс, игнорирующий SIGTERM, убивается SIGKILL после окна ожидания."""
    code = (
        "import signal, time\n"
        "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
        "print('ready', flush=True)\n"
        "time.sleep(60)\n"
    )
    process = SupervisedProcess(_python(code), timeout=1.0, grace_period=0.5)

    outcome = await process.run()

    assert outcome.timed_out is True
    assert outcome.signal == "SIGKILL"
    assert outcome.final_state is ProcessState.KILLED
    assert outcome.duration < 10


@posix_only
@pytest.mark.asyncio
async def test_request_termination_marks_cancelled() -> None:
    lines: list[str] = []
    process: SupervisedProcess

    def on_stdout(line: str) -> None:
        lines.append(line)
        process.request_termination()

    process = SupervisedProcess(
        _python("import time; print('go', flush=True); time.sleep(60)"),
        timeout=30, grace_period=2, on_stdout=on_stdout,
    )

    outcome = await process.run()

    assert outcome.cancelled is True
    assert outcome.timed_out is False
    assert lines == ["go"]


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_supervision() -> None:
    def broken(line: str) -> None:
        raise RuntimeError("parser bug")

    outcome = await SupervisedProcess(
        _python("print('a'); print('b')"), timeout=30, grace_period=1, on_stdout=broken,
    ).run()

    assert outcome.exit_code == 0
    assert outcome.stdout == "a\nb"


@pytest.mark.asyncio
async def test_missing_executable_raises_launch_error() -> None:
    process = SupervisedProcess(
        ["/nonexistent/vigil-runner"], timeout=5, grace_period=1, name="Broken Suite",
    )

    with pytest.raises(SuiteLaunchError) as exc_info:
        await process.run()

    assert exc_info.value.suite_name == "Broken Suite"


@pytest.mark.asyncio
async def test_run_twice_is_rejected() -> None:
    process = SupervisedProcess(_python("pass"), timeout=30, grace_period=1)
    await process.run()

    with pytest.raises(RuntimeError):
        await process.run()


def test_empty_argv_rejected() -> None:
    with pytest.raises(ValueError):
        SupervisedProcess([], timeout=1, grace_period=1)


def test_tail_returns_last_lines() -> None:
    from vigil.execution.supervisor import ProcessOutcome

    outcome = ProcessOutcome(
        exit_code=1, signal=None, timed_out=False, cancelled=False,
        stdout="\n".join(str(i) for i in range(15)), stderr="",
        final_state=ProcessState.EXITED, duration=0.1,
    )

    assert outcome.tail() == [str(i) for i in range(5, 15)]
    assert outcome.tail(0) == []
