"""Супервизия одного дочернего процесса тест-раннера.

``SupervisedProcess`` запускает процесс в отдельной группе, построчно
читает stdout/stderr и следит за двумя сроками: бюджетом времени набора
и окном ожидания после SIGTERM. Состояния::

    pending → running → exited
                      → terminating → exited   (завершился после SIGTERM)
                                    → killed   (понадобился SIGKILL)

Переход в ``terminating`` вызывают истечение бюджета (``timed_out``) или
внешний запрос остановки (``cancelled``).
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from vigil.exceptions import SuiteLaunchError

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]

_STREAM_LIMIT = 1024 * 1024
_DRAIN_TIMEOUT = 5.0
_KILL_WAIT_TIMEOUT = 5.0


class ProcessState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    TERMINATING = "terminating"
    KILLED = "killed"
    EXITED = "exited"


@dataclass(frozen=True)
class ProcessOutcome:
    """Итог супервизии процесса.

    Attributes:
        exit_code: Код выхода; None, если процесс убит сигналом.
        signal: Имя сигнала, которым завершён процесс (``SIGTERM``, ``SIGKILL``).
        timed_out: Процесс остановлен по истечении бюджета времени.
        cancelled: Процесс остановлен по внешнему запросу.
        stdout: Захваченный stdout (строки через ``\\n``).
        stderr: Захваченный stderr.
        final_state: ``exited`` или ``killed``.
        duration: Время от запуска до выхода, сек.
    """

    exit_code: int | None
    signal: str | None
    timed_out: bool
    cancelled: bool
    stdout: str
    stderr: str
    final_state: ProcessState
    duration: float

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.cancelled

    def tail(self, lines: int = 10) -> list[str]:
        """Последние ``lines`` строк stdout."""
        if lines <= 0:
            return []
        return self.stdout.splitlines()[-lines:]


class SupervisedProcess:
    """Дочерний процесс под надзором с эскалацией SIGTERM → SIGKILL.

    Экземпляр одноразовый: ``run()`` вызывается ровно один раз.
    """

    def __init__(
        self,
        argv: Sequence[str],
        *,
        timeout: float,
        grace_period: float,
        env: dict[str, str] | None = None,
        cwd: str | None = None,
        on_stdout: LineCallback | None = None,
        on_stderr: LineCallback | None = None,
        name: str | None = None,
    ) -> None:
        if not argv:
            raise ValueError("argv must not be empty")
        self._argv = list(argv)
        self._timeout = timeout
        self._grace_period = grace_period
        self._env = env
        self._cwd = cwd
        self._on_stdout = on_stdout
        self._on_stderr = on_stderr
        self.name = name or self._argv[0]

        self._state = ProcessState.PENDING
        self._proc: asyncio.subprocess.Process | None = None
        self._stop_requested = asyncio.Event()
        self._stdout_lines: list[str] = []
        self._stderr_lines: list[str] = []

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    def request_termination(self) -> None:
        """Попросить остановить процесс (SIGTERM, затем SIGKILL). Идемпотентно."""
        self._stop_requested.set()

    async def run(self) -> ProcessOutcome:
        """Запустить процесс и дождаться его завершения.

        Raises:
            SuiteLaunchError: Процесс не удалось запустить.
        """
        if self._state is not ProcessState.PENDING:
            raise RuntimeError(f"Process {self.name!r} has already been started")

        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._env,
                cwd=self._cwd,
                limit=_STREAM_LIMIT,
                start_new_session=hasattr(os, "killpg"),
            )
        except OSError as exc:
            raise SuiteLaunchError(self.name, str(exc)) from exc

        self._proc = proc
        self._state = ProcessState.RUNNING
        logger.debug("Процесс %s запущен: pid=%d", self.name, proc.pid)

        readers = [
            asyncio.create_task(self._pump(proc.stdout, self._stdout_lines, self._on_stdout)),
            asyncio.create_task(self._pump(proc.stderr, self._stderr_lines, self._on_stderr)),
        ]
        wait_task = asyncio.create_task(proc.wait())
        stop_task = asyncio.create_task(self._stop_requested.wait())
        timed_out = False
        cancelled = False

        try:
            done, _ = await asyncio.wait(
                {wait_task, stop_task},
                timeout=self._timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if wait_task not in done:
                if stop_task in done:
                    cancelled = True
                    logger.info("Процесс %s: запрошена остановка", self.name)
                else:
                    timed_out = True
                    logger.warning(
                        "Процесс %s превысил бюджет %.0f с, останавливаем",
                        self.name, self._timeout,
                    )
                await self._escalate(wait_task)
        except asyncio.CancelledError:
            self._send_signal(_SIGKILL)
            for task in readers:
                task.cancel()
            raise
        finally:
            stop_task.cancel()

        await self._drain(readers)

        returncode = proc.returncode
        if self._state is not ProcessState.KILLED:
            self._state = ProcessState.EXITED

        exit_code: int | None = returncode
        signal_name: str | None = None
        if returncode is not None and returncode < 0:
            exit_code = None
            signal_name = _signal_name(-returncode)

        return ProcessOutcome(
            exit_code=exit_code,
            signal=signal_name,
            timed_out=timed_out,
            cancelled=cancelled,
            stdout="\n".join(self._stdout_lines),
            stderr="\n".join(self._stderr_lines),
            final_state=self._state,
            duration=time.monotonic() - started,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _escalate(self, wait_task: asyncio.Task) -> None:
        self._state = ProcessState.TERMINATING
        self._send_signal(signal.SIGTERM)
        try:
            await asyncio.wait_for(asyncio.shield(wait_task), timeout=self._grace_period)
            return
        except asyncio.TimeoutError:
            pass

        logger.warning(
            "Процесс %s не завершился за %.1f с после SIGTERM, отправляем SIGKILL",
            self.name, self._grace_period,
        )
        self._state = ProcessState.KILLED
        self._send_signal(_SIGKILL)
        try:
            await asyncio.wait_for(asyncio.shield(wait_task), timeout=_KILL_WAIT_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("Процесс %s не завершился после SIGKILL", self.name)

    def _send_signal(self, sig: int) -> None:
        proc = self._proc
        if proc is None or proc.returncode is not None:
            return
        try:
            if hasattr(os, "killpg"):
                # start_new_session=True: pgid совпадает с pid
                os.killpg(proc.pid, sig)
            elif sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()
        except ProcessLookupError:
            pass
        except PermissionError:
            if sig == signal.SIGTERM:
                proc.terminate()
            else:
                proc.kill()

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        sink: list[str],
        callback: LineCallback | None,
    ) -> None:
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError as exc:
                logger.warning("Процесс %s: слишком длинная строка вывода: %s", self.name, exc)
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            sink.append(line)
            if callback is not None:
                try:
                    callback(line)
                except Exception as exc:
                    logger.warning(
                        "Процесс %s: обработчик вывода упал: %s", self.name, exc, exc_info=True,
                    )

    async def _drain(self, readers: list[asyncio.Task]) -> None:
        # Внуки процесса (браузеры) могут держать пайпы открытыми после выхода
        try:
            await asyncio.wait_for(asyncio.gather(*readers), timeout=_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(
                "Процесс %s: вывод не закрыт через %.0f с после выхода", self.name, _DRAIN_TIMEOUT,
            )


_SIGKILL: int = getattr(signal, "SIGKILL", signal.SIGTERM)


def _signal_name(signum: int) -> str:
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"SIG{signum}"
