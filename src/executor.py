from __future__ import annotations

"""Execução do redshift via subprocess.

Este módulo centraliza a montagem dos argumentos do redshift e a criação
dos processos.

Regras atuais:
    - Agenda manual: temperatura fixa `-O <noite>` + `-m <método>`.
    - Nascer/pôr do sol: `-l lat:lon -t dia:noite -m <método>`.
    - Gamma (`-g`) e brilho (`-b`) vêm depois, nessa ordem, quando preenchidos.
    - Reset de cor: `redshift -x`, sem aguardar o término.
"""

import logging
import os
import subprocess
import threading
from concurrent.futures import Future
from typing import Sequence

from models import RedshiftSettings


WORKER_PROCESS_NAME = "redshift"


class LaunchError(Exception):
    """O redshift não pôde ser iniciado (binário ausente ou recusado pelo SO)."""


def brightness_argument(settings: RedshiftSettings) -> str:
    """Resolve o valor do argumento de brilho.

    Na agenda manual a temperatura é fixa, então o brilho também precisa ser
    um valor único: se o usuário informou `dia:noite`, usa o valor da noite.

    Returns:
        Texto para `-b`, ou string vazia quando não há brilho configurado.
    """
    raw = (settings.brightness or "").strip()
    if not raw:
        return ""

    if settings.use_schedule:
        parts = [p for p in raw.split(":") if p]
        if len(parts) >= 2:
            return parts[1]

    return raw


def build_redshift_arguments(settings: RedshiftSettings) -> list[str]:
    """Monta os argumentos de linha de comando do redshift.

    A ordem importa para o redshift: grupo do modo primeiro, depois gamma e
    por último brilho.

    Args:
        settings: Snapshot da configuração.

    Returns:
        Lista de argumentos (sem o executável).
    """
    if settings.use_schedule:
        args = ["-O", str(settings.night_temp), "-m", settings.adjustment_method]
    else:
        args = [
            "-l", f"{settings.latitude}:{settings.longitude}",
            "-t", f"{settings.day_temp}:{settings.night_temp}",
            "-m", settings.adjustment_method,
        ]

    if (settings.gamma or "").strip():
        args.extend(["-g", settings.gamma])

    brightness = brightness_argument(settings)
    if brightness:
        args.extend(["-b", brightness])

    return args


def build_reset_command(binary_path: str) -> list[str]:
    """Comando de reset (cor neutra) do redshift."""
    return [binary_path, "-x"]


class WorkerHandle:
    """Processo redshift iniciado por este app.

    `exit_future` é resolvido uma única vez, com o código de saída, quando o
    processo termina por qualquer motivo (inclusive morto por fora).
    """

    def __init__(self, process: subprocess.Popen) -> None:
        self._process = process
        self.exit_future: Future[int] = Future()
        self._watcher = threading.Thread(
            target=self._wait_for_exit,
            name=f"redshift-watch-{process.pid}",
            daemon=True,
        )
        self._watcher.start()

    @property
    def pid(self) -> int:
        return self._process.pid

    def _wait_for_exit(self) -> None:
        code = self._process.wait()
        logging.info("EXECUTOR - redshift (pid=%s) finalizado com código %s", self.pid, code)
        self.exit_future.set_result(code)

    def is_running(self) -> bool:
        """Indica se o processo ainda não terminou."""
        return not self.exit_future.done() and self._process.poll() is None

    def terminate(self) -> None:
        """Pede o encerramento do processo (idempotente)."""
        if self._process.poll() is not None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    def wait(self, timeout: float | None = None) -> int:
        """Aguarda o término e retorna o código de saída."""
        return self.exit_future.result(timeout=timeout)


class ProcessLauncher:
    """Inicia processos do redshift e devolve um `WorkerHandle`."""

    def start(self, executable: str, args: Sequence[str]) -> WorkerHandle:
        """Inicia o executável com os argumentos informados.

        Raises:
            LaunchError: Se o binário não existir ou o SO recusar o spawn.
        """
        if not os.path.isfile(executable):
            raise LaunchError(f"executável não encontrado: {executable}")

        cmd = [executable, *[str(a) for a in args]]
        logging.info("EXECUTOR - Iniciando: %s", " ".join(cmd))
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise LaunchError(str(exc)) from exc

        return WorkerHandle(process)


def run_reset(binary_path: str) -> bool:
    """Dispara `redshift -x` sem aguardar o resultado.

    O processo filho é coletado em segundo plano para não virar zumbi.

    Returns:
        True se o processo foi disparado; False se o binário não existe ou o
        SO recusou o spawn.
    """
    if not os.path.isfile(binary_path):
        return False

    try:
        process = subprocess.Popen(
            build_reset_command(binary_path),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        logging.warning("EXECUTOR - Falha ao resetar cor: %s", exc)
        return False

    threading.Thread(target=process.wait, name="redshift-reset-reaper", daemon=True).start()
    return True
