from __future__ import annotations

"""Supervisor do redshift: fila serializada, estado e agenda.

Este módulo contém a máquina de estados que decide se o redshift deve estar
rodando, com quais argumentos, e que liga/desliga/reinicia o processo.

Regras do supervisor:
    - Toda operação que mexe no processo (start/stop/restart/probe) roda em
      uma fila FIFO com um único worker: nunca há duas ao mesmo tempo.
    - Cada comando público captura o snapshot da configuração (e do estado
      ligado/desligado) no momento da chamada; a operação enfileirada usa
      esse snapshot, não o estado vivo.
    - Falhas não sobem além do supervisor: viram `Failure`, `status_message`
      e estado desligado. Não existe retry automático.
    - Se o redshift morrer sozinho, o estado vai para desligado (sem respawn).
    - A agenda manual é avaliada a cada 60s por um `ScheduleTicker` próprio.
"""

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Sequence

from executor import (
    WORKER_PROCESS_NAME,
    LaunchError,
    ProcessLauncher,
    WorkerHandle,
    build_redshift_arguments,
    run_reset,
)
from models import (
    ErrorKind,
    Failure,
    RedshiftSettings,
    Result,
    Success,
    SupervisorState,
    WorkerState,
)
from probe import ProcessProbe
from util import has_valid_coordinates, settings_within_schedule


TICK_SECONDS = 60.0


class ScheduleTicker:
    """Timer periódico em thread própria (liga/desliga explícito).

    Ao iniciar, chama o callback imediatamente e depois a cada
    `interval_seconds`. Reiniciar cancela o timer anterior.
    """

    def __init__(self, callback: Callable[[], Any], interval_seconds: float = TICK_SECONDS) -> None:
        self.callback = callback
        self.interval_seconds = interval_seconds
        self._stop_event: threading.Event | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """(Re)arma o timer."""
        self.stop()
        stop_event = threading.Event()
        self._stop_event = stop_event
        self._thread = threading.Thread(
            target=self._loop,
            args=(stop_event,),
            name="redshift-schedule-ticker",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        """Desarma o timer e aguarda a thread terminar."""
        if self._stop_event is None:
            return
        self._stop_event.set()
        thread = self._thread
        self._stop_event = None
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self, stop_event: threading.Event) -> None:
        while True:
            try:
                self.callback()
            except Exception:
                logging.exception("SCHEDULER - Erro na batida da agenda")
            if stop_event.wait(self.interval_seconds):
                return


class RedshiftSupervisor:
    """Máquina de estados que supervisiona o processo redshift.

    Colaboradores (probe, launcher, store, login_agent, reset) são injetáveis
    para facilitar testes. Os métodos públicos retornam `Future`s que
    resolvem para `Success(estado)` ou `Failure(tipo, mensagem)`.
    """

    def __init__(
        self,
        settings: RedshiftSettings,
        *,
        probe: ProcessProbe | None = None,
        launcher: ProcessLauncher | None = None,
        store: Any = None,
        login_agent: Any = None,
        launch_command: Sequence[str] | None = None,
        reset: Callable[[str], bool] = run_reset,
        clock: Callable[[], datetime] = datetime.now,
        tick_seconds: float = TICK_SECONDS,
        request_quit: Callable[[], None] | None = None,
    ) -> None:
        self.probe = probe or ProcessProbe()
        self.launcher = launcher or ProcessLauncher()
        self.store = store
        self.login_agent = login_agent
        self.launch_command = list(launch_command or [])
        self.reset = reset
        self.clock = clock
        self.request_quit = request_quit

        self._lock = threading.RLock()
        self._settings = settings
        self._applied_start_at_login = settings.start_at_login
        self._state = SupervisorState()
        self._listeners: list[Callable[[SupervisorState], None]] = []

        self._queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="redshift-supervisor")
        # Só é acessado de dentro da fila.
        self._handle: WorkerHandle | None = None

        self._ticker = ScheduleTicker(self.schedule_tick, tick_seconds)

    # -------------------- Estado --------------------
    @property
    def state(self) -> SupervisorState:
        with self._lock:
            return self._state

    @property
    def settings(self) -> RedshiftSettings:
        with self._lock:
            return self._settings

    @property
    def ticker(self) -> ScheduleTicker:
        return self._ticker

    def add_listener(self, listener: Callable[[SupervisorState], None]) -> None:
        """Registra um callback chamado a cada mudança de estado.

        O callback pode ser chamado de qualquer thread, sempre com o lock do
        supervisor adquirido: não deve bloquear esperando outra thread.
        """
        self._listeners.append(listener)

    def _update_state(self, **changes: Any) -> SupervisorState:
        # Notifica ainda com o lock: os listeners recebem os estados na
        # mesma ordem em que foram gravados.
        with self._lock:
            self._state = replace(self._state, **changes)
            state = self._state
            for listener in list(self._listeners):
                try:
                    listener(state)
                except Exception:
                    logging.exception("SUPERVISOR - Listener de estado falhou")
        return state

    # -------------------- Ciclo de vida --------------------
    def start(self) -> None:
        """Sincroniza com o SO e arma o timer da agenda."""
        self.refresh_running_state()
        self._ticker.start()

    def shutdown(self, wait: bool = True) -> None:
        """Desarma o timer e esvazia a fila.

        O redshift continua rodando: a próxima execução do app o encontra
        pelo probe.
        """
        self._ticker.stop()
        self._queue.shutdown(wait=wait)

    def drain(self, timeout: float | None = None) -> None:
        """Aguarda todas as operações enfileiradas até agora."""
        self._queue.submit(lambda: None).result(timeout=timeout)

    # -------------------- Comandos públicos --------------------
    def set_enabled(self, enabled: bool) -> Future:
        """Liga/desliga o redshift com o snapshot atual."""
        with self._lock:
            snapshot = self._settings
        self._update_state(desired_enabled=enabled)
        return self._submit(self._set_enabled_internal, enabled, snapshot)

    def apply_settings(self, settings: RedshiftSettings) -> Future:
        """Persiste e aplica um novo snapshot.

        - Se `start_at_login` passou de False para True, registra o login e
          pede o encerramento desta instância (a instância gerenciada pelo
          sistema assume).
        - Se estiver ligado, reinicia por completo (stop + start).
        - Se estiver desligado, sincroniza com o SO e com a agenda.
        """
        if self.store is not None:
            self.store.save(settings)

        with self._lock:
            self._settings = settings
            enabled = self._state.desired_enabled
        hand_off = settings.start_at_login and not self._applied_start_at_login
        self._update_login_agent(settings, start_now=hand_off)
        self._applied_start_at_login = settings.start_at_login

        if hand_off:
            logging.info("SUPERVISOR - Início no login habilitado: encerrando esta instância")
            if self.request_quit is not None:
                self.request_quit()
            return self._completed(Success(self.state))

        return self._submit(self._apply_internal, settings, enabled)

    def refresh_running_state(self) -> Future:
        """Consulta o SO e atualiza o estado observado (sem mexer no processo)."""
        return self._submit(self._refresh_internal)

    def reset_color(self) -> Future:
        """Dispara `redshift -x` sem alterar o estado."""
        with self._lock:
            snapshot = self._settings
        return self._submit(self._reset_color_internal, snapshot)

    def schedule_tick(self) -> Future | None:
        """Batida do timer: liga/desliga conforme a agenda manual.

        Returns:
            O `Future` da sincronização, ou None se a agenda estiver desligada.
        """
        with self._lock:
            snapshot = self._settings
            enabled = self._state.desired_enabled
        if not snapshot.use_schedule:
            return None
        return self._submit(self._sync_with_schedule_internal, snapshot, enabled)

    # -------------------- Localização --------------------
    def begin_locating(self) -> bool:
        """Marca uma consulta de localização em andamento.

        Returns:
            False se já houver uma consulta em andamento (pedido rejeitado).
        """
        with self._lock:
            if self._state.is_locating:
                return False
            self._update_state(is_locating=True, status_message="")
        return True

    def finish_locating(self, result: Result) -> None:
        """Encerra a consulta de localização. Não afeta o processo."""
        if isinstance(result, Failure):
            reason = getattr(result.kind, "description", None) or result.message
            self._update_state(
                is_locating=False,
                status_message=f"Falha na localização: {reason}",
            )
            return
        self._update_state(is_locating=False)

    # -------------------- Operações (rodam na fila) --------------------
    def _submit(self, fn: Callable[..., Result], *args: Any) -> Future:
        return self._queue.submit(self._run_operation, fn, *args)

    def _run_operation(self, fn: Callable[..., Result], *args: Any) -> Result:
        try:
            return fn(*args)
        except Exception as exc:
            logging.exception("SUPERVISOR - Erro inesperado em %s", getattr(fn, "__name__", fn))
            # O estado vai para desligado: o processo também precisa ir.
            try:
                self._release_handle()
            except Exception:
                logging.exception("SUPERVISOR - Falha ao encerrar o processo próprio")
            try:
                self.probe.kill_all(WORKER_PROCESS_NAME)
            except Exception:
                logging.exception("SUPERVISOR - Falha ao encerrar processos %s", WORKER_PROCESS_NAME)
            return self._fail(ErrorKind.LAUNCH_FAILED, f"Erro inesperado: {exc}")

    def _set_enabled_internal(self, enabled: bool, settings: RedshiftSettings) -> Result:
        if enabled:
            return self._start_internal(settings)
        return self._stop_internal(settings)

    def _start_internal(self, settings: RedshiftSettings) -> Result:
        self._update_state(status_message="", worker_state=WorkerState.STARTING)

        if not os.path.isfile(settings.binary_path):
            return self._fail(
                ErrorKind.BINARY_NOT_FOUND,
                f"Redshift não encontrado em {settings.binary_path}",
            )

        if not settings.use_schedule and not has_valid_coordinates(settings.latitude, settings.longitude):
            return self._fail(
                ErrorKind.CONFIG_INVALID,
                "Informe latitude/longitude válidas para o modo Nascer/Pôr do sol, "
                "ou mude para a Agenda manual.",
            )

        self._release_handle()
        if self.probe.is_running(WORKER_PROCESS_NAME):
            logging.info("SUPERVISOR - redshift perdido encontrado: encerrando antes de iniciar")
            self.probe.kill_all(WORKER_PROCESS_NAME)

        args = build_redshift_arguments(settings)
        try:
            handle = self.launcher.start(settings.binary_path, args)
        except LaunchError as exc:
            return self._fail(ErrorKind.LAUNCH_FAILED, f"Falha ao iniciar o redshift: {exc}")

        self._handle = handle
        handle.exit_future.add_done_callback(lambda _fut, h=handle: self._on_worker_exit(h))
        logging.info("SUPERVISOR - redshift ligado")
        state = self._update_state(
            desired_enabled=True,
            observed_running=True,
            worker_state=WorkerState.RUNNING,
        )
        return Success(state)

    def _stop_internal(self, settings: RedshiftSettings) -> Result:
        self._update_state(status_message="", worker_state=WorkerState.STOPPING)

        self._release_handle()
        self.probe.kill_all(WORKER_PROCESS_NAME)
        state = self._update_state(
            desired_enabled=False,
            observed_running=False,
            worker_state=WorkerState.STOPPED,
        )
        self.reset(settings.binary_path)
        logging.info("SUPERVISOR - redshift desligado")
        return Success(state)

    def _apply_internal(self, settings: RedshiftSettings, enabled: bool) -> Result:
        if enabled:
            # Reinício completo: os argumentos dependem de posição, não há
            # reconfiguração parcial.
            self._stop_internal(settings)
            return self._start_internal(settings)

        self._refresh_internal()
        if settings.use_schedule:
            return self._sync_with_schedule_internal(settings, self.state.desired_enabled)
        return Success(self.state)

    def _refresh_internal(self) -> Result:
        running = self.probe.is_running(WORKER_PROCESS_NAME)
        state = self._update_state(
            desired_enabled=running,
            observed_running=running,
            worker_state=WorkerState.RUNNING if running else WorkerState.STOPPED,
        )
        return Success(state)

    def _sync_with_schedule_internal(self, settings: RedshiftSettings, enabled: bool) -> Result:
        should_enable = settings_within_schedule(settings, self.clock())
        if should_enable != enabled:
            logging.info("SUPERVISOR - Agenda pede redshift %s", "ligado" if should_enable else "desligado")
            return self._set_enabled_internal(should_enable, settings)
        return Success(self.state)

    def _reset_color_internal(self, settings: RedshiftSettings) -> Result:
        self._update_state(status_message="")
        if not os.path.isfile(settings.binary_path):
            message = f"Redshift não encontrado em {settings.binary_path}"
            self._update_state(status_message=message)
            return Failure(ErrorKind.BINARY_NOT_FOUND, message)
        self.reset(settings.binary_path)
        return Success(self.state)

    def _worker_exited_internal(self, handle: WorkerHandle) -> Result:
        if handle is not self._handle:
            # Encerramento pedido por nós (stop/restart): não é falha.
            return Success(self.state)
        self._handle = None
        logging.warning("SUPERVISOR - redshift terminou inesperadamente (pid=%s)", handle.pid)
        state = self._update_state(
            desired_enabled=False,
            observed_running=False,
            worker_state=WorkerState.STOPPED,
        )
        return Success(state)

    # -------------------- Auxiliares --------------------
    def _on_worker_exit(self, handle: WorkerHandle) -> None:
        """Callback de término do processo (roda na thread que o observa)."""
        try:
            self._submit(self._worker_exited_internal, handle)
        except RuntimeError:
            logging.debug("SUPERVISOR - Fila encerrada; término de pid=%s ignorado", handle.pid)

    def _release_handle(self) -> None:
        """Solta o processo próprio (se houver) e pede o encerramento dele."""
        handle = self._handle
        self._handle = None
        if handle is not None and handle.is_running():
            handle.terminate()

    def _fail(self, kind: ErrorKind, message: str) -> Failure:
        logging.warning("SUPERVISOR - %s: %s", kind.value, message)
        self._update_state(
            desired_enabled=False,
            observed_running=False,
            worker_state=WorkerState.STOPPED,
            status_message=message,
        )
        return Failure(kind, message)

    def _update_login_agent(self, settings: RedshiftSettings, *, start_now: bool) -> None:
        if self.login_agent is None:
            return
        if settings.start_at_login:
            self.login_agent.install(self.launch_command, start_now=start_now)
        else:
            self.login_agent.uninstall()

    @staticmethod
    def _completed(result: Result) -> Future:
        fut: Future = Future()
        fut.set_result(result)
        return fut
