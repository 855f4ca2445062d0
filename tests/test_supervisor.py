"""Testes do supervisor (máquina de estados + fila serializada).

Usa colaboradores falsos (launcher, probe, store, login) para não depender
do redshift real. Os comandos retornam `Future`s; os testes aguardam o
resultado e depois conferem o estado.
"""

import threading
import time
from concurrent.futures import Future
from datetime import datetime

import pytest

from executor import LaunchError
from models import ErrorKind, Failure, LocationError, RedshiftSettings, Success, WorkerState
from supervisor import RedshiftSupervisor, ScheduleTicker


TIMEOUT = 5


class FakeHandle:
    """Processo falso: o término é controlado pelo teste."""

    def __init__(self, pid, args):
        self.pid = pid
        self.args = args
        self.exit_future = Future()
        self.terminated = False

    def is_running(self):
        return not self.exit_future.done()

    def terminate(self):
        self.terminated = True
        if not self.exit_future.done():
            self.exit_future.set_result(-15)

    def crash(self):
        self.exit_future.set_result(1)


class FakeLauncher:
    def __init__(self):
        self.handles = []
        self.max_alive_at_spawn = 0
        self.fail_with = None

    def alive(self):
        return [h for h in self.handles if h.is_running()]

    def start(self, executable, args):
        if self.fail_with is not None:
            raise self.fail_with
        self.max_alive_at_spawn = max(self.max_alive_at_spawn, len(self.alive()))
        handle = FakeHandle(1000 + len(self.handles), list(args))
        self.handles.append(handle)
        return handle


class FakeProbe:
    """Probe ligado ao launcher falso; `stray` simula um processo perdido."""

    def __init__(self, launcher):
        self.launcher = launcher
        self.stray = False
        self.kill_calls = 0
        self.gate = None

    def is_running(self, name):
        if self.gate is not None:
            self.gate.wait(TIMEOUT)
        return self.stray or bool(self.launcher.alive())

    def kill_all(self, name):
        self.kill_calls += 1
        self.stray = False
        for handle in self.launcher.alive():
            handle.terminate()


class FakeStore:
    def __init__(self):
        self.saved = []

    def save(self, settings):
        self.saved.append(settings)


class FakeLoginAgent:
    def __init__(self):
        self.installed = []
        self.uninstalled = 0

    def install(self, command, *, start_now=False):
        self.installed.append((list(command), start_now))

    def uninstall(self):
        self.uninstalled += 1


@pytest.fixture
def binary(tmp_path):
    path = tmp_path / "redshift"
    path.write_text("")
    return str(path)


@pytest.fixture
def env(binary):
    """Monta supervisor + colaboradores falsos."""

    class Env:
        pass

    e = Env()
    e.launcher = FakeLauncher()
    e.probe = FakeProbe(e.launcher)
    e.store = FakeStore()
    e.login = FakeLoginAgent()
    e.resets = []
    e.quits = []
    e.now = datetime(2025, 12, 26, 12, 0)
    e.settings = RedshiftSettings(
        binary_path=binary,
        latitude="-23.5505",
        longitude="-46.6333",
        adjustment_method="quartz",
    )

    def reset(path):
        e.resets.append(path)
        return True

    e.supervisor = RedshiftSupervisor(
        e.settings,
        probe=e.probe,
        launcher=e.launcher,
        store=e.store,
        login_agent=e.login,
        launch_command=["redshift-tray"],
        reset=reset,
        clock=lambda: e.now,
        request_quit=lambda: e.quits.append(True),
    )
    yield e
    e.supervisor.shutdown()


def result(fut):
    return fut.result(timeout=TIMEOUT)


def test_enable_starts_worker_with_built_arguments(env):
    outcome = result(env.supervisor.set_enabled(True))

    assert isinstance(outcome, Success)
    state = env.supervisor.state
    assert state.desired_enabled is True
    assert state.observed_running is True
    assert state.worker_state == WorkerState.RUNNING
    assert state.status_message == ""
    assert env.launcher.handles[0].args == [
        "-l", "-23.5505:-46.6333", "-t", "6500:2700", "-m", "quartz",
    ]


def test_enable_with_missing_binary_never_runs(env, tmp_path):
    env.supervisor.apply_settings(
        RedshiftSettings(binary_path=str(tmp_path / "missing"), latitude="1", longitude="1")
    )
    outcome = result(env.supervisor.set_enabled(True))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.BINARY_NOT_FOUND
    state = env.supervisor.state
    assert state.desired_enabled is False
    assert state.observed_running is False
    assert state.status_message
    assert env.launcher.handles == []


def test_enable_with_invalid_latitude_does_not_launch(env, binary):
    result(env.supervisor.apply_settings(RedshiftSettings(binary_path=binary, latitude="91", longitude="0")))
    outcome = result(env.supervisor.set_enabled(True))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.CONFIG_INVALID
    assert env.launcher.handles == []
    assert env.supervisor.state.worker_state == WorkerState.STOPPED
    assert env.supervisor.state.status_message


def test_schedule_mode_ignores_coordinates(env, binary):
    env.now = datetime(2025, 12, 26, 22, 0)
    result(env.supervisor.apply_settings(
        RedshiftSettings(binary_path=binary, latitude="abc", use_schedule=True, night_temp=3000,
                         adjustment_method="quartz")
    ))
    outcome = result(env.supervisor.set_enabled(True))

    assert isinstance(outcome, Success)
    assert env.launcher.handles[-1].args == ["-O", "3000", "-m", "quartz"]


def test_launch_failure_collapses_state(env):
    env.launcher.fail_with = LaunchError("permission denied")
    outcome = result(env.supervisor.set_enabled(True))

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.LAUNCH_FAILED
    state = env.supervisor.state
    assert (state.desired_enabled, state.observed_running) == (False, False)
    assert "permission denied" in state.status_message


def test_status_message_cleared_on_next_operation(env):
    env.launcher.fail_with = LaunchError("boom")
    result(env.supervisor.set_enabled(True))
    assert env.supervisor.state.status_message

    env.launcher.fail_with = None
    result(env.supervisor.set_enabled(True))
    assert env.supervisor.state.status_message == ""


def test_disable_terminates_owned_kills_strays_and_resets(env, binary):
    result(env.supervisor.set_enabled(True))
    handle = env.launcher.handles[0]
    kills_before = env.probe.kill_calls

    outcome = result(env.supervisor.set_enabled(False))
    env.supervisor.drain(TIMEOUT)

    assert isinstance(outcome, Success)
    assert handle.terminated is True
    assert env.probe.kill_calls == kills_before + 1
    assert env.resets == [binary]
    state = env.supervisor.state
    assert (state.desired_enabled, state.observed_running) == (False, False)
    assert state.worker_state == WorkerState.STOPPED


def test_unexpected_exit_turns_everything_off(env):
    result(env.supervisor.set_enabled(True))

    env.launcher.handles[0].crash()
    env.supervisor.drain(TIMEOUT)

    state = env.supervisor.state
    assert state.desired_enabled is False
    assert state.observed_running is False
    assert state.worker_state == WorkerState.STOPPED
    # Sem respawn automático
    assert len(env.launcher.handles) == 1


def test_two_enables_never_run_two_workers(env):
    first = env.supervisor.set_enabled(True)
    second = env.supervisor.set_enabled(True)
    result(first)
    result(second)
    env.supervisor.drain(TIMEOUT)

    assert len(env.launcher.handles) == 2
    assert env.launcher.max_alive_at_spawn == 0
    assert len(env.launcher.alive()) == 1
    assert env.launcher.handles[0].terminated is True
    # O término do primeiro (pedido por nós) não derruba o segundo
    assert env.supervisor.state.observed_running is True


def test_stray_process_is_killed_before_launch(env):
    env.probe.stray = True
    result(env.supervisor.set_enabled(True))

    assert env.probe.kill_calls == 1
    assert env.probe.stray is False
    assert len(env.launcher.alive()) == 1


def test_refresh_running_state_adopts_stray(env):
    env.probe.stray = True
    result(env.supervisor.refresh_running_state())

    state = env.supervisor.state
    assert (state.desired_enabled, state.observed_running) == (True, True)

    env.probe.stray = False
    result(env.supervisor.refresh_running_state())
    assert env.supervisor.state.observed_running is False


def test_operations_use_snapshot_captured_at_call_time(env, binary):
    gate = threading.Event()
    env.probe.gate = gate
    blocked = env.supervisor.refresh_running_state()

    enable = env.supervisor.set_enabled(True)
    newer = RedshiftSettings(binary_path=binary, latitude="10", longitude="20", day_temp=5000,
                             night_temp=3000, adjustment_method="quartz")
    apply = env.supervisor.apply_settings(newer)
    gate.set()

    for fut in (blocked, enable, apply):
        result(fut)

    assert env.launcher.handles[0].args[:4] == ["-l", "-23.5505:-46.6333", "-t", "6500:2700"]
    assert env.launcher.handles[1].args[:4] == ["-l", "10:20", "-t", "5000:3000"]
    assert len(env.launcher.alive()) == 1


def test_apply_persists_and_restarts_when_enabled(env, binary):
    result(env.supervisor.set_enabled(True))
    newer = RedshiftSettings(binary_path=binary, latitude="1", longitude="2", night_temp=3400,
                             adjustment_method="quartz")

    outcome = result(env.supervisor.apply_settings(newer))
    env.supervisor.drain(TIMEOUT)

    assert isinstance(outcome, Success)
    assert env.store.saved == [newer]
    assert len(env.launcher.handles) == 2
    assert env.launcher.handles[0].terminated is True
    assert env.launcher.handles[1].args[:4] == ["-l", "1:2", "-t", "6500:3400"]
    assert env.supervisor.state.observed_running is True
    assert env.login.uninstalled == 1


def test_apply_when_disabled_syncs_with_schedule(env, binary):
    env.now = datetime(2025, 12, 26, 21, 30)
    newer = RedshiftSettings(binary_path=binary, use_schedule=True, adjustment_method="quartz")

    result(env.supervisor.apply_settings(newer))

    assert len(env.launcher.handles) == 1
    assert env.supervisor.state.desired_enabled is True


def test_apply_when_disabled_outside_schedule_stays_off(env, binary):
    env.now = datetime(2025, 12, 26, 12, 0)
    newer = RedshiftSettings(binary_path=binary, use_schedule=True, adjustment_method="quartz")

    result(env.supervisor.apply_settings(newer))

    assert env.launcher.handles == []
    assert env.supervisor.state.desired_enabled is False


def test_enabling_start_at_login_hands_off_and_quits(env):
    result(env.supervisor.set_enabled(True))
    newer = RedshiftSettings(**{**_fields(env.settings), "start_at_login": True})

    outcome = result(env.supervisor.apply_settings(newer))

    assert isinstance(outcome, Success)
    assert env.login.installed == [(["redshift-tray"], True)]
    assert env.quits == [True]
    # Sem restart: a instância registrada no login assume
    assert len(env.launcher.handles) == 1


def test_start_at_login_unchanged_or_disabled_never_quits(env):
    on = RedshiftSettings(**{**_fields(env.settings), "start_at_login": True})
    result(env.supervisor.apply_settings(on))
    assert env.quits == [True]

    # true -> true: reinstala sem encerrar
    result(env.supervisor.apply_settings(on))
    assert env.quits == [True]
    assert env.login.installed[-1] == (["redshift-tray"], False)

    # true -> false: remove o registro e reinicia se ligado
    result(env.supervisor.set_enabled(True))
    off = RedshiftSettings(**{**_fields(env.settings), "start_at_login": False})
    result(env.supervisor.apply_settings(off))
    env.supervisor.drain(TIMEOUT)

    assert env.quits == [True]
    assert env.login.uninstalled == 1
    assert env.supervisor.state.observed_running is True


def test_schedule_tick_is_ignored_outside_schedule_mode(env):
    assert env.supervisor.schedule_tick() is None
    assert env.launcher.handles == []


def test_schedule_tick_enables_and_disables(env, binary):
    env.now = datetime(2025, 12, 26, 6, 30)
    result(env.supervisor.apply_settings(
        RedshiftSettings(binary_path=binary, use_schedule=True, adjustment_method="quartz")
    ))
    assert env.supervisor.state.desired_enabled is True

    # Ainda dentro da janela: nada muda
    result(env.supervisor.schedule_tick())
    assert len(env.launcher.handles) == 1

    env.now = datetime(2025, 12, 26, 7, 0)
    result(env.supervisor.schedule_tick())
    state = env.supervisor.state
    assert (state.desired_enabled, state.observed_running) == (False, False)
    assert env.resets == [binary]


def test_reset_color_keeps_state(env, binary):
    result(env.supervisor.set_enabled(True))
    outcome = result(env.supervisor.reset_color())

    assert isinstance(outcome, Success)
    assert env.resets == [binary]
    assert env.supervisor.state.observed_running is True


def test_reset_color_requires_binary(env, tmp_path):
    missing = str(tmp_path / "missing")
    result(env.supervisor.apply_settings(RedshiftSettings(binary_path=missing)))
    outcome = result(env.supervisor.reset_color())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.BINARY_NOT_FOUND
    assert env.resets == []


def test_locating_is_mutually_exclusive_and_failure_only_sets_status(env):
    result(env.supervisor.set_enabled(True))

    assert env.supervisor.begin_locating() is True
    assert env.supervisor.begin_locating() is False
    assert env.supervisor.state.is_locating is True

    env.supervisor.finish_locating(Failure(LocationError.TIMED_OUT))
    state = env.supervisor.state
    assert state.is_locating is False
    assert state.status_message.startswith("Falha na localização")
    assert state.observed_running is True

    assert env.supervisor.begin_locating() is True
    env.supervisor.finish_locating(Success((1.0, 2.0)))
    assert env.supervisor.state.is_locating is False


def test_listeners_receive_state_updates(env):
    seen = []
    env.supervisor.add_listener(seen.append)

    result(env.supervisor.set_enabled(True))

    assert seen[0].desired_enabled is True
    assert seen[-1].worker_state == WorkerState.RUNNING
    assert any(s.worker_state == WorkerState.STARTING for s in seen)


def test_last_notified_state_is_the_current_state(env):
    """Atualizações da thread do chamador e da fila chegam em ordem."""
    seen = []
    env.supervisor.add_listener(seen.append)

    for i in range(20):
        env.supervisor.set_enabled(i % 2 == 0)
    env.supervisor.drain(TIMEOUT)

    assert seen[-1] == env.supervisor.state


def test_unexpected_error_stops_the_owned_worker(env, binary):
    """Erro inesperado na fila desliga o estado e também o processo."""
    result(env.supervisor.apply_settings(RedshiftSettings(binary_path=binary, use_schedule=True)))
    env.now = datetime(2025, 12, 26, 22, 0)
    result(env.supervisor.set_enabled(True))
    assert env.launcher.alive()

    def broken_clock():
        raise RuntimeError("relógio indisponível")

    env.supervisor.clock = broken_clock
    outcome = result(env.supervisor.schedule_tick())

    assert isinstance(outcome, Failure)
    assert outcome.kind == ErrorKind.LAUNCH_FAILED
    assert env.launcher.alive() == []
    assert env.launcher.handles[0].terminated is True
    state = env.supervisor.state
    assert state.observed_running is False
    assert state.desired_enabled is False
    assert state.worker_state == WorkerState.STOPPED


def test_start_refreshes_and_arms_ticker(env):
    env.probe.stray = True
    env.supervisor.start()
    env.supervisor.drain(TIMEOUT)

    assert env.supervisor.ticker.is_running() is True
    assert env.supervisor.state.observed_running is True

    env.supervisor.ticker.stop()
    assert env.supervisor.ticker.is_running() is False


def test_schedule_ticker_ticks_immediately_and_stops():
    ticks = []
    ticker = ScheduleTicker(lambda: ticks.append(time.monotonic()), interval_seconds=0.01)

    ticker.start()
    deadline = time.monotonic() + TIMEOUT
    while len(ticks) < 3 and time.monotonic() < deadline:
        time.sleep(0.01)
    ticker.stop()
    count = len(ticks)
    time.sleep(0.05)

    assert count >= 3
    assert len(ticks) == count
    assert ticker.is_running() is False


def test_schedule_ticker_rearm_replaces_previous_thread():
    ticker = ScheduleTicker(lambda: None, interval_seconds=10)
    ticker.start()
    first = ticker._thread
    ticker.start()

    assert first is not ticker._thread
    assert first.is_alive() is False
    ticker.stop()


def _fields(settings):
    from dataclasses import asdict

    return asdict(settings)
