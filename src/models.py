from __future__ import annotations

"""Modelos de dados do redshift-tray.

Este módulo concentra as estruturas de dados (dataclasses) usadas pelo
supervisor, pela GUI e pela camada de persistência.

Objetivos:
    - Definir contratos simples e estáveis entre camadas.
    - Facilitar serialização (ex.: JSON no SQLite) e exibição na interface.
"""

import enum
import shutil
import sys
from dataclasses import dataclass, field


def default_binary_path() -> str:
    """Caminho padrão do executável do redshift para a plataforma atual."""
    if sys.platform == "darwin":
        return "/opt/homebrew/bin/redshift"
    return shutil.which("redshift") or "/usr/bin/redshift"


def default_adjustment_method() -> str:
    """Método de ajuste (`-m`) padrão para a plataforma atual."""
    return "quartz" if sys.platform == "darwin" else "randr"


@dataclass(frozen=True, slots=True)
class ScheduleWindow:
    """Janela diária da agenda manual (hora/minuto de início e fim)."""

    start_hour: int
    start_minute: int
    end_hour: int
    end_minute: int


@dataclass(frozen=True, slots=True)
class RedshiftSettings:
    """Configuração completa do redshift (snapshot imutável).

    Um novo snapshot é criado a cada edição e substitui o anterior por
    inteiro ao aplicar.

    Observações:
        - `latitude`/`longitude` são strings, como digitadas pelo usuário;
          a validade só é verificada ao ligar no modo nascer/pôr do sol.
        - `gamma` e `brightness` são repassados ao redshift como texto.
        - `use_schedule` escolhe entre o modo agenda manual (True) e o modo
          nascer/pôr do sol (False). Os campos do modo inativo são mantidos,
          mas ignorados.
    """

    binary_path: str = field(default_factory=default_binary_path)
    latitude: str = "0.0000"
    longitude: str = "0.0000"
    day_temp: int = 6500
    night_temp: int = 2700
    gamma: str = ""
    brightness: str = ""
    use_schedule: bool = False
    schedule_start_hour: int = 20
    schedule_start_minute: int = 0
    schedule_end_hour: int = 7
    schedule_end_minute: int = 0
    start_at_login: bool = False
    adjustment_method: str = field(default_factory=default_adjustment_method)

    @property
    def schedule(self) -> ScheduleWindow:
        """Janela da agenda manual deste snapshot."""
        return ScheduleWindow(
            start_hour=self.schedule_start_hour,
            start_minute=self.schedule_start_minute,
            end_hour=self.schedule_end_hour,
            end_minute=self.schedule_end_minute,
        )


class WorkerState(str, enum.Enum):
    """Estado do processo redshift do ponto de vista do supervisor."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class SupervisorState:
    """Estado observável do supervisor.

    `desired_enabled` é o último valor pedido (usuário, agenda ou apply) e
    `observed_running` é a melhor informação disponível sobre o processo.
    Os dois podem divergir enquanto uma operação está na fila.
    """

    desired_enabled: bool = False
    observed_running: bool = False
    is_locating: bool = False
    status_message: str = ""
    worker_state: WorkerState = WorkerState.STOPPED


class ErrorKind(str, enum.Enum):
    """Tipos de falha reportados pelas operações do supervisor."""

    CONFIG_INVALID = "config_invalid"
    BINARY_NOT_FOUND = "binary_not_found"
    LAUNCH_FAILED = "launch_failed"
    PROBE_FAILED = "probe_failed"
    LOCATION_FAILED = "location_failed"


class LocationError(str, enum.Enum):
    """Motivos de falha da consulta de localização."""

    PERMISSION_DENIED = "permission_denied"
    UNAVAILABLE = "unavailable"
    TIMED_OUT = "timed_out"

    @property
    def description(self) -> str:
        return _LOCATION_ERROR_TEXT[self]


_LOCATION_ERROR_TEXT = {
    LocationError.PERMISSION_DENIED: "permissão de localização negada. Habilite-a nas configurações do sistema.",
    LocationError.UNAVAILABLE: "não foi possível obter a localização atual.",
    LocationError.TIMED_OUT: "a consulta de localização expirou. Verifique a permissão e tente novamente.",
}


@dataclass(frozen=True, slots=True)
class Success:
    """Resultado bem-sucedido de uma operação."""

    value: object = None


@dataclass(frozen=True, slots=True)
class Failure:
    """Resultado com falha de uma operação.

    `kind` é um `ErrorKind` (operações do supervisor) ou um `LocationError`
    (consulta de localização).
    """

    kind: ErrorKind | LocationError
    message: str = ""


Result = Success | Failure
