from __future__ import annotations

"""Controller da GUI do redshift-tray.

Este módulo implementa a camada de controle (no padrão MVC-ish) responsável por:
    - Carregar/aplicar a configuração via `SettingsStore`
    - Repassar os comandos da UI (ligar, aplicar, resetar cor) ao supervisor
    - Consultar a localização atual (uma consulta por vez)
    - Emitir sinais para atualizar a interface (estado, status, coordenadas)

Observações:
    - O supervisor publica o estado a partir das threads dele; os sinais Qt
      entregam na thread da GUI.
    - O controller tenta ser resiliente: falhas de localização não mexem no
      processo do redshift.
"""

import logging
from concurrent.futures import Future

from PySide6 import QtCore

from db import SettingsStore
from location import LocationService
from login_agent import default_launch_command, default_login_agent
from models import RedshiftSettings, Success, SupervisorState
from supervisor import RedshiftSupervisor
from util import format_coordinate


QUIT_DELAY_MS = 600


class RedshiftController(QtCore.QObject):
    """Orquestra operações da GUI.

    Expõe sinais para a interface e métodos para:
        - Ligar/desligar o redshift
        - Aplicar configurações
        - Resetar a cor
        - Preencher latitude/longitude com a localização atual
    """

    state_changed = QtCore.Signal(object)      # SupervisorState
    status_text = QtCore.Signal(str)           # status curto para a UI
    location_resolved = QtCore.Signal(str, str)  # latitude, longitude formatadas
    _state_relay = QtCore.Signal(object)       # interno: threads do supervisor -> GUI

    def __init__(self, db_path: str | None = None, parent: QtCore.QObject | None = None) -> None:
        """Inicializa controller, store e supervisor.

        Args:
            db_path: Caminho do SQLite (opcional). Se None, usa padrão do DB.
            parent: QObject pai (Qt).
        """
        super().__init__(parent)
        self._location: LocationService | None = None
        self._last_status = ""
        self._state_relay.connect(self._publish_state)

        self.store = SettingsStore(db_path)
        self.supervisor = RedshiftSupervisor(
            self.store.load(),
            store=self.store,
            login_agent=default_login_agent(),
            launch_command=default_launch_command(),
            request_quit=self._request_quit,
        )
        self.supervisor.add_listener(self._on_supervisor_state)

    # -------------------- Ciclo de vida --------------------
    def start(self) -> None:
        """Sincroniza com o SO e arma a agenda."""
        self.supervisor.start()

    def shutdown(self) -> None:
        """Desarma a agenda e aguarda a fila (o redshift continua rodando)."""
        self.supervisor.shutdown(wait=True)

    # -------------------- Comandos --------------------
    @property
    def settings(self) -> RedshiftSettings:
        return self.supervisor.settings

    @property
    def state(self) -> SupervisorState:
        return self.supervisor.state

    def set_enabled(self, enabled: bool) -> Future:
        return self.supervisor.set_enabled(enabled)

    def apply_settings(self, settings: RedshiftSettings) -> Future:
        """Persiste e aplica a configuração editada no formulário."""
        return self.supervisor.apply_settings(settings)

    def reset_color(self) -> Future:
        return self.supervisor.reset_color()

    def use_current_location(self) -> bool:
        """Inicia a consulta de localização.

        Returns:
            False se já houver uma consulta em andamento.
        """
        if not self.supervisor.begin_locating():
            return False

        service = LocationService(self)
        self._location = service
        future = service.request_current_location()
        future.add_done_callback(self._on_location_done)
        return True

    # -------------------- Slots/callbacks --------------------
    def _on_location_done(self, future: Future) -> None:
        """Chamado uma única vez quando a consulta termina."""
        result = future.result()
        service = self._location
        self._location = None
        if service is not None:
            service.deleteLater()

        self.supervisor.finish_locating(result)
        if isinstance(result, Success):
            latitude, longitude = result.value
            self.location_resolved.emit(format_coordinate(latitude), format_coordinate(longitude))

    def _on_supervisor_state(self, state: SupervisorState) -> None:
        """Recebe o estado do supervisor (qualquer thread) e o leva à thread da GUI."""
        self._state_relay.emit(state)

    @QtCore.Slot(object)
    def _publish_state(self, state: SupervisorState) -> None:
        """Roda na thread da GUI: repassa o estado e o status, se mudou."""
        self.state_changed.emit(state)
        if state.status_message != self._last_status:
            self._last_status = state.status_message
            self.status_text.emit(state.status_message)

    def _request_quit(self) -> None:
        """Encerra esta instância após um breve intervalo (a UI termina de atualizar)."""
        logging.info("GUI - Encerrando para a instância registrada no login assumir")
        QtCore.QTimer.singleShot(QUIT_DELAY_MS, QtCore.QCoreApplication.quit)
