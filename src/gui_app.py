from __future__ import annotations

"""Interface gráfica (PySide6) do redshift-tray.

Este módulo implementa o ícone na bandeja do sistema e a janela de
configurações. Ele se integra ao `RedshiftController`, que encapsula o
supervisor, a persistência e a consulta de localização.

Componentes principais:
    - `TrayIcon`: menu da bandeja (ligar/desligar, resetar cor, configurações)
    - `SettingsWindow`: formulário de configuração + status
    - `StatusDot`: indicador visual do estado do redshift

Observações:
    - O estilo visual é aplicado via stylesheet (Qt Fusion + CSS).
    - O app continua rodando com todas as janelas fechadas (fica na bandeja).
"""

import logging
import os
import sys
from dataclasses import replace

from PySide6 import QtCore, QtGui, QtWidgets

from gui_controller import RedshiftController
from models import RedshiftSettings, SupervisorState, WorkerState


ADJUSTMENT_METHODS = ["quartz", "randr", "vidmode", "drm", "wayland"]
TEMP_RANGE = (1000, 25000)


def _apply_app_style(app: QtWidgets.QApplication) -> None:
    """Aplica o estilo padrão do aplicativo.

    Define:
        - Style "Fusion"
        - Stylesheet com regras de layout e cores

    Args:
        app: Instância da aplicação Qt.
    """
    app.setStyle("Fusion")
    app.setStyleSheet(
        """
        * { font-size: 13px; color: #334155; }
        QMainWindow { background-color: #F8FAFC; }

        QFrame#AppBar { background-color: #FFFFFF; border-bottom: 1px solid #E2E8F0; }
        QLabel#AppTitle { font-size: 18px; font-weight: 700; color: #0F172A; }
        QLabel#AppSubtitle { font-size: 12px; color: #64748B; }

        QPushButton {
            padding: 8px 14px;
            border-radius: 6px;
            font-weight: 600;
            border: 1px solid #CBD5E1;
            background-color: #E2E8F0;
            min-height: 30px;
        }
        QPushButton:hover { background-color: #CBD5E1; border-color: #94A3B8; }
        QPushButton:pressed { background-color: #94A3B8; }
        QPushButton:disabled { color: #94A3B8; background: #F8FAFC; }

        QPushButton[variant="primary"] {
            background-color: #22C55E;
            color: #FFFFFF;
            border: none;
        }
        QPushButton[variant="primary"]:hover { background-color: #16A34A; }
        QPushButton[variant="primary"]:pressed { background-color: #15803D; }

        QGroupBox {
            font-weight: 700;
            border: 1px solid #E2E8F0;
            border-radius: 8px;
            margin-top: 12px;
            padding-top: 16px;
            background-color: #FFFFFF;
        }
        QGroupBox::title {
            subcontrol-origin: margin;
            left: 10px;
            padding: 0 6px;
            color: #334155;
            font-weight: 700;
        }

        QLineEdit, QSpinBox, QTimeEdit, QComboBox {
            padding: 6px 8px;
            border: 1px solid #E2E8F0;
            border-radius: 6px;
            background: #FFFFFF;
        }
        QLineEdit:disabled, QSpinBox:disabled, QTimeEdit:disabled { color: #94A3B8; background: #F8FAFC; }

        QLabel#ErrorText { color: #DC2626; font-size: 12px; padding: 4px 0px; }

        QFrame#StatusDot {
            min-width: 12px;
            max-width: 12px;
            min-height: 12px;
            max-height: 12px;
            border-radius: 6px;
            border: 1px solid #E2E8F0;
            background: #94A3B8;
        }
        QFrame#StatusDot[state="stopped"] { background: #94A3B8; }
        QFrame#StatusDot[state="running"] { background: #F97316; border: 1px solid #EA580C; }
        QFrame#StatusDot[state="busy"] { background: #F59E0B; border: 1px solid #D97706; }
        """
    )


def _install_qt_message_filter() -> None:
    """Encaminha mensagens do Qt para o logging (em vez do terminal)."""

    def handler(mode: QtCore.QtMsgType, context: QtCore.QMessageLogContext, message: str) -> None:  # type: ignore[name-defined]
        if mode in (QtCore.QtMsgType.QtCriticalMsg, QtCore.QtMsgType.QtFatalMsg):
            logging.error("QT - %s", message)
        elif mode == QtCore.QtMsgType.QtWarningMsg:
            logging.warning("QT - %s", message)
        else:
            logging.debug("QT - %s", message)

    QtCore.qInstallMessageHandler(handler)


def _configure_logging() -> None:
    """Configura o logging raiz a partir de `REDSHIFT_TRAY_LOG_LEVEL`."""
    level_name = (os.getenv("REDSHIFT_TRAY_LOG_LEVEL") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )


def _state_icon(state: SupervisorState) -> QtGui.QIcon:
    """Ícone da bandeja conforme o estado do redshift."""
    style = QtWidgets.QApplication.style()
    if state.observed_running:
        return style.standardIcon(QtWidgets.QStyle.StandardPixmap.SP_MediaPlay)
    return style.standardIcon(QtWidgets.QStyle.StandardPixmap.SP_MediaStop)


def _state_label(state: SupervisorState) -> str:
    if state.worker_state == WorkerState.STARTING:
        return "Redshift: ligando..."
    if state.worker_state == WorkerState.STOPPING:
        return "Redshift: desligando..."
    return "Redshift: ligado" if state.observed_running else "Redshift: desligado"


class StatusDot(QtWidgets.QFrame):
    """Indicador visual de status do redshift.

    Estados:
        - stopped: redshift desligado
        - running: redshift ligado
        - busy: ligando/desligando
    """

    def __init__(self, parent: QtWidgets.QWidget | None = None) -> None:
        super().__init__(parent)
        self.setObjectName("StatusDot")
        self.setProperty("state", "stopped")

    def set_state(self, state: SupervisorState) -> None:
        """Atualiza o estado visual do indicador."""
        if state.worker_state in (WorkerState.STARTING, WorkerState.STOPPING):
            value = "busy"
        elif state.observed_running:
            value = "running"
        else:
            value = "stopped"

        self.setProperty("state", value)
        self.setToolTip(_state_label(state))
        self.style().unpolish(self)
        self.style().polish(self)
        self.update()


class SettingsWindow(QtWidgets.QMainWindow):
    """Janela de configurações do redshift.

    As edições ficam só no formulário até o usuário clicar em "Aplicar".
    """

    def __init__(self, controller: RedshiftController) -> None:
        """Monta a janela e conecta sinais/ações ao controller."""
        super().__init__()
        self.setWindowTitle("Redshift Tray - Configurações")
        self.resize(560, 680)

        self.controller = controller
        self.controller.state_changed.connect(self._on_state_changed)
        self.controller.status_text.connect(self._set_status)
        self.controller.location_resolved.connect(self._on_location_resolved)

        central = QtWidgets.QWidget(self)
        self.setCentralWidget(central)
        root = QtWidgets.QVBoxLayout(central)
        root.setContentsMargins(14, 14, 14, 14)
        root.setSpacing(12)

        # App bar: título + status + ligar/desligar
        appbar = QtWidgets.QFrame()
        appbar.setObjectName("AppBar")
        appbar_layout = QtWidgets.QHBoxLayout(appbar)
        appbar_layout.setContentsMargins(12, 12, 12, 12)
        appbar_layout.setSpacing(10)

        title_col = QtWidgets.QVBoxLayout()
        title_col.setSpacing(2)
        title_lbl = QtWidgets.QLabel("Redshift")
        title_lbl.setObjectName("AppTitle")
        self.state_label = QtWidgets.QLabel("Redshift: desligado")
        self.state_label.setObjectName("AppSubtitle")
        title_col.addWidget(title_lbl)
        title_col.addWidget(self.state_label)
        appbar_layout.addLayout(title_col)
        appbar_layout.addStretch(1)

        self.status_dot = StatusDot()
        appbar_layout.addWidget(self.status_dot)
        self.chk_enabled = QtWidgets.QCheckBox("Ligado")
        appbar_layout.addWidget(self.chk_enabled)
        root.addWidget(appbar)

        # Binário
        binary_box = QtWidgets.QGroupBox("Executável")
        binary_layout = QtWidgets.QHBoxLayout(binary_box)
        self.form_binary = QtWidgets.QLineEdit()
        self.form_binary.setPlaceholderText("Caminho do redshift (ex.: /usr/bin/redshift)")
        self.btn_browse = QtWidgets.QPushButton("Procurar...")
        binary_layout.addWidget(self.form_binary, 1)
        binary_layout.addWidget(self.btn_browse)
        root.addWidget(binary_box)

        # Modo
        mode_box = QtWidgets.QGroupBox("Modo")
        mode_layout = QtWidgets.QVBoxLayout(mode_box)
        self.radio_sun = QtWidgets.QRadioButton("Nascer/pôr do sol (coordenadas)")
        self.radio_schedule = QtWidgets.QRadioButton("Agenda manual (horário fixo)")
        mode_layout.addWidget(self.radio_sun)
        mode_layout.addWidget(self.radio_schedule)

        sun_form = QtWidgets.QFormLayout()
        self.form_latitude = QtWidgets.QLineEdit()
        self.form_longitude = QtWidgets.QLineEdit()
        self.form_latitude.setPlaceholderText("-90 a 90")
        self.form_longitude.setPlaceholderText("-180 a 180")
        self.btn_locate = QtWidgets.QPushButton("Usar localização atual")
        self.form_day_temp = QtWidgets.QSpinBox()
        self.form_day_temp.setRange(*TEMP_RANGE)
        self.form_day_temp.setSingleStep(100)
        self.form_day_temp.setSuffix(" K")
        sun_form.addRow("Latitude", self.form_latitude)
        sun_form.addRow("Longitude", self.form_longitude)
        sun_form.addRow("", self.btn_locate)
        sun_form.addRow("Temperatura de dia", self.form_day_temp)
        mode_layout.addLayout(sun_form)

        schedule_form = QtWidgets.QFormLayout()
        self.form_start = QtWidgets.QTimeEdit()
        self.form_end = QtWidgets.QTimeEdit()
        self.form_start.setDisplayFormat("HH:mm")
        self.form_end.setDisplayFormat("HH:mm")
        schedule_form.addRow("Início", self.form_start)
        schedule_form.addRow("Fim", self.form_end)
        mode_layout.addLayout(schedule_form)
        root.addWidget(mode_box)

        # Cor
        color_box = QtWidgets.QGroupBox("Cor")
        color_form = QtWidgets.QFormLayout(color_box)
        self.form_night_temp = QtWidgets.QSpinBox()
        self.form_night_temp.setRange(*TEMP_RANGE)
        self.form_night_temp.setSingleStep(100)
        self.form_night_temp.setSuffix(" K")
        self.form_gamma = QtWidgets.QLineEdit()
        self.form_gamma.setPlaceholderText("Ex.: 0.9:0.9:0.9 (opcional)")
        self.form_brightness = QtWidgets.QLineEdit()
        self.form_brightness.setPlaceholderText("Ex.: 1.0:0.8 (dia:noite, opcional)")
        self.form_method = QtWidgets.QComboBox()
        self.form_method.setEditable(True)
        self.form_method.addItems(ADJUSTMENT_METHODS)
        color_form.addRow("Temperatura de noite", self.form_night_temp)
        color_form.addRow("Gamma", self.form_gamma)
        color_form.addRow("Brilho", self.form_brightness)
        color_form.addRow("Método de ajuste", self.form_method)
        root.addWidget(color_box)

        self.form_start_at_login = QtWidgets.QCheckBox("Iniciar no login")
        root.addWidget(self.form_start_at_login)

        self.status_label = QtWidgets.QLabel("")
        self.status_label.setObjectName("ErrorText")
        self.status_label.setWordWrap(True)
        root.addWidget(self.status_label)

        actions = QtWidgets.QHBoxLayout()
        actions.setSpacing(10)
        self.btn_reset = QtWidgets.QPushButton("Resetar cor")
        self.btn_apply = QtWidgets.QPushButton("Aplicar")
        self.btn_apply.setProperty("variant", "primary")
        self.btn_close = QtWidgets.QPushButton("Fechar")
        actions.addWidget(self.btn_reset)
        actions.addStretch(1)
        actions.addWidget(self.btn_close)
        actions.addWidget(self.btn_apply)
        root.addLayout(actions)

        self.btn_browse.clicked.connect(self._browse_binary)
        self.btn_locate.clicked.connect(self._use_current_location)
        self.btn_reset.clicked.connect(self.controller.reset_color)
        self.btn_apply.clicked.connect(self._apply)
        self.btn_close.clicked.connect(self.close)
        self.chk_enabled.clicked.connect(self.controller.set_enabled)
        self.radio_schedule.toggled.connect(self._update_mode_fields)

        self.load_settings(self.controller.settings)
        self._on_state_changed(self.controller.state)

    # ---------------- Formulário ----------------
    def load_settings(self, settings: RedshiftSettings) -> None:
        """Preenche o formulário com um snapshot."""
        self.form_binary.setText(settings.binary_path)
        self.radio_schedule.setChecked(settings.use_schedule)
        self.radio_sun.setChecked(not settings.use_schedule)
        self.form_latitude.setText(settings.latitude)
        self.form_longitude.setText(settings.longitude)
        self.form_day_temp.setValue(settings.day_temp)
        self.form_night_temp.setValue(settings.night_temp)
        self.form_gamma.setText(settings.gamma)
        self.form_brightness.setText(settings.brightness)
        self.form_method.setCurrentText(settings.adjustment_method)
        self.form_start.setTime(QtCore.QTime(settings.schedule_start_hour, settings.schedule_start_minute))
        self.form_end.setTime(QtCore.QTime(settings.schedule_end_hour, settings.schedule_end_minute))
        self.form_start_at_login.setChecked(settings.start_at_login)
        self._update_mode_fields()

    def form_settings(self) -> RedshiftSettings:
        """Cria um novo snapshot a partir do formulário."""
        start = self.form_start.time()
        end = self.form_end.time()
        return replace(
            self.controller.settings,
            binary_path=self.form_binary.text().strip(),
            latitude=self.form_latitude.text().strip(),
            longitude=self.form_longitude.text().strip(),
            day_temp=self.form_day_temp.value(),
            night_temp=self.form_night_temp.value(),
            gamma=self.form_gamma.text(),
            brightness=self.form_brightness.text(),
            use_schedule=self.radio_schedule.isChecked(),
            schedule_start_hour=start.hour(),
            schedule_start_minute=start.minute(),
            schedule_end_hour=end.hour(),
            schedule_end_minute=end.minute(),
            start_at_login=self.form_start_at_login.isChecked(),
            adjustment_method=self.form_method.currentText().strip() or self.controller.settings.adjustment_method,
        )

    def _update_mode_fields(self) -> None:
        """Habilita só os campos do modo selecionado."""
        use_schedule = self.radio_schedule.isChecked()
        for w in (self.form_latitude, self.form_longitude, self.form_day_temp):
            w.setEnabled(not use_schedule)
        self.btn_locate.setEnabled(not use_schedule and not self.controller.state.is_locating)
        for w in (self.form_start, self.form_end):
            w.setEnabled(use_schedule)

    # ---------------- Ações ----------------
    def _browse_binary(self) -> None:
        path, _ = QtWidgets.QFileDialog.getOpenFileName(self, "Selecionar redshift", self.form_binary.text())
        if path:
            self.form_binary.setText(path)

    def _use_current_location(self) -> None:
        if not self.controller.use_current_location():
            self._set_status("Já existe uma consulta de localização em andamento.")

    def _apply(self) -> None:
        try:
            self.controller.apply_settings(self.form_settings())
        except Exception as exc:
            QtWidgets.QMessageBox.critical(self, "Erro", f"Falha ao salvar: {exc}")

    # ---------------- Slots ----------------
    def _on_state_changed(self, state: object) -> None:
        """Atualiza indicador, checkbox e botões conforme o estado."""
        if not isinstance(state, SupervisorState):
            return
        self.status_dot.set_state(state)
        self.state_label.setText(_state_label(state))
        self.chk_enabled.setChecked(state.desired_enabled)
        self.btn_locate.setText("Localizando..." if state.is_locating else "Usar localização atual")
        self._update_mode_fields()

    def _on_location_resolved(self, latitude: str, longitude: str) -> None:
        self.form_latitude.setText(latitude)
        self.form_longitude.setText(longitude)

    def _set_status(self, text: str) -> None:
        """Atualiza o texto de status (erros da última operação)."""
        self.status_label.setText(text)


class TrayIcon(QtWidgets.QSystemTrayIcon):
    """Ícone da bandeja com o menu principal."""

    def __init__(self, controller: RedshiftController, parent: QtCore.QObject | None = None) -> None:
        super().__init__(parent)
        self.controller = controller
        self._settings_window: SettingsWindow | None = None

        menu = QtWidgets.QMenu()
        self.act_state = menu.addAction("Redshift: desligado")
        self.act_state.setEnabled(False)
        self.act_status = menu.addAction("")
        self.act_status.setEnabled(False)
        self.act_status.setVisible(False)
        menu.addSeparator()
        self.act_enabled = menu.addAction("Ligado")
        self.act_enabled.setCheckable(True)
        self.act_reset = menu.addAction("Resetar cor")
        self.act_settings = menu.addAction("Configurações...")
        menu.addSeparator()
        self.act_quit = menu.addAction("Sair")
        self._menu = menu
        self.setContextMenu(menu)

        self.act_enabled.triggered.connect(self.controller.set_enabled)
        self.act_reset.triggered.connect(self.controller.reset_color)
        self.act_settings.triggered.connect(self.open_settings)
        self.act_quit.triggered.connect(QtWidgets.QApplication.quit)
        self.activated.connect(self._on_activated)

        self.controller.state_changed.connect(self._on_state_changed)
        self.controller.status_text.connect(self._on_status_text)
        self._on_state_changed(self.controller.state)

    def open_settings(self) -> None:
        """Abre (ou traz para frente) a janela de configurações."""
        if self._settings_window is None:
            self._settings_window = SettingsWindow(self.controller)
        self._settings_window.show()
        self._settings_window.raise_()
        self._settings_window.activateWindow()

    def _on_activated(self, reason: QtWidgets.QSystemTrayIcon.ActivationReason) -> None:
        if reason == QtWidgets.QSystemTrayIcon.ActivationReason.DoubleClick:
            self.open_settings()

    def _on_state_changed(self, state: object) -> None:
        if not isinstance(state, SupervisorState):
            return
        label = _state_label(state)
        self.act_state.setText(label)
        self.setToolTip(label)
        self.setIcon(_state_icon(state))
        self.act_enabled.setChecked(state.desired_enabled)

    def _on_status_text(self, text: str) -> None:
        self.act_status.setText(text)
        self.act_status.setVisible(bool(text))


def main() -> None:
    """Ponto de entrada da aplicação GUI."""
    _configure_logging()
    _install_qt_message_filter()
    app = QtWidgets.QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)
    _apply_app_style(app)

    controller = RedshiftController(os.getenv("REDSHIFT_TRAY_DB_PATH"))
    app.aboutToQuit.connect(controller.shutdown)

    tray = TrayIcon(controller)
    if QtWidgets.QSystemTrayIcon.isSystemTrayAvailable():
        tray.show()
    else:
        # Sem bandeja (ex.: alguns desktops Wayland): usa a janela como principal.
        app.setQuitOnLastWindowClosed(True)
        tray.open_settings()

    # Sincroniza com o SO e arma a agenda depois que o event loop iniciar
    QtCore.QTimer.singleShot(0, controller.start)

    sys.exit(app.exec())


if __name__ == "__main__":
    main()
