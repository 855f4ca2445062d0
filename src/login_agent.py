from __future__ import annotations

"""Registro do app para iniciar junto com a sessão do usuário.

Plataformas:
    - macOS: LaunchAgent em ~/Library/LaunchAgents, carregado com `launchctl`
      (RunAtLoad + KeepAlive, ou seja, o launchd já sobe uma nova instância).
    - Demais: entrada XDG em ~/.config/autostart (ou $XDG_CONFIG_HOME).

Falhas são registradas no log e ignoradas (melhor esforço).
"""

import logging
import os
import plistlib
import shlex
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Sequence


LABEL = "com.user.redshift-tray"
APP_NAME = "Redshift Tray"


def default_launch_command() -> list[str]:
    """Comando usado para iniciar o app no login."""
    exe = shutil.which("redshift-tray")
    if exe:
        return [exe]
    return [sys.executable, os.path.abspath(sys.argv[0])]


class LaunchAgentManager:
    """LaunchAgent do macOS."""

    def __init__(self, label: str = LABEL, agents_dir: Path | None = None) -> None:
        self.label = label
        self.agents_dir = agents_dir or Path.home() / "Library" / "LaunchAgents"

    @property
    def plist_path(self) -> Path:
        return self.agents_dir / f"{self.label}.plist"

    def install(self, command: Sequence[str], *, start_now: bool = False) -> None:
        """Grava o plist e carrega o agente (o launchd inicia o app)."""
        plist = {
            "Label": self.label,
            "ProgramArguments": list(command),
            "RunAtLoad": True,
            "KeepAlive": True,
        }
        try:
            self.agents_dir.mkdir(parents=True, exist_ok=True)
            with open(self.plist_path, "wb") as fh:
                plistlib.dump(plist, fh)
        except OSError as exc:
            logging.warning("LOGIN - Falha ao gravar %s: %s", self.plist_path, exc)
            return
        _run_quiet(["launchctl", "load", "-w", str(self.plist_path)])

    def uninstall(self) -> None:
        _run_quiet(["launchctl", "unload", "-w", str(self.plist_path)])
        try:
            self.plist_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logging.warning("LOGIN - Falha ao remover %s: %s", self.plist_path, exc)


class XdgAutostartManager:
    """Entrada de autostart XDG (Linux/BSD)."""

    def __init__(self, autostart_dir: Path | None = None) -> None:
        if autostart_dir is None:
            config_home = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
            autostart_dir = Path(config_home) / "autostart"
        self.autostart_dir = autostart_dir

    @property
    def desktop_path(self) -> Path:
        return self.autostart_dir / "redshift-tray.desktop"

    def install(self, command: Sequence[str], *, start_now: bool = False) -> None:
        """Grava a entrada de autostart.

        O autostart XDG só vale no próximo login; com `start_now` a nova
        instância é disparada aqui, como faz o launchd no macOS.
        """
        entry = (
            "[Desktop Entry]\n"
            "Type=Application\n"
            f"Name={APP_NAME}\n"
            "Comment=Controla o redshift pela bandeja do sistema\n"
            f"Exec={' '.join(shlex.quote(part) for part in command)}\n"
            "Terminal=false\n"
            "X-GNOME-Autostart-enabled=true\n"
        )
        try:
            self.autostart_dir.mkdir(parents=True, exist_ok=True)
            self.desktop_path.write_text(entry, encoding="utf-8")
        except OSError as exc:
            logging.warning("LOGIN - Falha ao gravar %s: %s", self.desktop_path, exc)
            return

        if start_now:
            try:
                subprocess.Popen(
                    list(command),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                    start_new_session=True,
                )
            except OSError as exc:
                logging.warning("LOGIN - Falha ao iniciar nova instância: %s", exc)

    def uninstall(self) -> None:
        try:
            self.desktop_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logging.warning("LOGIN - Falha ao remover %s: %s", self.desktop_path, exc)


def default_login_agent() -> LaunchAgentManager | XdgAutostartManager:
    """Gerenciador adequado para a plataforma atual."""
    if sys.platform == "darwin":
        return LaunchAgentManager()
    return XdgAutostartManager()


def _run_quiet(cmd: list[str]) -> int:
    try:
        result = subprocess.run(cmd, check=False, capture_output=True, text=True)
    except OSError as exc:
        logging.warning("LOGIN - Falha ao executar %s: %s", cmd[0], exc)
        return 1
    if result.returncode != 0:
        logging.info("LOGIN - %s retornou %s: %s", " ".join(cmd), result.returncode, result.stderr.strip())
    return result.returncode
