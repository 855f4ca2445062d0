from __future__ import annotations

"""Consulta e encerramento de processos pelo nome (pgrep/pkill).

Regras:
    - Busca por nome exato (`-x`).
    - `pgrep` com código 0 significa "encontrado".
    - Falha ao consultar (ferramenta ausente, permissão negada) conta como
      "não está rodando": o supervisor segue como se não houvesse processo
      perdido.
"""

import logging
import subprocess


PGREP = "pgrep"
PKILL = "pkill"


class ProcessProbe:
    """Consulta a tabela de processos do SO por nome exato."""

    def __init__(self, pgrep: str = PGREP, pkill: str = PKILL) -> None:
        self.pgrep = pgrep
        self.pkill = pkill

    def is_running(self, process_name: str) -> bool:
        """Indica se existe algum processo com o nome exato informado."""
        try:
            result = subprocess.run(
                [self.pgrep, "-x", process_name],
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            logging.warning("PROBE - Falha ao consultar processos (%s): %s", process_name, exc)
            return False
        return result.returncode == 0

    def kill_all(self, process_name: str) -> None:
        """Envia SIGTERM para todos os processos com o nome informado.

        Não aguarda confirmação além do término do próprio `pkill`.
        """
        try:
            subprocess.run(
                [self.pkill, "-x", process_name],
                check=False,
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            logging.warning("PROBE - Falha ao encerrar processos (%s): %s", process_name, exc)
