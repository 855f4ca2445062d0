from __future__ import annotations

"""Camada de persistência (SQLite) das configurações do redshift-tray.

Este módulo encapsula:
    - Inicialização do schema SQLite
    - Leitura/gravação do snapshot de configuração (objeto inteiro, em JSON)

Notas de design:
    - O banco é um arquivo SQLite local (por padrão em ~/.config/redshift-tray).
    - As operações são feitas com context manager para garantir commit/close.
    - Não há atualização parcial nem migração de schema: um payload que não
      bate com `RedshiftSettings` é descartado e os padrões são usados.
"""

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, fields
from typing import Iterator

from models import RedshiftSettings


SETTINGS_KEY = "RedshiftSettings"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    payload TEXT NOT NULL
);
"""


def default_db_path() -> str:
    """Resolve o caminho padrão do banco.

    Prioriza a variável de ambiente `REDSHIFT_TRAY_DB_PATH`. Caso não exista,
    usa `~/.config/redshift-tray/redshift_tray.sqlite3`.
    """
    return os.getenv("REDSHIFT_TRAY_DB_PATH") or os.path.join(
        os.path.expanduser("~"), ".config", "redshift-tray", "redshift_tray.sqlite3"
    )


_FIELD_TYPES = {"str": str, "int": int, "bool": bool}


def _check_field_types(payload: dict) -> None:
    """Valida o tipo de cada valor salvo contra o campo de `RedshiftSettings`.

    `bool` não é aceito onde se espera `int` (em Python, `True` é um `int`).

    Raises:
        TypeError: Se algum valor tiver o tipo errado.
    """
    for f in fields(RedshiftSettings):
        if f.name not in payload:
            continue
        expected = f.type if isinstance(f.type, type) else _FIELD_TYPES[f.type]
        value = payload[f.name]
        if type(value) is not expected:
            raise TypeError(f"{f.name}: esperado {expected.__name__}, recebido {type(value).__name__}")


class SettingsStore:
    """Acesso ao banco SQLite de configurações."""

    def __init__(self, db_path: str | None = None) -> None:
        self.db_path = db_path or default_db_path()
        self._init_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Abre uma conexão SQLite e garante commit e close.

        Yields:
            sqlite3.Connection: Conexão com `row_factory` configurado.
        """
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_schema(self) -> None:
        """Garante que o schema do banco exista (idempotente)."""
        with self.connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def load(self) -> RedshiftSettings:
        """Carrega a configuração salva.

        Returns:
            O snapshot salvo, ou `RedshiftSettings()` (padrões) se não houver
            nada salvo ou se o conteúdo estiver corrompido.
        """
        with self.connect() as conn:
            row = conn.execute("SELECT payload FROM settings WHERE key = ?", (SETTINGS_KEY,)).fetchone()
        if row is None:
            return RedshiftSettings()

        try:
            payload = json.loads(row["payload"])
            if not isinstance(payload, dict):
                raise TypeError("payload não é um objeto")
            _check_field_types(payload)
            return RedshiftSettings(**payload)
        except (ValueError, TypeError) as exc:
            logging.warning("DB - Configuração salva inválida, usando padrões: %s", exc)
            return RedshiftSettings()

    def save(self, settings: RedshiftSettings) -> None:
        """Grava o snapshot inteiro (substitui o anterior)."""
        payload = json.dumps(asdict(settings), sort_keys=True)
        with self.connect() as conn:
            conn.execute(
                "INSERT INTO settings (key, payload) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET payload = excluded.payload",
                (SETTINGS_KEY, payload),
            )
