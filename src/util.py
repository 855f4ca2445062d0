"""
Módulo de Utilitários de Agenda e Coordenadas
=============================================

Este módulo fornece funções utilitárias puras para avaliar a agenda manual
do redshift e validar/formatar coordenadas geográficas.

Funcionalidades principais:
    - Conversão de horários para minutos desde a meia-noite
    - Verificação se o horário atual está dentro da janela da agenda
    - Validação de latitude/longitude digitadas pelo usuário
    - Formatação de coordenadas vindas da consulta de localização

Nenhuma função aqui faz I/O: todas recebem o horário atual como parâmetro.
"""

from __future__ import annotations

import math
from datetime import datetime, time as dt_time
from typing import Union

from models import RedshiftSettings, ScheduleWindow


# =============================================================================
# CONSTANTES
# =============================================================================

MINUTES_PER_DAY = 24 * 60

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


# =============================================================================
# FUNÇÕES DE HORÁRIO
# =============================================================================

def minutes_since_midnight(hour: int, minute: int) -> int:
    """
    Converte hora e minuto em minutos desde a meia-noite.

    Args:
        hour (int): Hora no formato 24h (0 a 23).
        minute (int): Minuto (0 a 59).

    Returns:
        int: Quantidade de minutos desde 00:00.

    Exemplo de uso:
        >>> minutes_since_midnight(20, 30)
        1230
    """
    return hour * 60 + minute


def is_within_schedule(schedule: ScheduleWindow, now: Union[datetime, dt_time]) -> bool:
    """
    Determina se o horário informado está dentro da janela da agenda.

    Esta função é o núcleo da agenda manual: o supervisor a consulta a cada
    batida do timer para decidir se o redshift deve estar ligado.

    Args:
        schedule (ScheduleWindow): Janela com início e fim (hora/minuto).
        now (datetime | time): Horário atual. Apenas hora e minuto são usados.

    Returns:
        bool: True se o horário estiver dentro da janela.

    Regras:
        - Início == fim: janela de dia inteiro (sempre ativa).
        - Início < fim: janela no mesmo dia, ativa em [início, fim).
        - Início > fim: janela atravessa a meia-noite, ativa a partir do
          início ou antes do fim.

    Exemplo de uso:
        >>> janela = ScheduleWindow(20, 0, 7, 0)
        >>> is_within_schedule(janela, dt_time(23, 15))
        True
        >>> is_within_schedule(janela, dt_time(12, 0))
        False
    """
    now_minutes = minutes_since_midnight(now.hour, now.minute)
    start_minutes = minutes_since_midnight(schedule.start_hour, schedule.start_minute)
    end_minutes = minutes_since_midnight(schedule.end_hour, schedule.end_minute)

    if start_minutes == end_minutes:
        return True

    if start_minutes < end_minutes:
        return start_minutes <= now_minutes < end_minutes

    # Janela atravessa a meia-noite (ex.: 20:00 -> 07:00)
    return now_minutes >= start_minutes or now_minutes < end_minutes


def settings_within_schedule(settings: RedshiftSettings, now: Union[datetime, dt_time]) -> bool:
    """Atalho de `is_within_schedule` usando a janela de um snapshot."""
    return is_within_schedule(settings.schedule, now)


# =============================================================================
# FUNÇÕES DE COORDENADAS
# =============================================================================

def _parse_coordinate(raw: str) -> float | None:
    """
    Converte o texto de uma coordenada em float.

    Args:
        raw (str): Texto digitado pelo usuário (ex: '-23.5505').

    Returns:
        float | None: Valor convertido, ou None se o texto for inválido,
                      vazio, NaN ou infinito.
    """
    text = str(raw or "").strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def has_valid_coordinates(latitude: str, longitude: str) -> bool:
    """
    Verifica se latitude e longitude são números dentro dos limites.

    Args:
        latitude (str): Latitude em graus decimais, de -90 a 90.
        longitude (str): Longitude em graus decimais, de -180 a 180.

    Returns:
        bool: True se as duas coordenadas forem válidas.

    Exemplo de uso:
        >>> has_valid_coordinates('-23.55', '-46.63')
        True
        >>> has_valid_coordinates('91', '0')
        False
    """
    lat = _parse_coordinate(latitude)
    lon = _parse_coordinate(longitude)
    if lat is None or lon is None:
        return False
    return (
        LATITUDE_RANGE[0] <= lat <= LATITUDE_RANGE[1]
        and LONGITUDE_RANGE[0] <= lon <= LONGITUDE_RANGE[1]
    )


def format_coordinate(value: float) -> str:
    """Formata uma coordenada com 4 casas decimais (ex.: '-23.5505')."""
    return f"{value:.4f}"
