from __future__ import annotations

"""Consulta da localização atual (QtPositioning).

Cada consulta devolve um `Future` que resolve exatamente uma vez com
`Success((latitude, longitude))` ou `Failure(LocationError.*)`, mesmo que o
chamador perca o interesse. O timeout é próprio (12s) e não depende da fila
do supervisor.
"""

import logging
from concurrent.futures import Future
from typing import Any, Callable

from PySide6 import QtCore
from PySide6.QtPositioning import QGeoPositionInfoSource

from models import Failure, LocationError, Result, Success


LOCATION_TIMEOUT_MS = 12_000


def map_position_error(error: Any) -> LocationError:
    """Converte o erro do QtPositioning no motivo de falha do app."""
    errors = QGeoPositionInfoSource.Error
    if error == errors.AccessError:
        return LocationError.PERMISSION_DENIED
    if error == errors.UpdateTimeoutError:
        return LocationError.TIMED_OUT
    return LocationError.UNAVAILABLE


class LocationService(QtCore.QObject):
    """Resolve a posição atual uma única vez por consulta."""

    def __init__(
        self,
        parent: QtCore.QObject | None = None,
        *,
        timeout_ms: int = LOCATION_TIMEOUT_MS,
        source_factory: Callable[[QtCore.QObject], Any] | None = None,
    ) -> None:
        super().__init__(parent)
        self.timeout_ms = timeout_ms
        self._source_factory = source_factory or QGeoPositionInfoSource.createDefaultSource
        self._source: Any = None
        self._future: Future | None = None

        self._timeout = QtCore.QTimer(self)
        self._timeout.setSingleShot(True)
        self._timeout.timeout.connect(self._on_timeout)

    def request_current_location(self) -> Future:
        """Inicia a consulta.

        Returns:
            Future resolvido com o `Result` da consulta.
        """
        future: Future = Future()
        self._future = future

        source = self._source_factory(self)
        if source is None:
            logging.warning("LOCATION - Nenhuma fonte de posição disponível")
            self._finish(Failure(LocationError.UNAVAILABLE, LocationError.UNAVAILABLE.description))
            return future

        self._source = source
        source.positionUpdated.connect(self._on_position)
        source.errorOccurred.connect(self._on_error)
        self._timeout.start(self.timeout_ms)
        source.requestUpdate(self.timeout_ms)
        return future

    def _on_position(self, info: Any) -> None:
        coordinate = info.coordinate()
        if not coordinate.isValid():
            self._finish(Failure(LocationError.UNAVAILABLE, LocationError.UNAVAILABLE.description))
            return
        self._finish(Success((coordinate.latitude(), coordinate.longitude())))

    def _on_error(self, error: Any) -> None:
        if error == QGeoPositionInfoSource.Error.NoError:
            return
        reason = map_position_error(error)
        self._finish(Failure(reason, reason.description))

    def _on_timeout(self) -> None:
        self._finish(Failure(LocationError.TIMED_OUT, LocationError.TIMED_OUT.description))

    def _finish(self, result: Result) -> None:
        future = self._future
        if future is None or future.done():
            return
        self._timeout.stop()
        if self._source is not None:
            self._source.stopUpdates()
        logging.info("LOCATION - Consulta concluída: %s", result)
        future.set_result(result)
