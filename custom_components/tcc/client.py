"""Session client for the Total Connect Comfort service.

This module defines `TccClient`, which owns the TCC session and the
thermostat cache. Every call that touches the network runs through a
single worker consuming a FIFO queue, so only one request is ever in
flight. The vendor rate-limits and corrupts sessions under concurrent
requests.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from . import api, message
from .const import LOCATIONS_MAX_ATTEMPTS
from .exceptions import (
    TccApiClientError,
    TccApiProtocolError,
    TccInvalidInputError,
    TccValidationError,
)

if TYPE_CHECKING:
    import httpx

    from .models import TccDesiredState, TccThermostat

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class QueuedCall:
    """A unit of work waiting for the request worker."""

    name: str
    call: Callable[[], Awaitable[Any]]
    future: asyncio.Future[Any]


class TccClient:
    """Serialized access to the TCC service for one account."""

    def __init__(
        self,
        session: httpx.AsyncClient,
        username: str,
        password: str,
        *,
        use_permanent_holds: bool = False,
    ) -> None:
        """Initialize the client."""
        self._session = session
        self._username = username
        self._password = password
        self._use_permanent_holds = use_permanent_holds
        self._session_id: str | None = None
        self._thermostats: dict[str, TccThermostat] = {}
        self._queue: asyncio.Queue[QueuedCall] = asyncio.Queue()
        self._worker_task: asyncio.Task[None] | None = None
        self._current: QueuedCall | None = None
        self._processed = 0

    @property
    def has_session(self) -> bool:
        """Return True while a session id is held."""
        return self._session_id is not None

    @property
    def thermostats(self) -> dict[str, TccThermostat]:
        """Return a copy of the thermostat cache."""
        return dict(self._thermostats)

    async def async_login(self) -> None:
        """Log in and store a new session id.

        Raises:
            TccApiAuthError: If the service rejects the credentials.

        """
        await self._async_submit("login", self._async_login)

    async def async_poll_thermostat(self) -> dict[str, TccThermostat]:
        """Fetch every thermostat on the account and replace the cache."""
        return await self._async_submit("poll_thermostat", self._async_poll_thermostat)

    async def async_change_thermostat(
        self, desired: TccDesiredState
    ) -> TccThermostat:
        """Apply a desired state and return the resulting thermostat.

        The change is sent, confirmed through its CommTask and then read
        back. If only the read-back fails, the expected state is built from
        the cached record and returned instead of an error.
        """
        return await self._async_submit(
            "change_thermostat",
            functools.partial(self._async_change_thermostat, desired),
        )

    async def async_get_thermostat_snapshot(
        self, thermostat_id: int | str
    ) -> TccThermostat:
        """Fetch a single thermostat without listing all locations."""
        return await self._async_submit(
            "get_thermostat_snapshot",
            functools.partial(self._async_get_thermostat_snapshot, thermostat_id),
        )

    async def async_close(self) -> None:
        """Stop the request worker and cancel calls still waiting for it."""
        pending = [self._current] if self._current is not None else []
        worker, self._worker_task = self._worker_task, None
        if worker is not None and not worker.done():
            worker.cancel()
            with suppress(asyncio.CancelledError):
                await worker

        self._current = None
        while not self._queue.empty():
            pending.append(self._queue.get_nowait())
            self._queue.task_done()
        for request in pending:
            if not request.future.done():
                request.future.cancel()
        _LOGGER.debug("TCC client closed, %d pending calls cancelled", len(pending))

    def _ensure_worker(self) -> None:
        if self._worker_task is None or self._worker_task.done():
            self._worker_task = asyncio.get_running_loop().create_task(
                self._worker_loop(), name="tcc_request_worker"
            )
            _LOGGER.debug("TCC request worker started")

    async def _async_submit(
        self, name: str, call: Callable[[], Awaitable[Any]]
    ) -> Any:
        """Queue a call for the worker and wait for its result."""
        self._ensure_worker()
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        await self._queue.put(QueuedCall(name=name, call=call, future=future))
        return await future

    async def _worker_loop(self) -> None:
        """Run queued calls one at a time, in submission order."""
        while True:
            request = await self._queue.get()
            self._current = request
            try:
                await self._process(request)
            finally:
                self._current = None
                self._queue.task_done()

    async def _process(self, request: QueuedCall) -> None:
        self._processed += 1
        _LOGGER.debug(
            "Working on %s (#%d, backlog %d)",
            request.name,
            self._processed,
            self._queue.qsize(),
        )
        try:
            result = await request.call()
        except TccApiClientError as err:
            self._invalidate_session(f"{request.name} failed: {err}")
            if not request.future.done():
                request.future.set_exception(err)
        except Exception as err:  # noqa: BLE001
            if not request.future.done():
                request.future.set_exception(err)
        else:
            if not request.future.done():
                request.future.set_result(result)

    def _invalidate_session(self, reason: str) -> None:
        if self._session_id is not None:
            _LOGGER.info("Discarding TCC session: %s", reason)
        self._session_id = None

    async def _async_login(self) -> None:
        self._session_id = None
        self._session_id = await api.async_authenticate(
            self._session, self._username, self._password
        )
        _LOGGER.info("Logged in to TCC as %s", self._username)

    async def _async_ensure_session(self) -> str | None:
        if self._session_id is None:
            await self._async_login()
        return self._session_id

    async def _async_fetch_thermostats(self) -> dict[str, TccThermostat]:
        """List all locations, logging in again once if the session is stale."""
        attempt = 1
        while True:
            session_id = await self._async_ensure_session()
            try:
                locations = await api.async_get_locations(self._session, session_id)
            except TccApiProtocolError as err:
                self._invalidate_session(f"GetLocations failed: {err}")
                if attempt >= LOCATIONS_MAX_ATTEMPTS:
                    raise
                attempt += 1
                _LOGGER.debug(
                    "Retrying GetLocations with a new session (attempt %d of %d)",
                    attempt,
                    LOCATIONS_MAX_ATTEMPTS,
                )
            else:
                return message.normalize_locations(locations)

    def _adopt(self, record: TccThermostat, context: str) -> TccThermostat:
        """Carry state over from the cache and validate a fresh record."""
        previous = self._thermostats.get(str(record.thermostat_id))
        record = message.carry_forward_heat_mode(record, previous)
        try:
            message.validate_thermostat(record, context)
        except TccValidationError as err:
            _LOGGER.error("Invalid thermostat data: %s", err)
        return record

    async def _async_poll_thermostat(self) -> dict[str, TccThermostat]:
        fetched = await self._async_fetch_thermostats()
        thermostats = {
            key: self._adopt(record, "poll") for key, record in fetched.items()
        }

        if self._thermostats and _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Thermostat changes since last poll: %s",
                message.diff(_as_dicts(self._thermostats), _as_dicts(thermostats)),
            )

        self._thermostats = thermostats
        _LOGGER.debug("Polled %d thermostats", len(thermostats))
        return dict(thermostats)

    async def _async_change_thermostat(
        self, desired: TccDesiredState
    ) -> TccThermostat:
        """Apply a change, dropping the session on any failure."""
        try:
            return await self._async_apply_change(desired)
        except Exception as err:
            self._invalidate_session(f"change_thermostat failed: {err}")
            raise

    async def _async_apply_change(self, desired: TccDesiredState) -> TccThermostat:
        key = str(desired.thermostat_id)
        if key not in self._thermostats:
            _LOGGER.debug("No cached data for thermostat %s, listing locations", key)
            fetched = await self._async_fetch_thermostats()
            self._thermostats = {
                fetched_key: self._adopt(record, "change")
                for fetched_key, record in fetched.items()
            }

        cached = self._thermostats.get(key)
        if cached is None:
            msg = f"Unknown thermostat {key}"
            raise TccInvalidInputError(msg)

        session_id = await self._async_ensure_session()
        comm_task_id = await api.async_change_thermostat(
            self._session, session_id, desired, cached, self._use_permanent_holds
        )
        await api.async_get_comm_task_state(self._session, session_id, comm_task_id)

        try:
            raw = await api.async_get_thermostat(
                self._session, session_id, desired.thermostat_id
            )
        except TccApiClientError as err:
            self._invalidate_session(f"GetThermostat failed: {err}")
            _LOGGER.warning(
                "Change to thermostat %s was accepted but reading it back failed "
                "(%s), using the expected state",
                key,
                err,
            )
            thermostat = message.optimistic_thermostat(cached, desired)
        else:
            thermostat = self._adopt(message.normalize(raw), "change")

        self._thermostats[key] = thermostat
        return thermostat

    async def _async_get_thermostat_snapshot(
        self, thermostat_id: int | str
    ) -> TccThermostat:
        session_id = await self._async_ensure_session()
        raw = await api.async_get_thermostat(self._session, session_id, thermostat_id)
        thermostat = self._adopt(message.normalize(raw), "snapshot")
        self._thermostats[str(thermostat_id)] = thermostat
        return thermostat


def _as_dicts(thermostats: dict[str, TccThermostat]) -> dict[str, dict[str, Any]]:
    return {key: asdict(record) for key, record in thermostats.items()}
