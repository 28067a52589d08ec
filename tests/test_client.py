"""Tests for the TCC session client."""

import asyncio
import logging
from collections.abc import AsyncIterator, Iterator
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
import pytest_asyncio
from conftest import (
    SESSION_ID,
    THERMOSTAT_ID,
    create_locations_result,
    create_raw_thermostat,
)

from custom_components.tcc import message
from custom_components.tcc.client import TccClient
from custom_components.tcc.exceptions import (
    TccApiAuthError,
    TccApiProtocolError,
    TccApiTransportError,
    TccInvalidInputError,
)
from custom_components.tcc.models import TccDesiredState

COMM_TASK_ID = 7001
KEY = str(THERMOSTAT_ID)
HEAT = 1
COOL = 2


def _locations(*thermostats: dict[str, Any]) -> dict[str, Any]:
    return create_locations_result(*thermostats)["Locations"]


@pytest.fixture
def mock_session() -> Mock:
    """Create a mock HTTP session."""
    return Mock(spec=httpx.AsyncClient)


@pytest.fixture
def mock_api(raw_thermostat: dict[str, Any]) -> Iterator[SimpleNamespace]:
    """Patch every SOAP call used by the client."""
    mocks = {
        "async_authenticate": AsyncMock(return_value=SESSION_ID),
        "async_get_locations": AsyncMock(return_value=_locations(raw_thermostat)),
        "async_change_thermostat": AsyncMock(return_value=COMM_TASK_ID),
        "async_get_comm_task_state": AsyncMock(return_value={"Result": "Success"}),
        "async_get_thermostat": AsyncMock(return_value=raw_thermostat),
    }
    with patch.multiple("custom_components.tcc.api", **mocks):
        yield SimpleNamespace(**mocks)


@pytest_asyncio.fixture
async def client(mock_session: Mock) -> AsyncIterator[TccClient]:
    """Create a TccClient and stop its worker afterwards."""
    tcc_client = TccClient(mock_session, "user@example.com", "secret")
    yield tcc_client
    await tcc_client.async_close()


class TestTccClientLogin:
    """Tests for async_login."""

    @pytest.mark.asyncio
    async def test_async_login_stores_session(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
        mock_session: Mock,
    ) -> None:
        """Test that a successful login holds a session."""
        assert not client.has_session
        await client.async_login()
        assert client.has_session
        mock_api.async_authenticate.assert_awaited_once_with(
            mock_session, "user@example.com", "secret"
        )

    @pytest.mark.asyncio
    async def test_async_login_raises_auth_error(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a rejected login propagates and leaves no session."""
        mock_api.async_authenticate.side_effect = TccApiAuthError("Login failed")
        with pytest.raises(TccApiAuthError):
            await client.async_login()
        assert not client.has_session


class TestTccClientPoll:
    """Tests for async_poll_thermostat."""

    @pytest.mark.asyncio
    async def test_poll_logs_in_and_returns_thermostats(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that the first poll logs in and fills the cache."""
        thermostats = await client.async_poll_thermostat()

        assert list(thermostats) == [KEY]
        assert thermostats[KEY].name == "Hallway"
        assert thermostats[KEY].current_temperature == 21.1
        assert client.thermostats == thermostats
        mock_api.async_get_locations.assert_awaited_once()
        assert mock_api.async_get_locations.await_args.args[1] == SESSION_ID

    @pytest.mark.asyncio
    async def test_poll_reuses_session(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that consecutive polls log in only once."""
        await client.async_poll_thermostat()
        await client.async_poll_thermostat()
        assert mock_api.async_authenticate.await_count == 1
        assert mock_api.async_get_locations.await_count == 2

    @pytest.mark.asyncio
    async def test_poll_retries_once_with_new_session(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
        raw_thermostat: dict[str, Any],
    ) -> None:
        """Test that a stale session is replaced and the call repeated."""
        mock_api.async_get_locations.side_effect = [
            TccApiProtocolError("GetLocations failed: InvalidSessionID"),
            _locations(raw_thermostat),
        ]
        thermostats = await client.async_poll_thermostat()

        assert KEY in thermostats
        assert mock_api.async_authenticate.await_count == 2
        assert mock_api.async_get_locations.await_count == 2
        assert client.has_session

    @pytest.mark.asyncio
    async def test_poll_gives_up_after_second_failure(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that the retry is bounded to a single extra attempt."""
        mock_api.async_get_locations.side_effect = TccApiProtocolError(
            "GetLocations failed: InvalidSessionID"
        )
        with pytest.raises(TccApiProtocolError):
            await client.async_poll_thermostat()

        assert mock_api.async_get_locations.await_count == 2
        assert mock_api.async_authenticate.await_count == 2
        assert not client.has_session

    @pytest.mark.asyncio
    async def test_poll_transport_error_invalidates_without_retry(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that network failures propagate and drop the session."""
        mock_api.async_get_locations.side_effect = TccApiTransportError("timeout")
        with pytest.raises(TccApiTransportError):
            await client.async_poll_thermostat()

        assert mock_api.async_get_locations.await_count == 1
        assert not client.has_session

    @pytest.mark.asyncio
    async def test_poll_carries_heat_mode_forward(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that emergency heat is remembered while the device is in Cool."""
        mock_api.async_get_locations.return_value = _locations(
            create_raw_thermostat(SystemSwitchPosition=0)
        )
        first = await client.async_poll_thermostat()
        assert first[KEY].last_physical_heat_mode == 0

        mock_api.async_get_locations.return_value = _locations(
            create_raw_thermostat(SystemSwitchPosition=3, equipment_status="Cooling")
        )
        second = await client.async_poll_thermostat()
        assert second[KEY].target_heating_cooling_state == COOL
        assert second[KEY].last_physical_heat_mode == 0

    @pytest.mark.asyncio
    async def test_poll_logs_invalid_records(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that a record failing validation is logged, not raised."""
        mock_api.async_get_locations.return_value = _locations(
            create_raw_thermostat(name="")
        )
        with caplog.at_level(logging.ERROR):
            thermostats = await client.async_poll_thermostat()

        assert KEY in thermostats
        assert "missing required field 'name'" in caplog.text


class TestTccClientChange:
    """Tests for async_change_thermostat."""

    @pytest.mark.asyncio
    async def test_change_sends_confirms_and_refetches(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
        mock_session: Mock,
    ) -> None:
        """Test the update, confirm and re-fetch sequence."""
        await client.async_poll_thermostat()
        cached = client.thermostats[KEY]
        mock_api.async_get_thermostat.return_value = create_raw_thermostat(
            SystemSwitchPosition=3, CoolSetpoint=75
        )
        desired = TccDesiredState(
            THERMOSTAT_ID, target_temperature=24, target_heating_cooling=COOL
        )

        thermostat = await client.async_change_thermostat(desired)

        mock_api.async_change_thermostat.assert_awaited_once_with(
            mock_session, SESSION_ID, desired, cached, False
        )
        mock_api.async_get_comm_task_state.assert_awaited_once_with(
            mock_session, SESSION_ID, COMM_TASK_ID
        )
        mock_api.async_get_thermostat.assert_awaited_once_with(
            mock_session, SESSION_ID, THERMOSTAT_ID
        )
        assert thermostat.target_heating_cooling_state == COOL
        assert thermostat.target_temperature == 23.9
        assert thermostat.last_physical_heat_mode == 1
        assert client.thermostats[KEY] is thermostat

    @pytest.mark.asyncio
    async def test_change_passes_permanent_hold_setting(
        self,
        mock_session: Mock,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that the hold preference reaches the change request."""
        tcc_client = TccClient(
            mock_session, "user@example.com", "secret", use_permanent_holds=True
        )
        try:
            await tcc_client.async_change_thermostat(TccDesiredState(THERMOSTAT_ID))
        finally:
            await tcc_client.async_close()
        assert mock_api.async_change_thermostat.await_args.args[4] is True

    @pytest.mark.asyncio
    async def test_change_loads_locations_when_not_cached(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that an empty cache is filled before the change is sent."""
        await client.async_change_thermostat(
            TccDesiredState(THERMOSTAT_ID, target_heating_cooling=HEAT)
        )
        mock_api.async_authenticate.assert_awaited_once()
        mock_api.async_get_locations.assert_awaited_once()
        mock_api.async_change_thermostat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_change_unknown_thermostat_raises(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that an unknown id is rejected and the session dropped."""
        await client.async_poll_thermostat()
        assert client.has_session

        with pytest.raises(TccInvalidInputError, match="9999"):
            await client.async_change_thermostat(TccDesiredState(9999))

        mock_api.async_change_thermostat.assert_not_awaited()
        assert not client.has_session

    @pytest.mark.asyncio
    async def test_change_unexpected_error_drops_session(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that any failure while changing invalidates the session."""
        await client.async_poll_thermostat()
        mock_api.async_get_comm_task_state.side_effect = KeyError("State")

        with pytest.raises(KeyError):
            await client.async_change_thermostat(TccDesiredState(THERMOSTAT_ID))

        assert not client.has_session

    @pytest.mark.asyncio
    async def test_expected_state_is_used_by_next_change(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a change after an unconfirmed Cool keeps Cool."""
        await client.async_poll_thermostat()
        mock_api.async_get_thermostat.side_effect = TccApiTransportError("timeout")
        expected = await client.async_change_thermostat(
            TccDesiredState(THERMOSTAT_ID, target_heating_cooling=COOL)
        )
        assert expected.target_heating_cooling_state == COOL
        assert expected.device["UI"]["SystemSwitchPosition"] == 3

        body = message.change_thermostat_message(
            SESSION_ID,
            TccDesiredState(THERMOSTAT_ID, target_temperature=22),
            client.thermostats[KEY],
            False,
        )["ChangeThermostatUI"]

        assert body["systemSwitch"] == 3
        assert body["coolSetpoint"] == 72
        assert body["heatSetpoint"] == 68

    @pytest.mark.asyncio
    async def test_change_update_failure_propagates(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a rejected change raises and drops the session."""
        await client.async_poll_thermostat()
        mock_api.async_change_thermostat.side_effect = TccApiProtocolError("Failed")

        with pytest.raises(TccApiProtocolError):
            await client.async_change_thermostat(
                TccDesiredState(THERMOSTAT_ID, target_heating_cooling=COOL)
            )

        assert not client.has_session
        mock_api.async_get_comm_task_state.assert_not_awaited()
        mock_api.async_get_thermostat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_confirm_failure_propagates(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a failed CommTask confirmation raises."""
        await client.async_poll_thermostat()
        mock_api.async_get_comm_task_state.side_effect = TccApiTransportError("reset")

        with pytest.raises(TccApiTransportError):
            await client.async_change_thermostat(TccDesiredState(THERMOSTAT_ID))

        assert not client.has_session
        mock_api.async_get_thermostat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_returns_expected_state_when_refetch_fails(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test the optimistic record after an accepted change."""
        await client.async_poll_thermostat()
        mock_api.async_get_thermostat.side_effect = TccApiTransportError("timeout")
        desired = TccDesiredState(
            THERMOSTAT_ID,
            target_temperature=24,
            target_heating_cooling=COOL,
            heating_threshold_temperature=19,
            cooling_threshold_temperature=25,
        )

        with caplog.at_level(logging.WARNING):
            thermostat = await client.async_change_thermostat(desired)

        assert thermostat.target_heating_cooling_state == COOL
        assert thermostat.target_temperature == 24
        assert thermostat.heating_threshold_temperature == 19
        assert thermostat.cooling_threshold_temperature == 25
        assert client.thermostats[KEY] is thermostat
        assert not client.has_session
        assert "using the expected state" in caplog.text

    @pytest.mark.asyncio
    async def test_emergency_heat_restored_after_cool(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that Heat after Cool restores emergency heat."""
        mock_api.async_get_locations.return_value = _locations(
            create_raw_thermostat(SystemSwitchPosition=0)
        )
        await client.async_poll_thermostat()

        mock_api.async_get_thermostat.return_value = create_raw_thermostat(
            SystemSwitchPosition=3
        )
        in_cool = await client.async_change_thermostat(
            TccDesiredState(THERMOSTAT_ID, target_heating_cooling=COOL)
        )
        assert in_cool.last_physical_heat_mode == 0

        mock_api.async_get_thermostat.return_value = create_raw_thermostat(
            SystemSwitchPosition=0
        )
        await client.async_change_thermostat(
            TccDesiredState(THERMOSTAT_ID, target_heating_cooling=HEAT)
        )
        sent_with = mock_api.async_change_thermostat.await_args.args[3]
        assert sent_with is in_cool
        assert sent_with.last_physical_heat_mode == 0


class TestTccClientSnapshot:
    """Tests for async_get_thermostat_snapshot."""

    @pytest.mark.asyncio
    async def test_snapshot_fetches_single_thermostat(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a snapshot skips GetLocations and updates the cache."""
        thermostat = await client.async_get_thermostat_snapshot(THERMOSTAT_ID)

        assert thermostat.thermostat_id == THERMOSTAT_ID
        assert client.thermostats[KEY] is thermostat
        mock_api.async_get_locations.assert_not_awaited()
        mock_api.async_authenticate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_snapshot_carries_heat_mode_forward(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a snapshot keeps the remembered heat mode."""
        mock_api.async_get_locations.return_value = _locations(
            create_raw_thermostat(SystemSwitchPosition=0)
        )
        await client.async_poll_thermostat()
        mock_api.async_get_thermostat.return_value = create_raw_thermostat(
            SystemSwitchPosition=2
        )

        thermostat = await client.async_get_thermostat_snapshot(THERMOSTAT_ID)
        assert thermostat.last_physical_heat_mode == 0

    @pytest.mark.asyncio
    async def test_snapshot_failure_invalidates_session(
        self,
        client: TccClient,
        mock_api: SimpleNamespace,
    ) -> None:
        """Test that a failed snapshot raises and drops the session."""
        await client.async_login()
        mock_api.async_get_thermostat.side_effect = TccApiProtocolError("Failed")
        with pytest.raises(TccApiProtocolError):
            await client.async_get_thermostat_snapshot(THERMOSTAT_ID)
        assert not client.has_session


class TestTccClientQueue:
    """Tests for the single-worker request queue."""

    @pytest.mark.asyncio
    async def test_calls_run_one_at_a_time_in_order(
        self,
        client: TccClient,
    ) -> None:
        """Test that submitted calls never overlap and keep their order."""
        order: list[str] = []
        active = 0
        max_active = 0

        def make_call(name: str):
            async def call() -> str:
                nonlocal active, max_active
                active += 1
                max_active = max(max_active, active)
                order.append(name)
                await asyncio.sleep(0.01)
                active -= 1
                return name

            return call

        results = await asyncio.gather(
            client._async_submit("first", make_call("first")),
            client._async_submit("second", make_call("second")),
            client._async_submit("third", make_call("third")),
        )

        assert results == ["first", "second", "third"]
        assert order == ["first", "second", "third"]
        assert max_active == 1

    @pytest.mark.asyncio
    async def test_failed_call_does_not_stop_worker(
        self,
        client: TccClient,
    ) -> None:
        """Test that an error is delivered and later calls still run."""

        async def failing() -> None:
            error_msg = "bad input"
            raise ValueError(error_msg)

        async def succeeding() -> str:
            return "ok"

        with pytest.raises(ValueError, match="bad input"):
            await client._async_submit("failing", failing)
        assert await client._async_submit("succeeding", succeeding) == "ok"

    @pytest.mark.asyncio
    async def test_async_close_cancels_pending_calls(
        self,
        client: TccClient,
    ) -> None:
        """Test that closing cancels the running and the queued calls."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def blocking() -> None:
            started.set()
            await release.wait()

        first = asyncio.create_task(client._async_submit("first", blocking))
        second = asyncio.create_task(client._async_submit("second", blocking))
        await started.wait()

        await client.async_close()

        with pytest.raises(asyncio.CancelledError):
            await first
        with pytest.raises(asyncio.CancelledError):
            await second
