# tests/unit/test_authority.py
"""Tests for ControlAuthority: session, mode and actuator command guards."""

from datetime import timedelta

import pytest

from mycosync.core.errors import (
    AuthenticationFailed,
    AuthorizationDenied,
    DenialReason,
    PersistenceFailed,
)
from mycosync.core.timeutil import now_utc
from mycosync.domain.authority import ControlAuthority
from mycosync.domain.models import ControlMode, Severity
from mycosync.drivers.memory_store import InMemoryStore

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD


def _writes(store):
    return [path for op, path in store.ops if op in ("write", "append")]


class RevokingStore(InMemoryStore):
    """Ends the admin session while an actuator write is in flight."""

    def __init__(self, identity, initial=None):
        super().__init__(initial)
        self._identity = identity

    async def write(self, path, value):
        await super().write(path, value)
        self._identity.revoke()


class TestSession:
    @pytest.mark.asyncio
    async def test_valid_credentials_authenticate(self, authority):
        identity = await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)

        assert authority.authenticated
        assert identity.email == ADMIN_EMAIL

    @pytest.mark.asyncio
    async def test_rejected_credentials_leave_state_unchanged(self, authority):
        with pytest.raises(AuthenticationFailed):
            await authority.authenticate(ADMIN_EMAIL, "wrong")

        assert not authority.authenticated
        assert authority.mode is ControlMode.AUTO

    @pytest.mark.asyncio
    async def test_without_provider_authentication_fails(self, engine_state, alerts):
        bare = ControlAuthority(engine_state.actuators, alerts)
        with pytest.raises(AuthenticationFailed):
            await bare.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)

    @pytest.mark.asyncio
    async def test_logout_is_idempotent(self, authority):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        await authority.logout()
        await authority.logout()

        assert not authority.authenticated

    @pytest.mark.asyncio
    async def test_provider_side_expiry_ends_session(self, authority, identity):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        identity.revoke()

        assert not authority.authenticated


class TestMode:
    @pytest.mark.asyncio
    async def test_unauthenticated_mode_change_is_denied(self, authority, store):
        with pytest.raises(AuthorizationDenied) as exc:
            await authority.set_mode(ControlMode.MANUAL)

        assert exc.value.reason is DenialReason.NOT_AUTHENTICATED
        assert authority.mode is ControlMode.AUTO
        assert _writes(store) == []

    @pytest.mark.asyncio
    async def test_switch_to_manual_writes_auto_flag(self, authority, store, alerts):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        await authority.set_mode(ControlMode.MANUAL)

        assert authority.mode is ControlMode.MANUAL
        assert store.dump("Actuators/auto") is False
        assert alerts.active()[0].message == "Control mode set to manual"

    @pytest.mark.asyncio
    async def test_remote_echo_during_write_is_announced_once(self, authority, reconciler, store, alerts):
        await store.subscribe("Actuators", reconciler.on_actuators)
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)

        await authority.set_mode(ControlMode.MANUAL)

        messages = [a.message for a in alerts.active()]
        assert messages.count("Control mode set to manual") == 1
        assert authority.mode is ControlMode.MANUAL


class TestActuatorCommand:
    @pytest.mark.asyncio
    async def test_auto_mode_denies_unauthenticated_caller(self, authority, store):
        with pytest.raises(AuthorizationDenied) as exc:
            await authority.command_actuator("heating", True)

        assert exc.value.reason is DenialReason.NOT_AUTHENTICATED
        assert _writes(store) == []

    @pytest.mark.asyncio
    async def test_auto_mode_denies_authenticated_caller(self, authority, store, engine_state):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)

        with pytest.raises(AuthorizationDenied) as exc:
            await authority.command_actuator("heating", True)

        assert exc.value.reason is DenialReason.WRONG_MODE
        assert engine_state.actuators.entry("heating", now_utc()).value is False
        assert _writes(store) == []

    @pytest.mark.asyncio
    async def test_manual_mode_command_is_published_and_recorded(self, authority, store):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)

        entry = await authority.command_actuator("heating", True)

        assert entry.value is True
        assert store.dump("Actuators/heating") is True
        history = store.dump("Actuators/history")
        assert len(history) == 1
        record = next(iter(history.values()))
        assert record["heating"] is True
        assert isinstance(record["timestamp"], int)

    @pytest.mark.asyncio
    async def test_unknown_actuator_is_rejected(self, authority):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)

        with pytest.raises(ValueError):
            await authority.command_actuator("sprinkler", True)

    @pytest.mark.asyncio
    async def test_failed_write_reverts_optimistic_value(self, authority, store, engine_state, alerts):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)
        store.failing_paths.add("Actuators/heating")

        with pytest.raises(PersistenceFailed):
            await authority.command_actuator("heating", True)

        assert engine_state.actuators.entry("heating", now_utc()).value is False
        assert alerts.active()[0].severity is Severity.DANGER

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_activation_alert(self, authority, store, alerts):
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)
        store.failing_paths.add("Actuators/heating")

        with pytest.raises(PersistenceFailed):
            await authority.command_actuator("heating", True)

        assert [a.message for a in alerts.active()] == ["Could not save Actuators/heating"]

    @pytest.mark.asyncio
    async def test_history_skipped_when_session_ends_mid_write(self, engine_state, alerts, identity, remote_data):
        store = RevokingStore(identity, remote_data)
        authority = ControlAuthority(engine_state.actuators, alerts, identity, store)
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)

        await authority.command_actuator("lighting", True)

        assert store.dump("Actuators/lighting") is True
        assert store.dump("Actuators/history") is None

    @pytest.mark.asyncio
    async def test_offline_command_stays_local(self, engine_state, alerts, identity):
        authority = ControlAuthority(engine_state.actuators, alerts, identity, store=None)
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)

        entry = await authority.command_actuator("ventilation", True)

        assert entry.value is True
        assert any(a.message.startswith("Offline") for a in alerts.active())

    @pytest.mark.asyncio
    async def test_offline_command_does_not_revert_after_timeout(self, engine_state, alerts, identity):
        authority = ControlAuthority(engine_state.actuators, alerts, identity, store=None)
        await authority.authenticate(ADMIN_EMAIL, ADMIN_PASSWORD)
        authority.confirm_mode(ControlMode.MANUAL)

        await authority.command_actuator("heating", True)

        later = now_utc() + timedelta(seconds=16)
        assert engine_state.actuators.value("heating", later) is True
        assert engine_state.actuators.pending(later) == []


