from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Optional

from .actuators import ActuatorValue, ActuatorState
from .alerts import AlertEngine
from .interfaces import IdentityProvider, RemoteStore
from .models import ControlMode, Identity, Severity
from ..core.errors import (
    AuthenticationFailed,
    AuthorizationDenied,
    DenialReason,
    PersistenceFailed,
    RemoteUnavailable,
)
from ..core.timeutil import now_utc, to_epoch_ms

logger = logging.getLogger(__name__)

ACTUATORS_PATH = "Actuators"
ACTUATOR_HISTORY_PATH = "Actuators/history"
MODE_FIELD = "auto"


@dataclass
class AdminSession:
    authenticated: bool = False
    identity: Optional[Identity] = None


@dataclass
class AuthorityState:
    session: AdminSession
    mode: ControlMode = ControlMode.AUTO


class ControlAuthority:
    """Who may command actuators, and when.

    States are {unauthenticated, authenticated} x {auto, manual}. Mode changes
    and configuration writes need an authenticated admin; actuator commands
    additionally need manual mode. A rejection raises AuthorizationDenied
    carrying the reason and leaves state and the remote store untouched.
    """

    def __init__(
        self,
        actuators: ActuatorState,
        alerts: AlertEngine,
        identity: Optional[IdentityProvider] = None,
        store: Optional[RemoteStore] = None,
    ) -> None:
        self.state = AuthorityState(session=AdminSession())
        self._actuators = actuators
        self._alerts = alerts
        self._identity = identity
        self._store = store
        if identity is not None:
            identity.add_listener(self.on_auth_state_changed)

    def attach_store(self, store: Optional[RemoteStore]) -> None:
        self._store = store

    @property
    def authenticated(self) -> bool:
        return self.state.session.authenticated

    @property
    def mode(self) -> ControlMode:
        return self.state.mode

    # --- session ---

    async def authenticate(self, email: str, password: str) -> Identity:
        if self._identity is None:
            raise AuthenticationFailed("no identity provider configured")
        identity = await self._identity.sign_in(email, password)
        self._set_session(identity)
        logger.info("Admin authenticated: %s", identity.email)
        return identity

    async def logout(self) -> None:
        if self._identity is not None:
            await self._identity.sign_out()
        self._set_session(None)

    def on_auth_state_changed(self, identity: Optional[Identity]) -> None:
        """Re-synchronise with whatever the session provider reports."""
        was = self.authenticated
        self._set_session(identity)
        if was and not self.authenticated:
            logger.info("Admin session ended by provider")

    def _set_session(self, identity: Optional[Identity]) -> None:
        self.state.session = AdminSession(authenticated=identity is not None, identity=identity)

    # --- guards ---

    def require_authenticated(self, action: str) -> None:
        if not self.authenticated:
            raise AuthorizationDenied(DenialReason.NOT_AUTHENTICATED, action)

    def require_manual(self, action: str) -> None:
        self.require_authenticated(action)
        if self.state.mode is not ControlMode.MANUAL:
            raise AuthorizationDenied(DenialReason.WRONG_MODE, action)

    def authorize_config_write(self, action: str = "config_write") -> None:
        self.require_authenticated(action)

    # --- remote-driven updates ---

    def confirm_mode(self, mode: ControlMode) -> bool:
        changed = mode is not self.state.mode
        self.state.mode = mode
        return changed

    # --- commands ---

    async def set_mode(self, mode: ControlMode) -> ControlMode:
        mode = ControlMode(mode)
        self.require_authenticated("set_mode")
        await self.publish(f"{ACTUATORS_PATH}/{MODE_FIELD}", mode is ControlMode.AUTO)
        # A remote echo during the write may already have applied and announced it.
        if self.confirm_mode(mode):
            self._alerts.evaluate_mode(mode)
        return mode

    async def command_actuator(self, name: str, value: bool) -> ActuatorValue:
        if not self._actuators.has(name):
            raise ValueError(f"Unknown actuator: {name}")
        self.require_manual("command_actuator")

        offline = self._store is None
        issued = now_utc()
        self._actuators.apply_optimistic(name, value, issued)

        try:
            await self.publish(f"{ACTUATORS_PATH}/{name}", bool(value))
        except PersistenceFailed:
            self._actuators.revert(name)
            raise
        if offline:
            # No remote echo will come; the local value is authoritative.
            self._actuators.confirm(name, value)
        self._alerts.evaluate_actuator(name, value)

        # The session or mode may have changed while the write was in flight.
        try:
            self.require_manual("actuator_history")
        except AuthorizationDenied as e:
            logger.warning("Skipping actuator history for %s: %s", name, e.reason.value)
            return self._actuators.entry(name, now_utc())

        record: dict[str, Any] = dict(self._actuators.as_dict(issued))
        record["timestamp"] = to_epoch_ms(issued)
        try:
            await self.append(ACTUATOR_HISTORY_PATH, record)
        except PersistenceFailed:
            # Dropped for this cycle; already alerted by append()
            pass
        return self._actuators.entry(name, now_utc())

    # --- remote writes ---

    async def publish(self, path: str, value: Any) -> None:
        if self._store is None:
            logger.warning("Remote store unavailable; write to %s kept local only", path)
            self._alerts.notify(f"Offline: change to {path} not sent", Severity.WARNING)
            return
        try:
            await self._store.write(path, value)
        except (RemoteUnavailable, PersistenceFailed) as e:
            logger.error("Write to %s failed: %s", path, e)
            self._alerts.notify(f"Could not save {path}", Severity.DANGER)
            raise PersistenceFailed(str(e), operation="write", path=path) from e

    async def append(self, path: str, record: dict[str, Any]) -> Optional[str]:
        if self._store is None:
            logger.warning("Remote store unavailable; record for %s dropped", path)
            return None
        try:
            return await self._store.append(path, record)
        except (RemoteUnavailable, PersistenceFailed) as e:
            logger.error("Append to %s failed: %s", path, e)
            self._alerts.notify(f"Could not record {path}", Severity.WARNING)
            raise PersistenceFailed(str(e), operation="append", path=path) from e
