"""
Synchronization engine.

Decides what the user sees immediately, and when and what gets pushed to the
remote store.

STARTUP:
    1. Session recovery - read the Session from the local cache. No session:
       stop loading, no network call.
    2. Cloud-first initialization - pull the company state, deep-merge it over
       the defaults, record it as the last-synced snapshot.
       On failure fall back to the local backup (status ERROR, "offline"
       notification), or to the defaults (status ERROR, stronger warning).
       Loading a fallback never schedules a push.

BACKGROUND AUTO-SYNC (store subscription):
    On every change of ApplicationData after initialization:
    1. Back up the full state to the local cache (always, crew included)
    2. Crew sessions stop here - crew devices never auto-push
    3. Equal to the last-synced snapshot (by value)? Cancel any pending push
    4. Otherwise status PENDING and (re)arm the debounce timer; a newer edit
       cancels the older timer, so a burst of edits becomes one push of the
       final state
    5. Timer fires: status SYNCING, push the full current state. Success
       records the snapshot and shows SUCCESS (decays to IDLE). Failure shows
       ERROR and leaves the snapshot unrecorded so the next change retries.

At most one push is in flight. Edits made during a push mark the engine
dirty and start a fresh debounce cycle once the push ends; pushes are never
queued and always carry the full current state.

Thread Safety:
    - Internal bookkeeping is guarded by self._lock
    - The engine never dispatches while holding self._lock (lock order is
      always store -> engine)
    - self._push_lock serializes pushes from timers, manual sync and the
      lifecycle engine's background reconciles

Usage:
    sync = SyncService(store, gateway, local_cache)
    sync.start()              # recover session, initialize on "Sync" thread

    sync.sync_now()           # manual push
    sync.pull()               # manual pull
"""

from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, Optional

from core.exceptions import RemoteStoreError
from core.gateway import RemoteStoreGateway
from core.local_cache import LocalCache, SESSION_KEY, state_key
from logging_config import get_logger, set_thread_name
from models.app_data import deep_merge, default_app_data, serialize_app_data
from models.session import Session
from models.state import Action, ActionType, AppState, NotificationLevel, SyncStatus
from .state_store import StateStore


# Module logger
logger = get_logger(__name__)


TimerFactory = Callable[[float, Callable[[], None]], Any]


class SyncService:
    """
    Local-first synchronization engine.

    Attributes:
        debounce_seconds: Quiet period before an auto-push
        status_decay_seconds: How long SUCCESS stays visible
        last_synced_snapshot: Serialized state last confirmed by the remote store
    """

    def __init__(
        self,
        store: StateStore,
        gateway: RemoteStoreGateway,
        local_cache: LocalCache,
        debounce_seconds: float = 3.0,
        status_decay_seconds: float = 3.0,
        timer_factory: TimerFactory = threading.Timer,
    ):
        """
        Initialize the engine and subscribe to state changes.

        Args:
            store: Application state store
            gateway: Remote store gateway
            local_cache: On-device cache for session and state backups
            debounce_seconds: Auto-push debounce window
            status_decay_seconds: SUCCESS display window
            timer_factory: Creates cancellable delayed calls (threading.Timer)
        """
        self._store = store
        self._gateway = gateway
        self._cache = local_cache
        self.debounce_seconds = debounce_seconds
        self.status_decay_seconds = status_decay_seconds
        self._timer_factory = timer_factory

        self._lock = threading.Lock()
        self._push_lock = threading.Lock()
        self._debounce_timer = None
        self._decay_timer = None
        self._init_thread: Optional[threading.Thread] = None

        self._last_synced = ""
        self._push_in_flight = False
        self._dirty = False

        self._unsubscribe = store.subscribe(self._on_state_change)

        logger.info(
            f"SyncService initialized (debounce={debounce_seconds}s, "
            f"status decay={status_decay_seconds}s)"
        )

    @property
    def last_synced_snapshot(self) -> str:
        return self._last_synced

    @property
    def has_pending_push(self) -> bool:
        """Whether a debounce timer is armed."""
        return self._debounce_timer is not None

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    def recover_session(self) -> Optional[Session]:
        """
        Restore the Session saved in the local cache.

        Returns:
            The recovered Session, or None (loading is stopped in that case)
        """
        raw = self._cache.get(SESSION_KEY)
        if raw:
            try:
                session = Session.from_dict(json.loads(raw))
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Discarding unreadable cached session: {e}")
                self._cache.delete(SESSION_KEY)
            else:
                logger.info(f"Recovered session for {session.username} ({session.role.value})")
                self._store.dispatch(Action(ActionType.SET_SESSION, session))
                self._store.dispatch(Action(ActionType.SET_TRIAL_ACCESS, True))
                return session

        logger.info("No saved session; waiting for login")
        self._store.dispatch(Action(ActionType.SET_LOADING, False))
        return None

    def start(self) -> Optional[threading.Thread]:
        """
        Recover the session and, if there is one, initialize in the background.

        Returns:
            The initialization thread, or None when there is no session
        """
        if self.recover_session() is None:
            return None

        self._init_thread = threading.Thread(
            target=self._initialize_thread_main,
            name="Sync",
            daemon=True,
        )
        self._init_thread.start()
        return self._init_thread

    def _initialize_thread_main(self) -> None:
        set_thread_name("Sync")
        try:
            self.initialize()
        except Exception:
            logger.exception("Initialization crashed")
            self._set_status(SyncStatus.ERROR)

    def begin_session(self, session: Session) -> None:
        """Persist a freshly authenticated session and load its data."""
        self._cache.set(SESSION_KEY, json.dumps(session.to_dict()))
        with self._lock:
            self._last_synced = ""
        self._store.dispatch(Action(ActionType.SET_SESSION, session))
        self._store.dispatch(Action(ActionType.SET_TRIAL_ACCESS, True))
        self.initialize()

    def end_session(self) -> None:
        """Forget the session locally. The state backup stays on disk."""
        self._cancel_timers()
        with self._lock:
            self._last_synced = ""
            self._dirty = False
        self._cache.delete(SESSION_KEY)
        self._store.dispatch(Action(ActionType.LOGOUT))
        logger.info("Session ended")

    # =========================================================================
    # CLOUD-FIRST INITIALIZATION
    # =========================================================================

    def initialize(self) -> None:
        """
        Load company data, preferring the remote store.

        Falls back to the local backup, then to the defaults. Always ends
        with the UI initialized and not loading.
        """
        session = self._store.state.session
        if session is None:
            self._store.dispatch(Action(ActionType.SET_LOADING, False))
            return

        self._store.dispatch(Action(ActionType.SET_LOADING, True))
        self._set_status(SyncStatus.SYNCING)

        try:
            try:
                cloud_data = self._gateway.pull_company_state(session.store_handle)
            except RemoteStoreError as e:
                logger.error(f"Cloud load failed: {e}")
                self._load_fallback(session)
            else:
                merged = deep_merge(default_app_data(), cloud_data)
                with self._lock:
                    self._last_synced = serialize_app_data(merged)
                self._store.dispatch(Action(ActionType.LOAD_DATA, merged))
                self._store.dispatch(Action(ActionType.SET_INITIALIZED, True))
                self._set_status(SyncStatus.SUCCESS)
                self._schedule_decay()
                logger.info(f"Loaded company data from cloud for {session.username}")
        finally:
            self._store.dispatch(Action(ActionType.SET_LOADING, False))

        self._warn_if_unconfigured()

    def _load_fallback(self, session: Session) -> None:
        local_data = self._read_local_backup(session)

        if local_data is not None:
            self._store.dispatch(Action(ActionType.LOAD_DATA, local_data))
            self._store.dispatch(Action(ActionType.SET_INITIALIZED, True))
            self._set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Offline Mode: Using local backup.")
            logger.warning("Using local backup (offline mode)")
            return

        # No cloud, no backup. Show defaults but do NOT push them.
        self._store.dispatch(Action(ActionType.LOAD_DATA, default_app_data()))
        self._store.dispatch(Action(ActionType.SET_INITIALIZED, True))
        self._set_status(SyncStatus.ERROR)
        self._store.notify(
            NotificationLevel.WARNING,
            "Sync Failed. No local backup found; showing empty data. Check Internet Connection.",
        )
        logger.error("No cloud data and no local backup; loaded defaults")

    def _read_local_backup(self, session: Session) -> Optional[Dict[str, Any]]:
        raw = self._cache.get(state_key(session.username))
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"Local backup is unreadable: {e}")
            return None
        return data if isinstance(data, dict) else None

    def _warn_if_unconfigured(self) -> None:
        profile = self._store.state.data.get("companyProfile") or {}
        if not profile.get("crewAccessPin"):
            logger.warning("Crew access PIN is not configured")
            self._store.notify(NotificationLevel.WARNING, "Warning: Crew PIN not configured.")

    # =========================================================================
    # AUTO-SYNC
    # =========================================================================

    def _on_state_change(self, old: AppState, new: AppState) -> None:
        """Store subscription: back up locally and schedule a debounced push."""
        if new.data is old.data:
            return
        session = new.session
        if session is None or new.ui.is_loading or not new.ui.is_initialized:
            return

        serialized = serialize_app_data(new.data)
        self._cache.set(state_key(session.username), serialized)

        if session.is_crew:
            return

        self._schedule_push(serialized)

    def _schedule_push(self, serialized: str) -> None:
        with self._lock:
            if serialized == self._last_synced:
                # Edited back to what the remote store already has
                disarmed = self._debounce_timer is not None
                if disarmed:
                    self._debounce_timer.cancel()
                    self._debounce_timer = None
                armed = False
            elif self._push_in_flight:
                self._dirty = True
                return
            else:
                if self._debounce_timer is not None:
                    self._debounce_timer.cancel()
                timer = self._timer_factory(self.debounce_seconds, self._flush)
                timer.daemon = True
                self._debounce_timer = timer
                timer.start()
                armed = True

        if armed:
            logger.debug(f"Push scheduled in {self.debounce_seconds}s")
            self._set_status(SyncStatus.PENDING)
        elif disarmed and self._store.state.ui.sync_status is SyncStatus.PENDING:
            self._set_status(SyncStatus.IDLE)

    def _flush(self) -> None:
        """Debounce timer callback."""
        with self._lock:
            self._debounce_timer = None
        self.push()

    # =========================================================================
    # PUSH / PULL
    # =========================================================================

    def push(
        self,
        data: Optional[Dict[str, Any]] = None,
        force: bool = False,
        notify_success: bool = False,
    ) -> bool:
        """
        Push the full ApplicationData to the remote store.

        This is the push primitive used by auto-sync, manual sync and the
        lifecycle engine's background reconciles.

        Args:
            data: State to push (default: the store's current data)
            force: Push even if equal to the last-synced snapshot
            notify_success: Raise a success notification (manual sync)

        Returns:
            True if the remote store acknowledged the push (or nothing
            needed pushing), False otherwise
        """
        session = self._store.state.session
        if session is None:
            logger.debug("Push skipped: no session")
            return False

        with self._push_lock:
            snapshot = data if data is not None else self._store.state.data
            serialized = serialize_app_data(snapshot)

            with self._lock:
                if not force and serialized == self._last_synced:
                    logger.debug("Push skipped: state already synced")
                    return True
                self._push_in_flight = True
                self._dirty = False

            self._set_status(SyncStatus.SYNCING)
            try:
                self._gateway.push_company_state(snapshot, session.store_handle)
                ok = True
            except RemoteStoreError as e:
                logger.error(f"Push failed: {e}")
                ok = False

            with self._lock:
                self._push_in_flight = False
                if ok:
                    self._last_synced = serialized
                rerun = self._dirty
                self._dirty = False

        if ok:
            logger.info("Push complete")
            self._set_status(SyncStatus.SUCCESS)
            self._schedule_decay()
            if notify_success:
                self._store.notify(NotificationLevel.SUCCESS, "Cloud Sync Complete")
        else:
            self._set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Sync Failed. Check Internet.")

        if rerun:
            state = self._store.state
            if state.session is not None and not state.session.is_crew:
                self._schedule_push(serialize_app_data(state.data))

        return ok

    def sync_now(self) -> bool:
        """Manual push: bypass the debounce and push the current state."""
        self._cancel_debounce()
        return self.push(force=True, notify_success=True)

    def pull(self) -> bool:
        """
        Manual pull: replace local data with the remote copy.

        On failure the local data is kept as is.

        Returns:
            True on success
        """
        session = self._store.state.session
        if session is None:
            return False

        self._set_status(SyncStatus.SYNCING)
        try:
            cloud_data = self._gateway.pull_company_state(session.store_handle)
        except RemoteStoreError as e:
            logger.error(f"Refresh failed: {e}")
            self._set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Refresh Failed.")
            return False

        self._cancel_debounce()
        merged = deep_merge(default_app_data(), cloud_data)
        with self._lock:
            self._last_synced = serialize_app_data(merged)
        self._store.dispatch(Action(ActionType.LOAD_DATA, merged))
        self._set_status(SyncStatus.SUCCESS)
        self._schedule_decay()
        self._store.notify(NotificationLevel.SUCCESS, "Data refreshed from cloud.")
        logger.info("Pulled company data from cloud")
        return True

    # =========================================================================
    # STATUS HELPERS
    # =========================================================================

    def set_status(self, status: SyncStatus) -> None:
        """Report a sync status on behalf of another engine."""
        self._set_status(status)
        if status is SyncStatus.SUCCESS:
            self._schedule_decay()

    def _set_status(self, status: SyncStatus) -> None:
        self._store.dispatch(Action(ActionType.SET_SYNC_STATUS, status))

    def _schedule_decay(self) -> None:
        with self._lock:
            if self._decay_timer is not None:
                self._decay_timer.cancel()
            timer = self._timer_factory(self.status_decay_seconds, self._decay_to_idle)
            timer.daemon = True
            self._decay_timer = timer
            timer.start()

    def _decay_to_idle(self) -> None:
        with self._lock:
            self._decay_timer = None
        # Only clear SUCCESS; a newer PENDING/SYNCING/ERROR must stay visible
        if self._store.state.ui.sync_status is SyncStatus.SUCCESS:
            self._set_status(SyncStatus.IDLE)

    def _cancel_debounce(self) -> None:
        with self._lock:
            if self._debounce_timer is not None:
                self._debounce_timer.cancel()
                self._debounce_timer = None

    def _cancel_timers(self) -> None:
        with self._lock:
            for timer in (self._debounce_timer, self._decay_timer):
                if timer is not None:
                    timer.cancel()
            self._debounce_timer = None
            self._decay_timer = None

    def shutdown(self) -> None:
        """Cancel timers and stop observing the store."""
        self._cancel_timers()
        self._unsubscribe()
        if self._init_thread and self._init_thread.is_alive():
            self._init_thread.join(timeout=5.0)
        logger.info("SyncService stopped")
