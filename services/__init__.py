"""
Services layer for Field Estimator.

This module contains the stateful engines:
- StateStore: Single source of truth, applies actions atomically
- SyncService: Session recovery, cloud-first load, debounced auto-push
- JobLifecycleService: Estimate/work order/invoice/payment transitions
- SessionService: Login, signup, crew login, logout

Thread Model:
    Main Thread (Flask request handling)
    ├── Sync thread (startup initialization)
    ├── Timer threads (push debounce, status decay)
    └── Reconcile threads (one per background lifecycle operation)

All engines share one StateStore; only the store mutates state.
"""

from .state_store import StateStore, reduce
from .sync_service import SyncService
from .lifecycle_service import JobLifecycleService
from .session_service import SessionService

__all__ = [
    "StateStore",
    "reduce",
    "SyncService",
    "JobLifecycleService",
    "SessionService",
]
