"""Task manager — periodic background jobs.

Jobs run by an offline-pay node:
- ``mesh_announce`` — flood a PEER_ANNOUNCE every discovery interval
- ``mesh_prune`` — forget expired dedup entries
- ``ledger_sync`` — submit pending transactions while online
"""

from __future__ import annotations

from offline_pay.taskmanager.manager import CronJob, TaskManager

__all__ = ["CronJob", "TaskManager"]
