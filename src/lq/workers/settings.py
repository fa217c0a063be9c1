"""arq worker settings module.

Import path for arq CLI: arq lq.workers.settings.WorkerSettings
"""

from __future__ import annotations

from lq.workers.reconciliation import WorkerSettings

__all__ = ["WorkerSettings"]
