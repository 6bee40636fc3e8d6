"""Background task helpers."""
from pizza_promo.tasks.detached import spawn_detached, drain_detached, pending_tasks

__all__ = ['spawn_detached', 'drain_detached', 'pending_tasks']
