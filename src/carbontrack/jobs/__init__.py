"""Background jobs."""

from .leaderboard_warmup import register_scheduler, run_warmup_once

__all__ = ["register_scheduler", "run_warmup_once"]
