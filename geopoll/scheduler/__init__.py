from .poll_scheduler import PollScheduler

__all__ = ["PollScheduler"]
