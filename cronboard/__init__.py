"""cronboard: status board and manifest store for externally scheduled jobs."""

__version__ = "1.0.0"
