from iot_persistence.core.background.executor import BackgroundExecutor, Job

__all__ = ["BackgroundExecutor", "Job"]
