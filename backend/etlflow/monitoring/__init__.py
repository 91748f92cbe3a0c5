from etlflow.monitoring.health import HealthMonitor, PipelineHealth

__all__ = ["HealthMonitor", "PipelineHealth"]
