from .health import PipelineHealth, check_pipeline_health
from .session_extraction import ExtractionJobConfig, ExtractionRunResult, SessionExtractionJob

__all__ = [
    "ExtractionJobConfig",
    "ExtractionRunResult",
    "PipelineHealth",
    "SessionExtractionJob",
    "check_pipeline_health",
]
