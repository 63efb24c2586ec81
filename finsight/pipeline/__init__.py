"""
Pipeline engine - channels, sequential stage executor, parallel orchestrator.

Usage:
    from finsight.pipeline import Channel, MergePolicy, Pipeline, PipelineSchema, Stage
"""

from .channels import Channel, ChannelError, ChannelStore, MergePolicy, PipelineSchema
from .executor import Pipeline, Stage, StageExecutor, dependency_error, error_record, to_jsonable
from .orchestrator import OrchestrationResult, SubAnalysis, run_all

__all__ = [
    "Channel",
    "ChannelError",
    "ChannelStore",
    "MergePolicy",
    "PipelineSchema",
    "Pipeline",
    "Stage",
    "StageExecutor",
    "dependency_error",
    "error_record",
    "to_jsonable",
    "OrchestrationResult",
    "SubAnalysis",
    "run_all",
]
