"""
Orchestration API integrations for Pipeline Doctor.
"""

from .orchestrators import (
    BuildOrchestrator,
    PipelineOrchestrator,
    CodeBuildOrchestrator,
    CodePipelineOrchestrator,
)

__all__ = [
    "BuildOrchestrator",
    "PipelineOrchestrator",
    "CodeBuildOrchestrator",
    "CodePipelineOrchestrator",
]
