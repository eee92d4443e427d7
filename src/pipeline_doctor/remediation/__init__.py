"""
Remediation execution for Pipeline Doctor.

Classes:
    RemediationExecutor: Applies classified actions via orchestration APIs
    ExecutionResult: Record of a dispatched remediation
"""

from .executor import RemediationExecutor, ExecutionResult

__all__ = [
    "RemediationExecutor",
    "ExecutionResult",
]
