"""
Data models for the deployment system
"""

from .artifact import CompiledArtifact
from .deployment import (
    DeploymentRequest,
    DeploymentResult,
    DeploymentStage,
    GasEstimate,
    HubSpokeDeploymentRequest,
)

__all__ = [
    'CompiledArtifact',
    'DeploymentRequest',
    'DeploymentResult',
    'DeploymentStage',
    'GasEstimate',
    'HubSpokeDeploymentRequest',
]
