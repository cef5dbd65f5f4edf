"""
bluegreen - Zero-downtime blue-green container releases on a single host
"""

__version__ = "0.1.0"

from .core import DeploymentOrchestrator
from .errors import DeployError

__all__ = ["DeploymentOrchestrator", "DeployError"]
