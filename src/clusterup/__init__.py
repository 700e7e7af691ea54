"""
clusterup - single-node OpenShift bring-up in Docker
"""

__version__ = "0.1.0"

from .core import StartupOrchestrator
from .errors import ClusterUpError
from .models import StartOptions, StartPolicy

__all__ = ["StartupOrchestrator", "ClusterUpError", "StartOptions", "StartPolicy"]
