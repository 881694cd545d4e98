"""
FraudNet Ensemble - Staged Fraud-Scoring Pipeline
==================================================

Version: 1.0.0
"""

__version__ = "1.0.0"

# Imports are done directly in each module to avoid circular dependencies
# Use: from fraudnet.registry import build_default_registry
# Use: from fraudnet.orchestrator import PipelineOrchestrator
