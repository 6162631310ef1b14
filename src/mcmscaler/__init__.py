# src/mcmscaler/__init__.py
"""
mcm-scaler: cluster-autoscaler node groups backed by machine-controller-manager.
"""

__version__ = "0.3.0"
