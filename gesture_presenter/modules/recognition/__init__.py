"""Gesture classifier backends."""
from .backend import ClassifierBackend
from .confidence_scorer import ConfidenceScorer
from .model_manager import ModelManager, ModelState

__all__ = ["ClassifierBackend", "ConfidenceScorer", "ModelManager", "ModelState"]
