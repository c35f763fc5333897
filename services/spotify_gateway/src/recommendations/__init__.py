"""Recommendation playlist building."""

from .engine import RecommendationEngine, RecommendationOptions, feature_envelope, target_parameters

__all__ = ["RecommendationEngine", "RecommendationOptions", "feature_envelope", "target_parameters"]
