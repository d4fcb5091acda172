from .builder import CONTRACT_FEATURE_KEYS, UNDERLYING_FEATURE_KEYS, FeatureBuilder

__all__ = ["CONTRACT_FEATURE_KEYS", "FeatureBuilder", "UNDERLYING_FEATURE_KEYS"]
