"""
Caching of feature evaluation results.
"""
