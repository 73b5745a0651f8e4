"""
Feature graph, user feature toggles and availability checks.
"""
