"""
Purchasable products, purchase requirement trees and purchase trackers.
"""
