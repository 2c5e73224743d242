"""
slotengine - availability and conflict detection for a booking marketplace.
"""

__version__ = "0.1.0"
