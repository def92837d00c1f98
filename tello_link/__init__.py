"""Async UDP client for Tello-class drones."""

__version__ = "0.1.0"
