"""Closed waypoint tracks and progress measurement."""

from neuroracer.track.waypoints import MIN_WAYPOINTS, FitnessMeter, WaypointTrack

__all__ = ["MIN_WAYPOINTS", "FitnessMeter", "WaypointTrack"]
