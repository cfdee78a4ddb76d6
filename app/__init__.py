"""Scripting shell around the CubeClock NTP observer."""
