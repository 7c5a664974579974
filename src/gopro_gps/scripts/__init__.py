"""
GoPro GPS Telemetry Scripts Package

Command-line entry points for the gopro_gps package.

Available scripts:
- extract_gps_telemetry: Print GPS5/GPS9 telemetry of MP4 files as a table
"""

__version__ = "1.0.0"
__all__ = ["extract_gps_telemetry"]
