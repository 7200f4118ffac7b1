"""
buildwarden - a development-time supervisor for compiled projects.

Builds a project, runs and restarts its executable, streams and classifies
its output, and runs auxiliary toolchain commands concurrently.
"""

__version__ = "0.1.0"
