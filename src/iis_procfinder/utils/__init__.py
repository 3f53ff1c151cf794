"""
Shared utilities for iis-procfinder: logging, errors and configuration.
"""
