"""
Utility modules for the brain time pipeline.

This package contains shared utility functions for:
- config_loader: Configuration loading and option resolution
- io_utils: Saving and loading result bundles
- logging_utils: Logging setup and utilities
"""

__all__ = [
    "config_loader",
    "io_utils",
    "logging_utils",
]
