"""Tiny Core Remaster - fetch Tiny Core extensions and remaster boot ISOs.

This package provides an extension fetcher that mirrors .tcz extensions with
their dependency trees, and an image builder that injects them into core.gz.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
