"""
PhotoVault - object storage broker for a photo-sharing application.

This package contains the complete service:
- core: Framework-agnostic access control and brokering logic
- infrastructure: Storage backends and record repositories
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
