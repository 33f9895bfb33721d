"""
Core business logic for brokered object storage.

This module is framework-agnostic - it doesn't import FastAPI or boto3.
Access decisions and path handling can be tested in isolation.
"""
