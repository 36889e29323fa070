"""
Echo Server HTTP API Service

This package provides the HTTP layer of the echo server: a fixed route
table wrapped by request metrics and an optional API-key gate, served by
uvicorn under a lifecycle manager that owns graceful shutdown.

Architecture:
- server.py: FastAPI application factory and lifecycle manager
- config.py: Service configuration management
- keystore.py: In-memory API key set with constant-time validation
- auth.py: API key middleware for protected path prefixes
- metrics.py: Prometheus registry and request metrics middleware
- handlers.py: Echo, health and metrics endpoints
- errors.py: Service error types and structured error bodies
"""

__version__ = "0.1.0"
