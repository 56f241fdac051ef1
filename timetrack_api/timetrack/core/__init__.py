"""
Core application utilities.

This package provides:
- Application-level settings (separate from DB settings)
- Logging configuration with request context enrichment
- Password hashing and JWT helpers
- Service-level error types mapped onto HTTP responses
- Dependency helpers (tenant extraction, tenant-scoped DB session, current user)
"""
