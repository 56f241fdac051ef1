"""
API route modules, one router per resource.

Routers are included from timetrack.api.main under the /api/v1 prefix.
"""
