"""
Repository layer for data access.

Repositories encapsulate SQLAlchemy queries for each domain area (users, teams,
projects, tasks, time logs, invoices, chat, notifications). They assume the
provided AsyncSession has tenant context configured (e.g., using
timetrack.core.deps.get_tenant_session) and leave commits to services.
"""
