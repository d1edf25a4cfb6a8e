"""
Database package for Herald.

Persistence for per-guild configuration and the dashboard channel directory.

Public API:
    - db_connection: process-wide :class:`ConnectionManager`
    - ConfigStore: get/upsert repository for every configuration kind
"""
