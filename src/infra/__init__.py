"""Infrastructure layer package.

Implements Port interfaces with concrete adapters (MySQL, Redis Cluster).
Gateway routers receive adapters from src.main and MUST NOT import them directly.
"""
