"""Port interfaces - Layer boundary contracts.

Ports:
    UserStorePort      - CRUD over one store of user records
    ClusterCommandPort - Resilient command interface to the KV cluster
"""

from src.ports.cluster_port import ClusterCommandPort
from src.ports.user_store_port import UserStorePort

__all__ = [
    "ClusterCommandPort",
    "UserStorePort",
]
