"""Runtime configuration read from environment variables.

build_app() calls load_dotenv() first, so a local .env file works the same
way as variables injected by docker-compose. All settings objects are frozen;
tests construct them directly instead of patching the environment.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import quote_plus

_TRUTHY = frozenset({"1", "true", "yes", "on"})

_DEFAULT_REDIS_NODES = ",".join(f"redis-node-{i}:6379" for i in range(6))


@dataclass(frozen=True)
class NodeAddress:
    """A `host:port` pair of a cluster seed node."""

    host: str
    port: int

    @property
    def name(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class MySQLSettings:
    host: str = "mysql"
    port: int = 3306
    user: str = "user"
    password: str = ""
    database: str = "userdb"
    ssl: bool = False
    pool_size: int = 10
    pool_timeout: float = 30.0

    @property
    def url(self) -> str:
        """SQLAlchemy URL for the aiomysql driver."""
        return (
            f"mysql+aiomysql://{quote_plus(self.user)}:{quote_plus(self.password)}"
            f"@{self.host}:{self.port}/{self.database}?charset=utf8mb4"
        )


@dataclass(frozen=True)
class RedisClusterSettings:
    """Seed nodes, credentials and the tuning knobs of the cluster adapter."""

    nodes: tuple[NodeAddress, ...] = ()
    password: str | None = None
    tls: bool = False
    socket_timeout: float = 5.0
    connect_timeout: float = 5.0
    command_timeout: float = 10.0
    init_attempts: int = 10
    init_base_delay: float = 1.0
    init_max_delay: float = 15.0
    slot_wait_timeout: float = 60.0
    slot_poll_interval: float = 2.0
    stability_checks: int = 3
    stability_interval: float = 0.5
    command_retries: int = 5
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0
    monitor_interval: float = 5.0
    auto_reconnect: bool = True
    scan_batch_size: int = 100


@dataclass(frozen=True)
class AppSettings:
    mysql: MySQLSettings = field(default_factory=MySQLSettings)
    redis: RedisClusterSettings = field(default_factory=RedisClusterSettings)
    port: int = 5000
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)


def parse_nodes(raw: str) -> tuple[NodeAddress, ...]:
    """Parse `host:port,host:port`; a missing port defaults to 6379."""
    nodes: list[NodeAddress] = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        host, sep, port = item.rpartition(":")
        if not sep:
            host, port = item, "6379"
        if not host:
            msg = f"Invalid Redis node address: {item!r}"
            raise ValueError(msg)
        nodes.append(NodeAddress(host=host, port=int(port)))
    return tuple(nodes)


def _bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUTHY


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    return int(raw) if raw else default


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    return float(raw) if raw else default


def load_settings(environ: Mapping[str, str] | None = None) -> AppSettings:
    """Build AppSettings from the environment.

    Raises:
        ValueError: If a numeric variable or a node address cannot be parsed.
    """
    env = os.environ if environ is None else environ

    mysql = MySQLSettings(
        host=env.get("MYSQL_HOST", "mysql"),
        port=_int(env, "MYSQL_PORT", 3306),
        user=env.get("MYSQL_USER", "user"),
        password=env.get("MYSQL_PASSWORD", "password"),
        database=env.get("MYSQL_DATABASE", "userdb"),
        ssl=_bool(env, "MYSQL_SSL", False),
        pool_size=_int(env, "MYSQL_POOL_SIZE", 10),
        pool_timeout=_float(env, "MYSQL_POOL_TIMEOUT", 30.0),
    )

    # A single configuration endpoint (managed clusters) replaces the seed list
    endpoint = env.get("REDIS_CLUSTER_ENDPOINT", "").strip()
    nodes = parse_nodes(endpoint or env.get("REDIS_NODES", _DEFAULT_REDIS_NODES))
    if not nodes:
        msg = "At least one Redis node must be configured (REDIS_NODES or REDIS_CLUSTER_ENDPOINT)"
        raise ValueError(msg)

    redis = RedisClusterSettings(
        nodes=nodes,
        password=env.get("REDIS_PASSWORD") or None,
        tls=_bool(env, "REDIS_TLS", False),
        socket_timeout=_float(env, "REDIS_SOCKET_TIMEOUT", 5.0),
        connect_timeout=_float(env, "REDIS_CONNECT_TIMEOUT", 5.0),
        command_timeout=_float(env, "REDIS_COMMAND_TIMEOUT", 10.0),
        init_attempts=_int(env, "REDIS_INIT_ATTEMPTS", 10),
        slot_wait_timeout=_float(env, "REDIS_SLOT_WAIT_TIMEOUT", 60.0),
        slot_poll_interval=_float(env, "REDIS_SLOT_POLL_INTERVAL", 2.0),
        stability_checks=_int(env, "REDIS_STABILITY_CHECKS", 3),
        stability_interval=_float(env, "REDIS_STABILITY_INTERVAL", 0.5),
        command_retries=_int(env, "REDIS_COMMAND_RETRIES", 5),
        monitor_interval=_float(env, "REDIS_MONITOR_INTERVAL", 5.0),
        auto_reconnect=_bool(env, "REDIS_AUTO_RECONNECT", True),
        scan_batch_size=_int(env, "REDIS_SCAN_BATCH", 100),
    )

    origins = tuple(
        o.strip() for o in env.get("CORS_ORIGINS", "*").split(",") if o.strip()
    )

    return AppSettings(
        mysql=mysql,
        redis=redis,
        port=_int(env, "PORT", 5000),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        cors_origins=origins or ("*",),
    )
