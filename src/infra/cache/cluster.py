"""Redis Cluster adapter implementing ClusterCommandPort.

One instance per process, created by the composition root. It owns the
shared RedisCluster client and an explicit state machine:

    UNINITIALIZED -> DISCOVERING -> (WAITING) -> CONNECTING -> READY
    READY -> DEGRADED            topology change, failed ping, routing error
    DEGRADED -> CONNECTING       reconnect (manual or by the monitor)
    DISCOVERING/WAITING/CONNECTING -> FAILED   init retries exhausted

FAILED is terminal until reconnect() is called. Commands are accepted only
in READY; routing and transport errors trigger reconnect-and-retry cycles.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import uuid4

import redis.asyncio as aioredis
from redis.asyncio.cluster import ClusterNode, RedisCluster
from redis.exceptions import (
    AskError,
    ClusterError,
    RedisClusterException,
    RedisError,
    TryAgainError,
)
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from src.infra.cache import metrics
from src.infra.cache.topology import (
    ClusterBootstrapError,
    DiscoveryReport,
    SeedStatus,
    discover,
    parse_cluster_info,
)
from src.ports.cluster_port import ClusterCommandPort
from src.shared.errors import (
    ClusterInitError,
    ClusterNotReadyError,
    ClusterUnavailableError,
    PortTimeoutError,
)
from src.shared.resilience.retry import RetryExhaustedError, RetryPolicy, retry_with_backoff
from src.shared.resilience.timeout import execute_with_timeout

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from src.shared.config import NodeAddress, RedisClusterSettings

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Errors that mean the client's view of the shard map is wrong or the
# cluster/node is unreachable. MovedError is a subclass of AskError and only
# escapes redis-py when the redirect target is unknown to the client.
_TOPOLOGY_ERRORS: tuple[type[BaseException], ...] = (
    ClusterError,  # includes ClusterDownError / MasterDownError
    RedisClusterException,  # includes SlotNotCoveredError
    AskError,
    TryAgainError,
    RedisConnectionError,
    RedisTimeoutError,
    PortTimeoutError,
    TimeoutError,
    OSError,
)

# Failures that make one initialisation attempt worth repeating
_INIT_RETRIABLE: tuple[type[BaseException], ...] = (
    ClusterBootstrapError,
    RedisError,
    *_TOPOLOGY_ERRORS,
)


def is_topology_error(exc: BaseException) -> bool:
    return isinstance(exc, _TOPOLOGY_ERRORS)


class ClusterState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    DISCOVERING = "discovering"
    WAITING = "waiting"
    CONNECTING = "connecting"
    READY = "ready"
    DEGRADED = "degraded"
    FAILED = "failed"


def _default_cluster_factory(settings: RedisClusterSettings) -> Callable[[Sequence[NodeAddress]], Any]:
    def factory(nodes: Sequence[NodeAddress]) -> RedisCluster:
        return RedisCluster(
            startup_nodes=[ClusterNode(n.host, n.port) for n in nodes],
            password=settings.password,
            ssl=settings.tls,
            decode_responses=True,
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.connect_timeout,
            require_full_coverage=True,
        )

    return factory


def _default_node_factory(settings: RedisClusterSettings) -> Callable[[NodeAddress], Any]:
    def factory(node: NodeAddress) -> aioredis.Redis:
        return aioredis.Redis(
            host=node.host,
            port=node.port,
            password=settings.password,
            ssl=settings.tls,
            decode_responses=True,
            socket_timeout=settings.socket_timeout,
            socket_connect_timeout=settings.connect_timeout,
        )

    return factory


def _parse_scan_reply(reply: Any) -> tuple[int, list[Any]]:
    cursor, batch = reply[0], reply[1]
    if isinstance(cursor, bytes):
        cursor = cursor.decode()
    return int(cursor), list(batch or [])


def _decode_key(key: Any) -> str:
    return key.decode("utf-8") if isinstance(key, bytes) else str(key)


class RedisClusterAdapter(ClusterCommandPort):
    """Retry-resilient command interface to a sharded, replicated Redis Cluster.

    Args:
        settings: Seeds, credentials and tuning knobs.
        cluster_factory: Builds the cluster client from live seed addresses.
            Defaults to redis.asyncio.cluster.RedisCluster.
        node_factory: Builds a standalone client for one seed (discovery only).
            Defaults to redis.asyncio.Redis.
    """

    def __init__(
        self,
        settings: RedisClusterSettings,
        *,
        cluster_factory: Callable[[Sequence[NodeAddress]], Any] | None = None,
        node_factory: Callable[[NodeAddress], Any] | None = None,
    ) -> None:
        self._settings = settings
        self._cluster_factory = cluster_factory or _default_cluster_factory(settings)
        self._node_factory = node_factory or _default_node_factory(settings)

        self._state = ClusterState.UNINITIALIZED
        self._cluster: Any | None = None
        self._generation = 0
        self._fingerprint: tuple[Any, ...] | None = None
        self._seed_report: tuple[SeedStatus, ...] = ()
        self._last_error: str = ""
        self._lock = asyncio.Lock()
        self._monitor_task: asyncio.Task[None] | None = None
        self._closed = False
        self._publish_state()

    # -- Introspection --

    @property
    def state(self) -> ClusterState:
        return self._state

    @property
    def ready(self) -> bool:
        return self._state is ClusterState.READY

    @property
    def generation(self) -> int:
        """Incremented on every successful (re)connect."""
        return self._generation

    @property
    def last_error(self) -> str:
        return self._last_error

    def ensure_ready(self) -> None:
        if self._state is not ClusterState.READY:
            raise ClusterNotReadyError(self._state.value)

    def node_statuses(self) -> list[dict[str, Any]]:
        """Last known status of every seed node."""
        if self._seed_report:
            return [s.to_dict() for s in self._seed_report]
        return [
            {"host": n.host, "port": n.port, "status": "unknown", "cluster_state": None}
            for n in self._settings.nodes
        ]

    def _set_state(self, state: ClusterState, reason: str = "") -> None:
        if state is self._state:
            return
        previous, self._state = self._state, state
        log = logger.warning if state in (ClusterState.DEGRADED, ClusterState.FAILED) else logger.info
        log(
            "Redis cluster adapter %s -> %s%s",
            previous.value,
            state.value,
            f" ({reason})" if reason else "",
        )
        self._publish_state()

    def _publish_state(self) -> None:
        for s in ClusterState:
            metrics.CLUSTER_STATE.labels(state=s.value).set(1 if s is self._state else 0)

    def _mark_degraded(self, reason: str) -> None:
        self._last_error = reason
        if self._state is ClusterState.READY:
            self._set_state(ClusterState.DEGRADED, reason)

    # -- Lifecycle --

    async def become_ready(self) -> None:
        """Discover, validate and connect; return once READY.

        Raises:
            ClusterInitError: If slot coverage never completed or every
                initialisation attempt failed. The adapter is then FAILED.
        """
        self._closed = False
        async with self._lock:
            if self._state is ClusterState.READY:
                return
            await self._initialize()
        self._ensure_monitor()

    async def reconnect(self) -> None:
        """Explicit reconnect.

        From FAILED or UNINITIALIZED the full discovery sequence runs again;
        otherwise only the connection phase is repeated.

        Raises:
            ClusterInitError: If the adapter could not become READY.
        """
        self._closed = False
        async with self._lock:
            if self._state in (ClusterState.FAILED, ClusterState.UNINITIALIZED):
                await self._initialize()
            else:
                self._mark_degraded("manual reconnect")
                await self._reconnect_locked()
        self._ensure_monitor()

    async def close(self) -> None:
        """Stop the monitor and close the cluster client."""
        self._closed = True
        task, self._monitor_task = self._monitor_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        async with self._lock:
            await self._close_cluster()
            self._set_state(ClusterState.UNINITIALIZED, "closed")

    async def _initialize(self) -> None:
        policy = RetryPolicy(
            max_retries=max(self._settings.init_attempts - 1, 0),
            base_delay=self._settings.init_base_delay,
            multiplier=2.0,
            max_delay=self._settings.init_max_delay,
            jitter=True,
        )
        try:
            await retry_with_backoff(
                self._initialize_once,
                policy=policy,
                retriable_exceptions=_INIT_RETRIABLE,
                label="Redis cluster initialisation",
            )
        except RetryExhaustedError as exc:
            self._last_error = str(exc.last_error)
            self._set_state(ClusterState.FAILED, "initialisation retries exhausted")
            msg = f"Could not initialize Redis Cluster after {exc.attempts} attempts: {exc.last_error}"
            raise ClusterInitError(msg) from exc.last_error
        except ClusterInitError as exc:
            self._last_error = str(exc)
            self._set_state(ClusterState.FAILED, str(exc))
            raise

    async def _initialize_once(self) -> None:
        report = await self._await_slot_coverage()
        seeds = [s.node for s in report.cluster_aware]
        try:
            await self._connect(seeds)
        except BaseException:
            await self._close_cluster()
            raise

    async def _await_slot_coverage(self) -> DiscoveryReport:
        """DISCOVERING / WAITING: poll the seeds until all slots are served.

        Raises:
            ClusterBootstrapError: No seed reachable or none cluster-enabled (retriable).
            ClusterInitError: Slot coverage still incomplete after slot_wait_timeout.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.slot_wait_timeout
        probe_timeout = self._settings.connect_timeout + self._settings.socket_timeout
        self._set_state(ClusterState.DISCOVERING)

        while True:
            report = await discover(self._settings.nodes, self._node_factory, timeout=probe_timeout)
            self._seed_report = report.seeds
            if not report.live:
                msg = f"No Redis seed node reachable ({report.summary()})"
                raise ClusterBootstrapError(msg)
            if not report.cluster_aware:
                msg = "No reachable Redis seed node has cluster support enabled"
                raise ClusterBootstrapError(msg)
            if report.slots_covered:
                logger.info("Redis cluster slot coverage complete: %s", report.summary())
                return report
            if loop.time() >= deadline:
                msg = (
                    f"Redis cluster slot coverage incomplete after "
                    f"{self._settings.slot_wait_timeout:.0f}s: {report.summary()}"
                )
                raise ClusterInitError(msg)
            self._set_state(ClusterState.WAITING, "slot assignment incomplete")
            logger.info("Waiting for Redis cluster slot coverage: %s", report.summary())
            await asyncio.sleep(self._settings.slot_poll_interval)

    async def _connect(self, seeds: Sequence[NodeAddress]) -> None:
        """CONNECTING -> READY: open client, stabilise, smoke test."""
        self._set_state(ClusterState.CONNECTING)
        await self._close_cluster()

        cluster = self._cluster_factory(seeds or self._settings.nodes)
        self._cluster = cluster
        await execute_with_timeout(
            cluster.initialize(),
            self._settings.connect_timeout + self._settings.command_timeout,
        )
        await self._check_stability(cluster)
        await self._smoke_test(cluster)

        self._fingerprint = await execute_with_timeout(
            self._topology_fingerprint(cluster), self._settings.command_timeout
        )
        self._generation += 1
        self._last_error = ""
        self._set_state(ClusterState.READY, f"generation {self._generation}")

    async def _reconnect_locked(self) -> None:
        """Connection phase only, from DEGRADED. Caller holds the lock."""
        seeds = [s.node for s in self._seed_report if s.reachable and s.cluster_enabled]
        try:
            await self._connect(seeds)
        except _INIT_RETRIABLE as exc:
            self._last_error = str(exc)
            await self._close_cluster()
            self._set_state(ClusterState.DEGRADED, f"reconnect failed: {exc}")
            metrics.RECONNECTS.labels(outcome="failure").inc()
            msg = f"Redis cluster reconnect failed: {exc}"
            raise ClusterInitError(msg) from exc
        metrics.RECONNECTS.labels(outcome="success").inc()

    async def _check_stability(self, cluster: Any) -> None:
        """The client must answer PING on every one of several spaced checks."""
        for check in range(self._settings.stability_checks):
            if check:
                await asyncio.sleep(self._settings.stability_interval)
            alive = await execute_with_timeout(cluster.ping(), self._settings.socket_timeout)
            if not alive:
                msg = f"Cluster connection not ready at stability check {check + 1}"
                raise ClusterBootstrapError(msg)

    async def _smoke_test(self, cluster: Any) -> None:
        """SET/GET, HSET/HGETALL, cross-shard scan and CLUSTER INFO must all succeed.

        Each call is bounded by command_timeout on its own.
        """
        timeout = self._settings.command_timeout
        token = uuid4().hex
        key = f"userbridge:smoke:{token}"
        hash_key = f"userbridge:smoke-hash:{token}"
        try:
            await execute_with_timeout(cluster.set(key, token, ex=60), timeout)
            if await execute_with_timeout(cluster.get(key), timeout) != token:
                msg = "Smoke test SET/GET mismatch"
                raise ClusterBootstrapError(msg)

            await execute_with_timeout(cluster.hset(hash_key, mapping={"probe": token}), timeout)
            await execute_with_timeout(cluster.expire(hash_key, 60), timeout)
            if (await execute_with_timeout(cluster.hgetall(hash_key), timeout)).get("probe") != token:
                msg = "Smoke test HSET/HGETALL mismatch"
                raise ClusterBootstrapError(msg)

            keys = await self._scan_nodes(cluster, "userbridge:smoke:*")
            if key not in keys:
                msg = "Smoke test key not visible in cross-shard scan"
                raise ClusterBootstrapError(msg)

            info = parse_cluster_info(await execute_with_timeout(cluster.cluster_info(), timeout))
            if info.get("cluster_state") != "ok":
                msg = f"Cluster reports state {info.get('cluster_state')!r}"
                raise ClusterBootstrapError(msg)
        finally:
            for k in (key, hash_key):
                try:
                    await execute_with_timeout(cluster.delete(k), timeout)
                except (RedisError, PortTimeoutError):
                    logger.debug("Smoke key cleanup failed for %s", k, exc_info=True)

    async def _topology_fingerprint(self, cluster: Any) -> tuple[Any, ...]:
        info = parse_cluster_info(await cluster.cluster_info())
        primaries = tuple(sorted(node.name for node in cluster.get_primaries()))
        return (
            info.get("cluster_state", ""),
            info.get("cluster_current_epoch", ""),
            primaries,
        )

    async def _close_cluster(self) -> None:
        cluster, self._cluster = self._cluster, None
        if cluster is None:
            return
        try:
            await cluster.aclose()
        except (RedisError, OSError):
            logger.debug("Closing Redis cluster client failed", exc_info=True)

    # -- Topology monitor --

    def _ensure_monitor(self) -> None:
        if self._closed or self._settings.monitor_interval <= 0:
            return
        if self._monitor_task is None or self._monitor_task.done():
            self._monitor_task = asyncio.create_task(
                self._monitor(),
                name="redis-cluster-monitor",
            )

    async def _monitor(self) -> None:
        while not self._closed:
            await asyncio.sleep(self._settings.monitor_interval)
            try:
                await self.check_topology()
            except ClusterInitError as exc:
                logger.warning("Automatic Redis cluster reconnect failed: %s", exc)

    async def check_topology(self) -> None:
        """One monitor tick.

        READY: ping and compare the topology fingerprint with the one
        recorded at connect time; any difference or error degrades.
        DEGRADED (with auto_reconnect): one reconnect attempt.
        """
        if self._state is ClusterState.READY and self._cluster is not None:
            cluster, generation = self._cluster, self._generation
            try:
                alive = await execute_with_timeout(cluster.ping(), self._settings.socket_timeout)
                fingerprint = await execute_with_timeout(
                    self._topology_fingerprint(cluster), self._settings.command_timeout
                )
            except _INIT_RETRIABLE as exc:
                if generation == self._generation:
                    self._mark_degraded(f"health check failed: {exc}")
            else:
                if generation != self._generation:
                    return
                if not alive:
                    self._mark_degraded("cluster did not answer PING")
                elif fingerprint != self._fingerprint:
                    self._mark_degraded(f"topology changed: {self._fingerprint} -> {fingerprint}")

        if self._state is ClusterState.DEGRADED and self._settings.auto_reconnect:
            async with self._lock:
                if self._state is ClusterState.DEGRADED:
                    await self._reconnect_locked()

    # -- Command execution --

    async def execute(self, op: Callable[[Any], Awaitable[T]]) -> T:
        """Run `op(cluster)` under command_timeout; reconnect and retry on topology/transport errors.

        Raises:
            ClusterNotReadyError: If the adapter is not READY.
            ClusterUnavailableError: If every retry cycle failed.
            Exception: Any non-topology error from `op`, unchanged.
        """
        return await self._run(op, self._settings.command_timeout)

    async def _call(self, coro: Awaitable[T], timeout: float | None) -> T:
        if timeout is None:
            return await coro
        return await execute_with_timeout(coro, timeout)

    async def _run(self, op: Callable[[Any], Awaitable[T]], timeout: float | None) -> T:
        """Retry loop behind execute(); `timeout` bounds one whole `op`, None leaves it to `op`."""
        if self._state is not ClusterState.READY or self._cluster is None:
            raise ClusterNotReadyError(self._state.value)

        cluster, generation = self._cluster, self._generation
        try:
            return await self._call(op(cluster), timeout)
        except Exception as exc:
            if not is_topology_error(exc):
                raise
            last_error: Exception = exc

        self._mark_degraded(f"command failed: {last_error}")
        policy = RetryPolicy(
            max_retries=self._settings.command_retries,
            base_delay=self._settings.retry_base_delay,
            multiplier=2.0,
            max_delay=self._settings.retry_max_delay,
            jitter=True,
        )
        for attempt in range(self._settings.command_retries):
            await asyncio.sleep(policy.delay_for_attempt(attempt))
            metrics.COMMAND_RETRIES.inc()
            try:
                cluster, generation = await self._fresh_connection(generation)
                return await self._call(op(cluster), timeout)
            except ClusterNotReadyError:
                raise
            except ClusterInitError as exc:
                last_error = exc
            except Exception as exc:
                if not is_topology_error(exc):
                    raise
                last_error = exc
                self._mark_degraded(f"command failed: {exc}")
            logger.warning(
                "Redis command retry %d/%d failed: %s",
                attempt + 1,
                self._settings.command_retries,
                last_error,
            )

        logger.error("Redis command failed after %d retries: %s", self._settings.command_retries, last_error)
        raise ClusterUnavailableError(attempts=1 + self._settings.command_retries, last_error=last_error)

    async def _fresh_connection(self, seen_generation: int) -> tuple[Any, int]:
        """Return a connection newer than `seen_generation`, reconnecting if needed.

        Concurrent callers serialise on the lock; only the first one reconnects.
        """
        async with self._lock:
            if self._closed:
                raise ClusterNotReadyError(ClusterState.UNINITIALIZED.value)
            if self._state is ClusterState.FAILED:
                raise ClusterNotReadyError(self._state.value)
            if not (
                self._state is ClusterState.READY
                and self._generation != seen_generation
                and self._cluster is not None
            ):
                self._mark_degraded("reconnect requested by command retry")
                await self._reconnect_locked()
            if self._cluster is None:
                raise ClusterNotReadyError(self._state.value)
            return self._cluster, self._generation

    # -- Key enumeration --

    async def scan_pattern(self, pattern: str) -> list[str]:
        """Union of keys matching `pattern` on every reachable primary, sorted.

        command_timeout bounds each node call, not the whole enumeration.
        """
        return await self._run(lambda cluster: self._scan_nodes(cluster, pattern), None)

    async def _scan_nodes(self, cluster: Any, pattern: str) -> list[str]:
        timeout = self._settings.command_timeout
        keys: set[str] = set()
        for node in cluster.get_primaries():
            try:
                await execute_with_timeout(node.execute_command("PING"), timeout)
                cursor = 0
                while True:
                    cursor, batch = _parse_scan_reply(
                        await execute_with_timeout(
                            node.execute_command(
                                "SCAN", cursor, "MATCH", pattern, "COUNT", self._settings.scan_batch_size
                            ),
                            timeout,
                        )
                    )
                    keys.update(_decode_key(k) for k in batch)
                    if cursor == 0:
                        break
            except (RedisError, OSError, PortTimeoutError) as exc:
                # Partial result: callers tolerate undercounting during transitions
                metrics.SCAN_SKIPPED_NODES.inc()
                logger.warning("Skipping Redis node %s during scan: %s", node.name, exc)
        return sorted(keys)
