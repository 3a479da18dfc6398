"""Process-wide lifecycle of the native engine.

``Subsystem`` is the explicit context the pipeline runs against: it owns the
binding, the handle ledger and the Uninitialized/Initialized state. libvips
state (cache limits, concurrency, tracing) is global to the process, so every
state transition and every configuration call is serialized by one lock shared
by all ``Subsystem`` instances. Ordinary transforms never take that lock.
"""

from __future__ import annotations

import atexit
import contextlib
import threading
from dataclasses import asdict, dataclass, replace
from typing import Any

from image_transform.config import SubsystemConfig
from image_transform.engine.binding import NativeBinding
from image_transform.engine.handle import HandleLedger
from image_transform.errors import EngineStartupError, NotInitializedError
from image_transform.logger import get_logger

_logger = get_logger("lifecycle")

_ENGINE_LOCK = threading.RLock()
_exit_hooks: set[type] = set()


@dataclass(frozen=True)
class MemoryStats:
    memory: int
    memory_highwater: int
    allocations: int
    live_handles: int


def _engine_exit_hook(binding: NativeBinding) -> None:
    with contextlib.suppress(Exception):
        binding.shutdown_engine()


class Subsystem:
    def __init__(
        self,
        config: SubsystemConfig | None = None,
        binding_cls: type[NativeBinding] = NativeBinding,
    ) -> None:
        self.config = config or SubsystemConfig.from_env()
        self.ledger = HandleLedger()
        self.binding = binding_cls(self)
        self._initialized = False
        self.engine_version: tuple[int, int] | None = None

    def __repr__(self) -> str:
        state = "initialized" if self._initialized else "uninitialized"
        return f"<Subsystem {state} live_handles={self.ledger.live}>"

    # ---- lifecycle -------------------------------------------------
    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("image subsystem is not initialized; call initialize() first")

    def initialize(self) -> Subsystem:
        """Start the engine and apply cache/concurrency tuning. No-op when already initialized.

        Raises EngineStartupError when libvips cannot start or is older than
        ``config.min_version``; callers should treat that as fatal.
        """
        with _ENGINE_LOCK:
            if self._initialized:
                return self
            cfg = self.config
            version = self.binding.start_engine(cfg.concurrency)
            if version < tuple(cfg.min_version):
                raise EngineStartupError(
                    f"unsupported libvips version {version[0]}.{version[1]}; "
                    f"need >= {cfg.min_version[0]}.{cfg.min_version[1]}"
                )
            self.engine_version = version

            self.binding.set_cache_limits(cfg.max_cache_mem, cfg.max_cache_ops)
            if cfg.concurrency is not None:
                self.binding.set_concurrency(cfg.concurrency)
            if cfg.trace:
                self.binding.set_cache_trace(True)

            if type(self.binding) not in _exit_hooks:
                atexit.register(_engine_exit_hook, self.binding)
                _exit_hooks.add(type(self.binding))

            self._initialized = True
            _logger.debug(
                "subsystem initialized: libvips %d.%d cache_mem=%d cache_ops=%d concurrency=%s trace=%s",
                version[0],
                version[1],
                cfg.max_cache_mem,
                cfg.max_cache_ops,
                cfg.concurrency if cfg.concurrency is not None else "auto",
                cfg.trace,
            )
            return self

    def shutdown(self) -> None:
        """Drop the engine cache and return to Uninitialized. No-op when not initialized."""
        with _ENGINE_LOCK:
            if not self._initialized:
                return
            live = self.ledger.live
            if live:
                _logger.warning("shutdown with %d live native handle(s)", live)
            if self.config.trace:
                self.binding.set_cache_trace(False)
            self.binding.drop_cache()
            self._initialized = False
            _logger.debug("subsystem shut down")

    def configure(
        self,
        *,
        max_cache_mem: int | None = None,
        max_cache_ops: int | None = None,
        concurrency: int | None = None,
        trace: bool | None = None,
    ) -> SubsystemConfig:
        """Retune a running engine; the new values also apply to later re-initialization."""
        with _ENGINE_LOCK:
            self.require_initialized()
            cfg = self.config
            changes: dict[str, Any] = {}
            if max_cache_mem is not None:
                changes["max_cache_mem"] = int(max_cache_mem)
            if max_cache_ops is not None:
                changes["max_cache_ops"] = int(max_cache_ops)
            if concurrency is not None:
                changes["concurrency"] = int(concurrency)
            if trace is not None:
                changes["trace"] = bool(trace)
            cfg = replace(cfg, **changes)

            if "max_cache_mem" in changes or "max_cache_ops" in changes:
                self.binding.set_cache_limits(cfg.max_cache_mem, cfg.max_cache_ops)
            if "concurrency" in changes:
                self.binding.set_concurrency(cfg.concurrency)
            if "trace" in changes:
                self.binding.set_cache_trace(cfg.trace)
            self.config = cfg
            _logger.debug("subsystem reconfigured: %s", changes)
            return cfg

    def __enter__(self) -> Subsystem:
        return self.initialize()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ---- introspection ---------------------------------------------
    def memory_stats(self) -> MemoryStats:
        memory, highwater, allocations = self.binding.tracked_memory()
        return MemoryStats(
            memory=memory,
            memory_highwater=highwater,
            allocations=allocations,
            live_handles=self.ledger.live,
        )

    def debug_info(self) -> dict[str, Any]:
        stats = self.memory_stats()
        info = {
            "initialized": self._initialized,
            "engine_version": self.engine_version,
            "config": asdict(self.config),
            "memory": asdict(stats),
            "handles": self.ledger.snapshot(),
        }
        _logger.info("subsystem debug info: %s", info)
        return info


_default: Subsystem | None = None
_default_lock = threading.Lock()


def get_subsystem() -> Subsystem:
    """Return the process default subsystem.

    It is created and initialized on first access. After an explicit
    ``shutdown()`` it stays down until ``initialize()`` is called again.
    """
    global _default
    with _default_lock:
        if _default is not None:
            return _default
        subsystem = Subsystem()
        subsystem.initialize()
        _default = subsystem
        return subsystem


def initialize() -> Subsystem:
    return get_subsystem().initialize()


def shutdown() -> None:
    with _default_lock:
        subsystem = _default
    if subsystem is not None:
        subsystem.shutdown()


def memory_stats() -> MemoryStats:
    return get_subsystem().memory_stats()
