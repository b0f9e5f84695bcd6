"""Fixed-capacity pool of pre-built decoder sessions with blocking checkout."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Set

from asr_server.backend.runtime.hooks import NOOP_HOOKS, DecodeHooks
from asr_server.errors import ErrorCode, STTError
from asr_server.model.bundle import ModelResourceBundle
from asr_server.model.session import DecoderFactory, DecoderSession
from asr_server.utils.logger import clear_session_id, set_session_id

LOGGER = logging.getLogger("asr_server.decoder_pool")


class DecoderPool:
    """Owns every idle session; ``acquire`` hands exclusive ownership to a caller.

    Callers beyond capacity block in ``acquire`` until a session is released.
    This is the only backpressure in the decoding core: there is no timeout
    and no request queue beyond the threads waiting on the condition.
    """

    def __init__(
        self,
        bundle: ModelResourceBundle,
        size: Optional[int] = None,
        factory: Optional[Callable[[], DecoderSession]] = None,
        hooks: Optional[DecodeHooks] = None,
    ) -> None:
        capacity = bundle.spec.n_decoders if size is None else int(size)
        if capacity <= 0:
            raise ValueError("pool size must be >= 1")
        self.bundle = bundle
        self._hooks = hooks or NOOP_HOOKS
        self._factory = factory or DecoderFactory(bundle, hooks=self._hooks)
        self._capacity = capacity
        self._cond = threading.Condition(threading.Lock())
        self._idle: List[DecoderSession] = []
        self._checked_out: Set[DecoderSession] = set()
        self._members: Set[DecoderSession] = set()
        self._closed = False

        start = time.perf_counter()
        for i in range(capacity):
            LOGGER.debug(
                "Producing decoder %d/%d for model '%s'",
                i + 1,
                capacity,
                bundle.model_id,
            )
            session = self._factory()
            self._idle.append(session)
            self._members.add(session)
        LOGGER.info(
            "Decoder pool for model '%s' ready (size=%d) in %.0fms",
            bundle.model_id,
            capacity,
            (time.perf_counter() - start) * 1000.0,
        )

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def idle_count(self) -> int:
        with self._cond:
            return len(self._idle)

    def in_use_count(self) -> int:
        with self._cond:
            return len(self._checked_out)

    def acquire(self) -> DecoderSession:
        """Take an idle session, blocking while every session is checked out."""
        start = time.perf_counter()
        with self._cond:
            while not self._idle and not self._closed:
                self._cond.wait()
            if self._closed:
                raise STTError(ErrorCode.POOL_CLOSED)
            session = self._idle.pop()
            self._checked_out.add(session)
        self._hooks.on_pool_wait(time.perf_counter() - start)
        return session

    def release(self, session: DecoderSession) -> None:
        """Return a checked-out session and wake one waiter."""
        with self._cond:
            if session not in self._members or session not in self._checked_out:
                raise STTError(ErrorCode.SESSION_RELEASE_INVALID)
            self._checked_out.discard(session)
            if self._closed:
                session.free()
                return
            self._idle.append(session)
            self._cond.notify()

    @contextmanager
    def checkout(self, session_id: Optional[str] = None) -> Iterator[DecoderSession]:
        """Acquire, start an utterance, and release on every exit path."""
        session = self.acquire()
        try:
            sid = session_id or uuid.uuid4().hex
            set_session_id(sid)
            session.start(sid)
            yield session
        finally:
            clear_session_id()
            self.release(session)

    def close(self) -> None:
        """Destroy idle sessions and fail any blocked or later ``acquire``."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            idle = list(self._idle)
            self._idle.clear()
            outstanding = len(self._checked_out)
            self._cond.notify_all()
        for session in idle:
            session.free()
        if outstanding:
            LOGGER.warning(
                "Decoder pool for model '%s' closed with %d session(s) still held",
                self.bundle.model_id,
                outstanding,
            )
        LOGGER.info("Decoder pool for model '%s' closed", self.bundle.model_id)

    def __enter__(self) -> "DecoderPool":
        return self

    def __exit__(self, *_exc) -> None:
        self.close()


__all__ = ["DecoderPool"]
