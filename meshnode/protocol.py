from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Dict, Optional, Callable, List, Set, Union, Any
import itertools, logging, threading

from .builder import MessageBuilder
from .codecs import Codec, JSONCodec
from .config import NodeConfig
from .errors import (
    AlreadyInitialized, ErrorCode, MalformedRequest, MeshError, NodeStopped, NotInitialized, ProtocolViolation, RPCError, RPCTimeout,
)
from .message import Envelope, MsgType
from .rpc import RetryManager
from .ticker import Ticker
from .transport import Transport
from .wire import pack_frame, unpack_frame

logger = logging.getLogger(__name__)

Handler = Callable[[Envelope], None]


class Protocol:

    # Notes:
    # - Owns the node identity (set once by init) and the msg_id allocator
    # - Replies (in_reply_to set) go straight to the RetryManager from the reader thread
    # - Every request runs as its own task on the handler pool, so a handler blocked on
    #   an RPC never stops replies from being routed
    # - Protocol violations become `error` replies when the sender can be answered,
    #   anything else that escapes a handler is fatal and stops the node

    def __init__(self, transport: Transport, *, codec: Optional[Codec] = None,
                 config: Optional[NodeConfig] = None):
        self.t = transport
        self.codec = codec or JSONCodec()
        self.config = config or NodeConfig()

        # Identity
        self.node_id: Optional[str] = None
        self.node_ids: List[str] = []
        self._init_lock = threading.Lock()
        self._init_hooks: List[Callable[[], None]] = []

        # msg_id allocation
        self._ids = itertools.count(1)
        self._id_lock = threading.Lock()

        # Handlers, keyed by body type
        self._handlers: Dict[str, Handler] = {}
        self.engines: Dict[str, Any] = {}

        # Lifecycle
        self._tickers: List[Ticker] = []
        self._pool: Optional[ThreadPoolExecutor] = None
        self._inflight: Set[Future] = set()
        self._inflight_lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None
        self._stopped = threading.Event()
        self._fatal: Optional[BaseException] = None

        self.rpc = RetryManager(self, interval=self.config.retry_interval,
                                timeout=self.config.rpc_timeout)

        self.on(MsgType.INIT, self._handle_init)
        self.on(MsgType.ERROR, self._handle_unsolicited_error)

    # ---- registration ----
    def on(self, type: Union[MsgType, str], handler: Handler) -> None:
        """Route requests of body `type` to `handler`. A handler may block."""
        if str(type) in self._handlers:
            raise ValueError(f"{str(type)!r} already has a handler")
        self._handlers[str(type)] = handler

    def on_init(self, hook: Callable[[], None], *, first: bool = False) -> None:
        """
        Run `hook` after the identity is assigned and before init_ok is sent.
        first=True puts it ahead of hooks already registered.
        """
        if first:
            self._init_hooks.insert(0, hook)
        else:
            self._init_hooks.append(hook)

    def add_ticker(self, name: str, tick: Callable[[], None], every_seconds: float) -> Ticker:
        ticker = Ticker(name, tick, every_seconds, on_error=self.fail)
        self._tickers.append(ticker)
        if self.running:
            ticker.start()
        return ticker

    # ---- identity ----
    def init(self, node_id: str, node_ids: List[str]) -> None:
        with self._init_lock:
            if self.node_id is not None:
                raise AlreadyInitialized(self.node_id)
            self.node_id = node_id
            self.node_ids = sorted(node_ids)
        logger.info("initialized as %s (cluster of %d)", node_id, len(node_ids))

    def _forget_identity(self) -> None:
        with self._init_lock:
            self.node_id = None
            self.node_ids = []

    def next_msg_id(self) -> int:
        with self._id_lock:
            return next(self._ids)

    @property
    def initialized(self) -> bool:
        return self.node_id is not None

    # ---- sending ----
    def emit(self, env: Envelope) -> None:
        """Put one envelope on the transport. TransportError propagates (fatal)."""
        self.t.send(env.dest, pack_frame(env, self.codec))

    def build(self, dest: str, type: Union[MsgType, str], **fields: Any) -> Envelope:
        return (MessageBuilder(self._require_id())
                .to(dest)
                .body(type, **fields)
                .msg_id(self.next_msg_id())
                .build())

    def reply(self, request: Envelope, type: Union[MsgType, str], **fields: Any) -> Envelope:
        env = (MessageBuilder(self.node_id or request.dest)
               .reply(request, type, **fields)
               .msg_id(self.next_msg_id())
               .build())
        self.emit(env)
        return env

    def reply_error(self, request: Envelope, code: int, text: Optional[str] = None) -> Envelope:
        env = (MessageBuilder(self.node_id or request.dest)
               .error(request, code, text)
               .msg_id(self.next_msg_id())
               .build())
        self.emit(env)
        return env

    def _require_id(self) -> str:
        if self.node_id is None:
            raise NotInitialized()
        return self.node_id

    # ---- dispatch ----
    def handle_frame(self, frame: bytes) -> None:
        self.dispatch(unpack_frame(frame, self.codec))

    def dispatch(self, env: Envelope) -> None:
        if env.is_reply:
            self.rpc.resolve(env)
            return

        handler = self._handlers.get(str(env.type))
        if handler is None:
            self._reject(env, ProtocolViolation(f"unexpected message type {str(env.type)!r}"))
            return
        if self._pool is None:
            # Not started (direct use in tests): run inline
            self._run_handler(handler, env)
        else:
            future = self._pool.submit(self._run_handler, handler, env)
            with self._inflight_lock:
                self._inflight.add(future)
            future.add_done_callback(self._task_done)

    def _task_done(self, future: Future) -> None:
        with self._inflight_lock:
            self._inflight.discard(future)

    def _run_handler(self, handler: Handler, env: Envelope) -> None:
        try:
            if env.type not in (MsgType.INIT, MsgType.ERROR) and not self.initialized:
                raise NotInitialized()
            handler(env)
        except ProtocolViolation as ex:
            self._reject(env, ex)
        except RPCTimeout as ex:
            logger.warning("%s from %s gave up: %s", env.type, env.src, ex)
            self.reply_error(env, ErrorCode.TIMEOUT, str(ex))
        except NodeStopped:
            logger.info("abandoned %s from %s: node stopped", env.type, env.src)
        except Exception as ex:
            logger.exception("handler for %s failed", env.type)
            self.fail(ex)

    def _reject(self, env: Envelope, ex: ProtocolViolation) -> None:
        if env.msg_id is None:
            # Nobody to answer
            self.fail(ex)
            return
        logger.warning("rejecting %s from %s: %s", env.type, env.src, ex)
        self.reply_error(env, ex.code, str(ex))

    def _handle_init(self, env: Envelope) -> None:
        try:
            node_id = env["node_id"]
            node_ids = list(env["node_ids"])
        except (KeyError, TypeError) as ex:
            raise MalformedRequest(f"malformed init: {ex}") from ex
        self.init(node_id, node_ids)
        try:
            for hook in self._init_hooks:
                hook()
        except BaseException:
            # A failed hook leaves the node uninitialized so init can be retried
            self._forget_identity()
            raise
        self.reply(env, MsgType.INIT_OK)

    def _handle_unsolicited_error(self, env: Envelope) -> None:
        err = RPCError.from_body(env.payload)
        logger.error("unsolicited error from %s: %s", env.src, err)
        self.fail(err)

    # ---- lifecycle ----
    @property
    def running(self) -> bool:
        return self._pool is not None and not self._stopped.is_set()

    @property
    def stopping(self) -> bool:
        return self._stopped.is_set()

    @property
    def fatal_error(self) -> Optional[BaseException]:
        return self._fatal

    def start(self) -> None:
        if self._pool is not None:
            return
        self._pool = ThreadPoolExecutor(max_workers=self.config.workers,
                                        thread_name_prefix="meshnode-handler")
        self.t.start()
        self.rpc.start()
        for ticker in self._tickers:
            ticker.start()
        self._reader = threading.Thread(target=self._read_loop, name="meshnode-reader", daemon=True)
        self._reader.start()

    def run(self, drain_timeout: float = 2.0) -> None:
        """
        Start, block until the transport closes or a fatal error, then stop.
        On a clean close, requests already dispatched get up to `drain_timeout`
        seconds to finish. A fatal error is re-raised.
        """
        self.start()
        self._stopped.wait()
        self.stop(drain_timeout=0.0 if self._fatal is not None else drain_timeout)
        if self._fatal is not None:
            raise self._fatal

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._stopped.wait(timeout)

    def stop(self, drain_timeout: float = 0.0) -> None:
        self._stopped.set()
        if drain_timeout > 0:
            with self._inflight_lock:
                inflight = list(self._inflight)
            if inflight:
                _, not_done = wait_futures(inflight, timeout=drain_timeout)
                if not_done:
                    logger.warning("abandoning %d unfinished requests", len(not_done))
        for ticker in self._tickers:
            ticker.stop()
        self.t.stop()
        if self._pool is not None:
            self._pool.shutdown(wait=False, cancel_futures=True)

    def fail(self, ex: BaseException) -> None:
        """Record a fatal error and stop the node. The first error wins."""
        if self._fatal is None:
            self._fatal = ex
            if isinstance(ex, MeshError):
                logger.error("fatal: %s", ex)
        self._stopped.set()

    def _read_loop(self) -> None:
        try:
            for frame in self.t.frames():
                if self._stopped.is_set():
                    return
                self.handle_frame(frame)
        except Exception as ex:
            logger.exception("reader stopped")
            self.fail(ex)
            return
        self._stopped.set()
