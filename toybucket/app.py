"""Service wiring, configuration and the JSON-over-HTTP front end."""

from __future__ import annotations

import argparse
import json
import os
import signal
import sqlite3
import sys
import threading
import urllib.request
from dataclasses import asdict, dataclass, field
from datetime import timedelta
from enum import Enum
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .auth import AuthError, jwt_interceptor
from .clients import (
    CheckSubsResponse,
    GetToysByIdsResponse,
    SubscriptionClient,
    ToyClient,
    ToyInfo,
)
from .jsonlog import Level, Logger
from .models import RequestContext, SubStatus
from .server import (
    AddToBucketRequest,
    BucketServer,
    DelFromBucketRequest,
    RpcError,
    StatusCode,
    ToyBucket,
)
from .service import Buckets
from .storage import Storage, StorageDetails, open_db, parse_duration

_DEFAULT_SECRET = "secret"

_HTTP_STATUS = {
    StatusCode.OK: 200,
    StatusCode.INVALID_ARGUMENT: 400,
    StatusCode.UNAUTHENTICATED: 401,
    StatusCode.NOT_FOUND: 404,
    StatusCode.INTERNAL: 500,
    StatusCode.UNIMPLEMENTED: 501,
}


@dataclass
class Config:
    """Runtime settings of the service."""

    env: str = "development"
    db: StorageDetails = field(default_factory=lambda: StorageDetails(dsn=""))
    grpc_port: int = 2000
    token_ttl: timedelta = timedelta(hours=1)
    subs_address: int = 3000
    subs_timeout: timedelta = timedelta(0)
    subs_retries: int = 0
    toys_address: int = 9000
    toys_timeout: timedelta = timedelta(0)
    toys_retries: int = 0
    app_secret: str = _DEFAULT_SECRET


def build_dsn(environ: Mapping[str, str]) -> str:
    """Database DSN assembled from the ``DB_*`` environment variables."""
    user = environ.get("DB_USER", "")
    pwd = environ.get("DB_PASSWORD", "")
    host = environ.get("DB_HOST", "")
    port = environ.get("DB_PORT", "")
    name = environ.get("DB_NAME", "")
    return (
        f"postgres://{user}:{pwd}@{host}:{port}/{name}"
        "?sslmode=disable&client_encoding=UTF8"
    )


def _duration(text: str) -> timedelta:
    try:
        return parse_duration(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_args(
    argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None
) -> Config:
    """Build a :class:`Config` from command-line flags and the environment."""
    environ = os.environ if environ is None else environ
    parser = argparse.ArgumentParser(prog="toybucket", description="Toy bucket service")
    parser.add_argument(
        "-env", "--env", default="development",
        help="Environment (development|staging|production)",
    )
    parser.add_argument("-db-dsn", "--db-dsn", dest="db_dsn", default=build_dsn(environ))
    parser.add_argument(
        "-db-max-open-conns", "--db-max-open-conns", dest="max_open", type=int, default=25
    )
    parser.add_argument(
        "-db-max-Idle-conns", "--db-max-idle-conns", dest="max_idle", type=int, default=25
    )
    parser.add_argument(
        "-db-max-Idle-time", "--db-max-idle-time", dest="idle_time", default="15m"
    )
    parser.add_argument("-grpc-port", "--grpc-port", dest="port", type=int, default=2000)
    parser.add_argument(
        "-token-ttl", "--token-ttl", dest="token_ttl", type=_duration,
        default=timedelta(hours=1),
    )
    parser.add_argument(
        "-sub-client-addr", "--sub-client-addr", dest="subs_addr", type=int, default=3000
    )
    args = parser.parse_args(argv)
    return Config(
        env=args.env,
        db=StorageDetails(
            dsn=args.db_dsn,
            max_open_conns=args.max_open,
            max_idle_conns=args.max_idle,
            max_idle_time=args.idle_time,
        ),
        grpc_port=args.port,
        token_ttl=args.token_ttl,
        subs_address=args.subs_addr,
    )


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"cannot encode {type(obj).__name__}")


def _encode(payload: Any) -> bytes:
    return json.dumps(payload, default=_json_default).encode("utf-8")


def _decode_request(method: str, raw: bytes) -> Any:
    try:
        body = json.loads(raw) if raw.strip() else {}
        if not isinstance(body, dict):
            raise ValueError("request body must be an object")
        if method == "AddToBucket":
            return AddToBucketRequest(
                [
                    ToyBucket(int(toy.get("toy_id", 0)), int(toy.get("quantity", 0)))
                    for toy in body.get("toys") or []
                ]
            )
        if method == "DelFromBucket":
            return DelFromBucketRequest([int(i) for i in body.get("toy_id") or []])
        return None
    except (ValueError, TypeError, AttributeError) as exc:
        raise RpcError(StatusCode.INVALID_ARGUMENT, f"malformed request: {exc}") from exc


def _handler_for(app: "Application") -> type:
    class _Handler(BaseHTTPRequestHandler):
        def do_POST(self) -> None:
            method = self.path.split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
            length = int(self.headers.get("Content-Length") or 0)
            raw = self.rfile.read(length) if length else b""
            metadata: Dict[str, List[str]] = {}
            for key, value in self.headers.items():
                metadata.setdefault(key.lower(), []).append(value)
            try:
                request = _decode_request(method, raw)
                response = app.handle(method, RequestContext(metadata=metadata), request)
            except RpcError as exc:
                payload: Dict[str, Any] = {"code": exc.code.value, "message": exc.message}
                if exc.response is not None:
                    payload["response"] = asdict(exc.response)
                self._reply(_HTTP_STATUS.get(exc.code, 500), payload)
                return
            self._reply(200, asdict(response))

        def _reply(self, status: int, payload: Any) -> None:
            body = _encode(payload)
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: Any) -> None:
            pass

    return _Handler


class Application:
    """The bucket service behind its authentication layer."""

    def __init__(
        self,
        log: Logger,
        server: BucketServer,
        port: int,
        secret: str = _DEFAULT_SECRET,
        storage: Optional[Storage] = None,
    ) -> None:
        self.log = log
        self.server = server
        self.port = port
        self.storage = storage
        self._intercept = jwt_interceptor(secret)
        self._routes = {
            "AddToBucket": server.add_to_bucket,
            "DelFromBucket": server.del_from_bucket,
            "GetBucket": lambda ctx, request: server.get_bucket(ctx),
            "CreateBucket": lambda ctx, request: server.create_bucket(ctx),
        }
        self._lock = threading.Lock()
        self._httpd: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def handle(self, method: str, ctx: RequestContext, request: Any = None) -> Any:
        """Authenticate ``ctx`` and run ``method``; failures raise :class:`RpcError`."""
        route = self._routes.get(method)
        if route is None:
            raise RpcError(StatusCode.UNIMPLEMENTED, f"unknown method {method}")
        try:
            with self._lock:
                return self._intercept(ctx, request, route)
        except AuthError as exc:
            raise RpcError(StatusCode(exc.code), exc.message) from exc

    def start(self) -> int:
        """Start serving in the background and return the bound port."""
        httpd = ThreadingHTTPServer(("", self.port), _handler_for(self))
        self._httpd = httpd
        self._thread = threading.Thread(
            target=httpd.serve_forever, name="bucket-server", daemon=True
        )
        self._thread.start()
        bound = httpd.server_address[1]
        self.log.print_info("Running server", {"port": str(bound)})
        return bound

    def stop(self) -> None:
        """Stop serving, wait for in-flight requests and close storage."""
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        if self.storage is not None:
            self.storage.close()
            self.storage = None


def build_application(
    config: Config, logger: Logger, connect: Any, subs_stub: Any, toys_stub: Any
) -> Application:
    """Open storage and assemble the service; storage failure is fatal."""
    try:
        storage = open_db(config.db, connect)
    except Exception as exc:
        logger.print_fatal(exc)
    subs = SubscriptionClient(subs_stub, logger, config.subs_timeout, config.subs_retries)
    toys = ToyClient(toys_stub, logger, config.toys_timeout, config.toys_retries)
    buckets = Buckets(logger, storage, config.token_ttl, subs, toys)
    return Application(
        logger, BucketServer(buckets), config.grpc_port, config.app_secret, storage
    )


class _HttpStub:
    """Calls a peer service that speaks JSON over HTTP."""

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url.rstrip("/")

    def _call(
        self, path: str, payload: Any, metadata: Sequence[Sequence[str]],
        timeout: Optional[float],
    ) -> Any:
        headers = {"Content-Type": "application/json"}
        headers.update({key: value for key, value in metadata})
        request = urllib.request.Request(
            f"{self.base_url}/{path}", data=_encode(payload), headers=headers,
            method="POST",
        )
        with urllib.request.urlopen(request, timeout=timeout) as reply:
            return json.loads(reply.read() or b"{}")

    def check_subscription(
        self, metadata: Sequence[Sequence[str]], timeout: Optional[float] = None
    ) -> CheckSubsResponse:
        data = self._call("CheckSubscription", {}, metadata, timeout)
        return CheckSubsResponse(SubStatus(data["sub_status"]))

    def get_toys_by_ids(
        self, ids: Sequence[int], metadata: Sequence[Sequence[str]],
        timeout: Optional[float] = None,
    ) -> GetToysByIdsResponse:
        data = self._call("GetToysByIds", {"id": list(ids)}, metadata, timeout)
        toys = [
            ToyInfo(
                id=int(item.get("id", 0)),
                title=item.get("title", ""),
                value=int(item.get("value", 0)),
                image_url=item.get("image_url", ""),
            )
            for item in data.get("toy") or []
        ]
        return GetToysByIdsResponse(toys, data.get("msg", ""))


class _SqliteDriver:
    """Connects ``sqlite:<path>`` DSNs."""

    paramstyle = "qmark"

    @staticmethod
    def connect(dsn: str) -> sqlite3.Connection:
        path = dsn[len("sqlite:"):]
        if path.startswith("//"):
            path = path[2:]
        return sqlite3.connect(path, check_same_thread=False)


def _driver_for(dsn: str) -> Any:
    if dsn.startswith("sqlite:"):
        return _SqliteDriver
    scheme = dsn.split(":", 1)[0]
    raise ValueError(f"no database driver available for scheme {scheme!r}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = parse_args(argv)
    logger = Logger(sys.stdout, Level.INFO)
    try:
        driver = _driver_for(config.db.dsn)
    except ValueError as exc:
        logger.print_fatal(exc)

    app = build_application(
        config,
        logger,
        driver,
        _HttpStub(f"http://localhost:{config.subs_address}"),
        _HttpStub(f"http://localhost:{config.toys_address}"),
    )
    logger.print_info("connection pool established", {"port": str(config.grpc_port)})

    stopped = threading.Event()
    received: List[str] = []

    def on_signal(signum: int, frame: Any) -> None:
        received.append(signal.Signals(signum).name)
        stopped.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        signal.signal(sig, on_signal)

    try:
        app.start()
    except OSError as exc:
        logger.print_fatal(exc)

    while not stopped.wait(0.5):
        pass
    logger.print_info("stopping application", {"signal": received[0] if received else ""})
    app.stop()
    return 0