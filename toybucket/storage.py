"""Relational storage of user buckets and their items."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from fractions import Fraction
from typing import Any, Callable, Iterable, List, Tuple

from .models import OperationStatus, Toy, ToyShort

log = logging.getLogger(__name__)

_CONNECT_ATTEMPTS = 10
_RETRY_DELAY_SECONDS = 2

_BUCKET_QUERY = "SELECT id FROM bucket WHERE user_id = $1"
_UPSERT_ITEM = (
    "INSERT INTO bucket_item (bucket_id, toy_id, quantity) "
    "VALUES ($1, $2, $3) "
    "ON CONFLICT (bucket_id, toy_id) "
    "DO UPDATE SET quantity = bucket_item.quantity + EXCLUDED.quantity "
    "RETURNING id"
)
_DELETE_ITEM = "DELETE FROM bucket_item WHERE bucket_id = $1 AND toy_id = $2"
_CREATE_BUCKET = "INSERT INTO bucket (user_id) VALUES ($1) RETURNING id"
_ITEMS_QUERY = "SELECT toy_id, quantity FROM bucket_item WHERE bucket_id = $1"

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_COMPONENT = r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)"
_DURATION = re.compile(rf"([-+]?)((?:{_COMPONENT})+)")
_COMPONENT_RE = re.compile(_COMPONENT)
_PLACEHOLDER = re.compile(r"\$(\d+)")

Result = Tuple[OperationStatus, str]


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``15m``, ``1h30m`` or ``250ms``."""
    if text in ("0", "+0", "-0"):
        return timedelta(0)
    match = _DURATION.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid duration {text!r}")
    total = sum(
        (
            Fraction(Decimal(number)) * _UNIT_NANOS[unit]
            for number, unit in _COMPONENT_RE.findall(match.group(2))
        ),
        Fraction(0),
    )
    if match.group(1) == "-":
        total = -total
    return timedelta(microseconds=round(total / 1000))


@dataclass
class StorageDetails:
    """Connection settings for the database."""

    dsn: str
    max_open_conns: int = 25
    max_idle_conns: int = 25
    max_idle_time: str = "15m"


class Storage:
    """Bucket persistence over a DB-API connection."""

    def __init__(
        self,
        connection: Any,
        paramstyle: str = "format",
        *,
        max_open_conns: int = 0,
        max_idle_conns: int = 0,
        max_idle_time: timedelta = timedelta(0),
    ) -> None:
        if paramstyle not in ("qmark", "numeric", "format", "pyformat"):
            raise ValueError(f"unsupported paramstyle {paramstyle!r}")
        self._conn = connection
        self._paramstyle = paramstyle
        self.max_open_conns = max_open_conns
        self.max_idle_conns = max_idle_conns
        self.max_idle_time = max_idle_time

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._conn.close()

    def add_to_bucket(self, toys: Iterable[ToyShort], user_id: int) -> Result:
        try:
            bucket_id = self._find_bucket(user_id)
        except Exception as exc:
            self._rollback()
            log.warning("failed to find bucket for user: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "bucket not found"
        try:
            cursor = self._conn.cursor()
        except Exception as exc:
            log.warning("cannot start transaction: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "cannot start SQL transaction"
        try:
            for toy in toys:
                cursor.execute(self._sql(_UPSERT_ITEM), (bucket_id, toy.id, toy.qty))
                if cursor.fetchone() is None:
                    raise LookupError(f"no row returned for toy {toy.id}")
        except Exception as exc:
            self._rollback()
            log.warning("failed to insert toy: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "failed to add to bucket"
        return self._commit(OperationStatus.STATUS_OK, "added to bucket")

    def del_from_bucket(self, toy_ids: Iterable[int], user_id: int) -> Result:
        try:
            bucket_id = self._find_bucket(user_id)
        except Exception as exc:
            self._rollback()
            log.warning("failed to find bucket: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "bucket not found"
        try:
            cursor = self._conn.cursor()
        except Exception as exc:
            log.warning("cannot start transaction: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "cannot start SQL transaction"
        for toy_id in toy_ids:
            try:
                cursor.execute(self._sql(_DELETE_ITEM), (bucket_id, toy_id))
            except Exception as exc:
                self._rollback()
                log.warning("failed to delete toy: %s", exc)
                return OperationStatus.STATUS_INTERNAL_ERROR, "failed to delete item"
            if cursor.rowcount < 0:
                self._rollback()
                log.warning("failed to get affected rows")
                return OperationStatus.STATUS_INTERNAL_ERROR, "internal error"
            if cursor.rowcount == 0:
                self._rollback()
                log.warning("toy not found in bucket: %s", toy_id)
                return OperationStatus.STATUS_INTERNAL_ERROR, "toy not found in bucket"
        return self._commit(
            OperationStatus.STATUS_OK, "toys successfully deleted from bucket"
        )

    def create_bucket(self, user_id: int) -> Result:
        try:
            cursor = self._conn.cursor()
            cursor.execute(self._sql(_CREATE_BUCKET), (user_id,))
            if cursor.fetchone() is None:
                raise LookupError("no bucket id returned")
            self._conn.commit()
        except Exception as exc:
            self._rollback()
            log.warning("cannot create bucket: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "cannot query to db"
        return OperationStatus.STATUS_OK, "bucket creation successful"

    def get_bucket(self, user_id: int) -> Tuple[List[Toy], int]:
        """Return the user's bucket items and their total quantity."""
        try:
            bucket_id = self._find_bucket(user_id)
            cursor = self._conn.cursor()
            cursor.execute(self._sql(_ITEMS_QUERY), (bucket_id,))
            toys = [Toy(id=toy_id, quantity=qty) for toy_id, qty in cursor.fetchall()]
        except Exception as exc:
            log.warning("cannot read bucket: %s", exc)
            return [], 0
        finally:
            self._rollback()
        return toys, sum(toy.quantity for toy in toys)

    def _find_bucket(self, user_id: int) -> int:
        cursor = self._conn.cursor()
        cursor.execute(self._sql(_BUCKET_QUERY), (user_id,))
        row = cursor.fetchone()
        if row is None:
            raise LookupError(f"no bucket for user {user_id}")
        return row[0]

    def _commit(self, status: OperationStatus, message: str) -> Result:
        try:
            self._conn.commit()
        except Exception as exc:
            self._rollback()
            log.warning("commit failed: %s", exc)
            return OperationStatus.STATUS_INTERNAL_ERROR, "could not commit transaction"
        return status, message

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except Exception as exc:
            log.debug("rollback failed: %s", exc)

    def _sql(self, query: str) -> str:
        if self._paramstyle == "qmark":
            return _PLACEHOLDER.sub("?", query)
        if self._paramstyle == "numeric":
            return _PLACEHOLDER.sub(r":\1", query)
        return _PLACEHOLDER.sub("%s", query)


def _ping(connection: Any) -> None:
    cursor = connection.cursor()
    cursor.execute("SELECT 1")
    cursor.fetchone()


def open_db(details: StorageDetails, connect: Any) -> Storage:
    """Connect with retries and return a ready :class:`Storage`.

    ``connect`` is either a DB-API module (its ``connect`` and ``paramstyle``
    are used) or a callable taking the DSN.
    """
    factory: Callable[[str], Any] = getattr(connect, "connect", connect)
    paramstyle = getattr(connect, "paramstyle", "format")

    connection = None
    last_error: Exception | None = None
    for attempt in range(1, _CONNECT_ATTEMPTS + 1):
        try:
            connection = factory(details.dsn)
            _ping(connection)
            last_error = None
            break
        except Exception as exc:
            last_error = exc
            if connection is not None:
                try:
                    connection.close()
                except Exception:
                    pass
                connection = None
            time.sleep(_RETRY_DELAY_SECONDS)
            log.info("retrying DB connection... (%d/%d)", attempt, _CONNECT_ATTEMPTS)
    if last_error is not None or connection is None:
        raise ConnectionError(
            "failed to connect to database after retries"
        ) from last_error

    try:
        idle_time = parse_duration(details.max_idle_time)
    except ValueError:
        idle_time = timedelta(0)

    try:
        _ping(connection)
    except Exception:
        connection.close()
        raise

    return Storage(
        connection,
        paramstyle,
        max_open_conns=details.max_open_conns,
        max_idle_conns=details.max_idle_conns,
        max_idle_time=idle_time,
    )