# toybucket

A bucket (shopping cart) service for a toy rental platform. Signed-in,
subscribed users can create a bucket, add toys to it, remove toys from it
and list its contents with toy details filled in from the toy catalogue.

Every request carries an `authorization` value of the form `Bearer token`.
The token is an HMAC-signed JWT whose `user_id` claim names the user. The
subscription service is asked whether that user is subscribed before any
bucket operation runs.

## Install

```
pip install .
```

For the test suite:

```
pip install .[test]
pytest
```

## Running

```
toybucket --grpc-port 2000 --token-ttl 1h
```

The database connection string is built from the `DB_HOST`, `DB_PORT`,
`DB_USER`, `DB_PASSWORD` and `DB_NAME` environment variables unless
`--db-dsn` is given. Other options: `--env`, `--db-max-open-conns`,
`--db-max-Idle-conns`, `--db-max-Idle-time` and `--sub-client-addr`.

Logs are written to standard output as JSON lines, one object per entry,
with `level`, `time`, `message` and optional `properties` and `trace`.

## Using it as a library

- `toybucket.app.build_application` wires storage, the subscription and toy
  clients, the bucket service and the request server into an `Application`.
  `Application.handle(method, ctx, request)` runs one authenticated call.
- `toybucket.service.Buckets` holds the bucket rules: user lookup from the
  request context, the subscription check, and filling in toy details.
- `toybucket.storage.Storage` runs the bucket queries against a DB-API
  connection; `open_db` opens one with retries.
- `toybucket.jsonlog.Logger` is the JSON line logger, and
  `toybucket.validator.Validator` collects field errors.

Bucket operations report their result as an `OperationStatus` and a
message. The server raises `RpcError` with a `StatusCode` on bad input or
when an operation fails.