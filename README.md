# dtmkit

A client toolkit for distributed transactions coordinated by a transaction
manager server over HTTP. It covers:

- **Saga**: ordered actions with compensations, optionally concurrent
  (`dtmkit.saga.Saga`).
- **TCC**: try / confirm / cancel branches (`dtmkit.tcc.tcc_global_transaction`,
  `dtmkit.tcc.Tcc`, `dtmkit.tcc.tcc_from_query`).
- **XA**: two-phase commit over MySQL or PostgreSQL
  (`dtmkit.xa.xa_global_transaction`, `dtmkit.xa.xa_local_transaction`).
- **Reliable messages**: prepare, do local work, then submit (`dtmkit.msg.Msg`).
- **Sub-transaction barriers**: protection against repeated, dangling and
  null-compensation requests for SQL, Redis and MongoDB
  (`dtmkit.barrier.BranchBarrier`).
- Server configuration loading and checking (`dtmkit.config`).
- gRPC metadata and error-code translation helpers (`dtmkit.grpcmeta`,
  `dtmkit.grpcsupport`).

## Installation

```
pip install dtmkit
```

For running the tests:

```
pip install "dtmkit[test]"
pytest
```

## A saga

```python
from dtmkit.helpers import must_gen_gid
from dtmkit.saga import Saga

server = "http://localhost:36789/api/dtmsvr"
busi = "http://localhost:8081/api/busi"
req = {"amount": 30}

saga = Saga(server, must_gen_gid(server))
saga.add(busi + "/TransOut", busi + "/TransOutRevert", req)
saga.add(busi + "/TransIn", busi + "/TransInRevert", req)
saga.submit()
```

`Saga.set_concurrent()` and `Saga.add_branch_order(branch, pre_branches)` let
branches run in parallel with ordering constraints. Options such as
`wait_result`, `timeout_to_fail`, `retry_interval`, `request_timeout` and
`branch_headers` are plain attributes of every transaction object.

## A TCC transaction

```python
from dtmkit.tcc import tcc_global_transaction

def body(tcc):
    tcc.call_branch(req, busi + "/TransOut", busi + "/TransOutConfirm", busi + "/TransOutRevert")
    return tcc.call_branch(req, busi + "/TransIn", busi + "/TransInConfirm", busi + "/TransInRevert")

tcc_global_transaction(server, gid, body)
```

An exception raised inside `body` aborts the global transaction and is
re-raised; otherwise the transaction is submitted. An optional `custom`
callable receives the `Tcc` object before it is prepared.
`dtmkit.xa.xa_global_transaction` works the same way with `Xa.call_branch`.

## Reliable messages

```python
from dtmkit.msg import Msg

msg = Msg(server, gid).add(busi + "/TransIn", req)
msg.do_and_submit_db(busi + "/QueryPrepared", db, lambda tx: tx.cursor().execute("update ..."))
```

The local work runs behind the message barrier. A `FailureError` from it
aborts the message; any other error is re-raised after the outcome has been
settled through the query-prepared URL.

## Barriers

In a branch handler, build a barrier from the incoming query values and run
the business logic inside it:

```python
from dtmkit.barrier import barrier_from_query

barrier = barrier_from_query(query_params)
barrier.call_with_db(db, lambda tx: tx.cursor().execute("update ..."))
```

`db` is a DB-API connection; it is committed when the call succeeds and rolled
back otherwise. The barrier skips repeated and dangling requests and empty
compensations. `redis_check_adjust_amount` / `redis_query_prepared` take a
client with an `eval` method, and `mongo_call` / `mongo_query_prepared` take a
MongoDB client; neither client library is a dependency of this package.

## Databases

`dtmkit.utils` opens connections for barriers and XA. A MySQL connector based
on PyMySQL is built in; for other drivers (for example PostgreSQL) register one
with `register_connector(driver, connect)`, where `connect(conf, autocommit)`
returns a DB-API connection. `dtmkit.dbspecial.set_current_db_type` selects the
SQL dialect (`mysql` or `postgres`). `dtmkit.utils.settings` holds the barrier
table name, the passthrough headers and the XA SQL timeout.

## Errors

Results are reported with exceptions from `dtmkit.errors`:
`FailureError` (the branch or transaction failed and must roll back),
`OngoingError` (not finished, retry later) and `DuplicatedError`
(a message's local work ran twice). All derive from `DtmError`, which is also
raised when the server rejects a request. `dtmkit.helpers.result_to_http_json`
maps a result or exception to an HTTP status code and JSON body (200, 409, 425
or 500), and `dtmkit.grpcsupport` maps the same errors to and from gRPC status
codes.

## Configuration

```python
from dtmkit.config import must_load_config

config = must_load_config("conf.yml")
```

Values come from environment variables first (for example `STORE_DRIVER`,
`RETRY_INTERVAL`), falling back to defaults, and the YAML file then overrides
them. The result is checked with `check_config`; on any error the process
exits with status 1.

## Logging

`dtmkit.logger.init_log(level)` logs to stdout; `init_log2` adds file outputs
with optional rotation. The initial level is read from `LOG_LEVEL`, and
`DTM_DEBUG` switches from JSON to coloured console output. `with_logger`
installs any object with `debug`, `info`, `warning` and `error` methods.

## What this package does not do

It contains no transaction manager server, no storage for transactions and no
command-line program: it talks to a server over HTTP (or JSON-RPC). gRPC
support is limited to metadata and error-code helpers; there are no gRPC
client calls for submitting transactions or invoking branches.