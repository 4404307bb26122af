# servicekit

Small, independent building blocks for writing web services in Python.

| Module | What it gives you |
| --- | --- |
| `servicekit.logger` | JSON structured logging with a service name, an optional trace id and per-level event hooks |
| `servicekit.worker` | a bounded set of cancellable background jobs run in threads |
| `servicekit.delegate` | calling functions registered by other domains without importing them |
| `servicekit.types` | validated domain values: `hometype`, `money`, `name`, `quantity`, `role` |
| `servicekit.order`, `servicekit.page` | parsing of "order by" and paging query parameters |
| `servicekit.keystore` | an in-memory store of RSA private keys and their public halves |
| `servicekit.docker` | starting, inspecting and stopping containers for integration tests |
| `servicekit.dbarray` | reading and writing PostgreSQL array and bytea text values |
| `servicekit.tracing` | a per-context trace id and an endpoint-excluding sampler |
| `servicekit.web` | a WSGI application with routing, middleware, CORS and static files |

## Installing

Python 3.10 or later is needed. The package depends on `cryptography` and
`werkzeug`; the `test` extra adds pytest.

## Logging

```python
import sys
from servicekit.logger import Events, Level, Logger

log = Logger(sys.stdout, Level.INFO, "sales-api", None, Events())
log.info("startup", "status", "started", "port", 3000)
log.debug("not written: below the minimum level")
```

Each call writes one JSON line holding `time`, `level`, `file` (the calling
file and line), `msg`, `service` and then the key/value pairs given after the
message. If a `trace_id_fn` is given, its result is added as `trace_id`.
A function set on `Events` (`debug`, `info`, `warn`, `error`) is called with
a `Record` whenever a record of exactly that level is written.

`Logger.log(level, msg, *args, caller=...)` logs at any level,
`Logger.build_info()` logs details of the running interpreter, and
`new_std_logger(logger, level)` returns a standard-library `logging.Logger`
whose messages go to `logger` at `level`.

## Background jobs

```python
from servicekit.worker import Worker

def job(done):
    done.wait()          # a threading.Event set when the job must stop

worker = Worker(4)
key = worker.start(job, 1.0)
worker.stop(key)         # cancel one job early
worker.shutdown(5.0)     # cancel the rest and wait for them
```

At most `max_running_jobs` jobs run at once. `start` waits for a free slot:
with a timeout it raises `TimeoutError` when none frees up in time, and the
same timeout is the job's deadline; without one it waits as long as needed
and the job gets one second. Once the worker is shutting down, `start`
raises `WorkerError`, as does `stop` for a key that is not running.
`running()` gives the number of jobs running, and a `Worker` used in a
`with` block shuts down when the block ends.

## Delegation between domains

```python
from servicekit.delegate import Data, Delegate

delegate = Delegate(log)
delegate.register("user", "updated", lambda data: print(data))
delegate.call(Data("user", "updated", b'{"id": 1}'))
```

Functions run in registration order; an exception from one is logged and
the rest still run.

## Domain types

```python
from servicekit.types import hometype, money, name, quantity, role

price = money.parse(12.5)
print(price)                         # 12.50
qty = quantity.parse(3)
product = name.parse("Comic Books")
nickname = name.parse_null("")       # absent; prints NULL
home = hometype.parse("SINGLE FAMILY")
roles = role.parse_many(["ADMIN", "USER"])
print(role.parse_to_string(roles))   # ['ADMIN', 'USER']
```

Money and quantities must lie between 0 and 1,000,000; names are 3 to 20
letters, digits, spaces, hyphens or apostrophes. Anything else raises
`ValueError`.

## Paging and ordering

```python
from servicekit import order, page

pg = page.parse("2", "20")
print(pg)                            # page: 2 rows: 20

default = order.new_by("user_id", order.ASC)
by = order.parse({"name": "name", "user_id": "user_id"}, "name,DESC", default)
```

Empty paging values give page 1 with 10 rows; rows per page must lie between
1 and 100. An empty order string gives the default; an unknown field or
direction raises `ValueError`.

## Keys

```python
from servicekit.keystore import KeyStore

ks = KeyStore()
count = ks.load_by_file_system("keys")   # every *.pem below keys/, named by its stem
public_pem = ks.public_key("00000000-0000-0000-0000-000000000000")
```

`load_by_json` loads one key from a document with `key` and `pem` fields.
Only RSA keys in PKCS#1 or PKCS#8 PEM form are accepted; an unknown key id
raises `KeyError`.

## Containers for tests

`start_container(image, name, port, docker_args, app_args)` runs an image
with the `docker` command, or reuses a running container of that name, and
returns a `Container` whose `host_port` is the host address bound to
`port/tcp`. `stop_container` stops and removes it, and
`dump_container_logs` returns its output. Failures raise `DockerError`.

## PostgreSQL arrays

```python
from servicekit.dbarray.arrays import Int64Array, array

literal = array([235, 401]).value()      # '{235,401}'
values = Int64Array.scan("{1,2,3}")      # [1, 2, 3]
```

There are typed arrays for booleans, bytea, 64- and 32-bit floats and
integers and strings, and `GenericArray` for arrays of any depth.
`servicekit.dbarray.parse` holds the array text parser and formatter and
`servicekit.dbarray.encode` the value, timestamp and bytea encoders.

## Web applications

```python
import json
from servicekit.web import App, param

class JSONResponse:
    def __init__(self, body):
        self.body = body

    def encode(self):
        return json.dumps(self.body).encode(), "application/json"

def get_user(request):
    return JSONResponse({"id": param(request, "id")})

app = App(print)
app.handle("GET", "v1", "/users/{id}", get_user)
```

`App` is a WSGI application. A handler returns an object with `encode()`,
`None` for a 204 response, or `NoResponse()` when it has written the
response itself. Middleware given to `App` or to `handle` wraps the handler,
the first given running first. `enable_cors` answers preflight requests and
adds CORS headers, `raw_handle` registers a handler that writes the response
directly, and `file_server` and `file_server_react` serve static files. Each
request handled through `handle` or `raw_handle` gets a trace id, taken from
a `traceparent` header when present, readable with
`servicekit.tracing.get_trace_id()`.

## What is not included

The package does not connect to or query a database: `dbarray` only
converts array values to and from text. It does not export traces anywhere;
`tracing` keeps a trace id and decides sampling only. It has no command and
no server of its own: serve an `App` with any WSGI server.