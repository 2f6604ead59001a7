# microcore

`microcore` is the skeleton of a small service. It loads YAML configuration
chosen by environment, builds an object graph from the components you give it,
and drives their lifecycle: `init`, then `start`, then an ordered `stop` on
shutdown. Around that core it has the pieces such services tend to need:

- `microcore.registry`: the service discovery model (`Service`, `Node`,
  `Result`) and the abstract `Registry` and `Watcher` interfaces
- `microcore.selector`: a `Selector` that picks nodes with random or
  round-robin strategies, and filters by endpoint, label or version
- `microcore.metadata`: request metadata (`MD`, `Metadata`) carried on an
  immutable `Context`
- `microcore.log`: a leveled logger that writes to the console and to a dated
  JSON log file, tagging each line with the context's `request_id`
- `microcore.interceptor` and `microcore.rpc_interceptors`: interceptor chains
  for handlers and logging/metadata interceptors for unary calls
- `microcore.codec`: a JSON codec for replies and error payloads
- `microcore.db` and `microcore.db_event`: a MySQL connection handle with
  data-source defaults, and a SQL event receiver that logs slow or failed
  statements
- `microcore.httpclient`: a pooled JSON-over-HTTP client with retries
- `microcore.providers`: factories that turn the `db`, `redis`,
  `httpclient` and `registry` configuration sections into objects
- `microcore.utils`: compact JSON, dash-less UUIDs, port-range binding and
  local private IP discovery

Install with `pip install .`; the test dependencies are in the `test` extra.

## Configuration and environment

The environment comes from the `env` environment variable, read in lower
case. An empty value or `dev` counts as development; `live` is production.

- In development the configuration file is the default path,
  `./configs/application.yml` (or whatever `-p` gives to `run`).
- In any other environment it is `.<prefix>/configs/application-<env>.yml`,
  where the prefix is set with `set_config_path_prefix`.

```python
from microcore.core import Config, current_env

env = current_env()
print(env.is_dev(), env.is_live())

config = Config.load("configs/application.yml")
if config.has("redis"):
    print(config.get("redis"))
print(config.get("registry.addrs"))   # dotted keys walk nested mappings
```

Sections the package reads:

| key                          | read by                                         |
|------------------------------|-------------------------------------------------|
| `log`                        | `init_log`, builds a `LogOption`                |
| `db`                         | `MySQLFactory`, one connection per named entry  |
| `redis`                      | `RedisFactory`, one client per named entry      |
| `httpclient`                 | `HttpClientFactory`, the shared HTTP client     |
| `registry`                   | `get_registry_config`, addresses and TTL        |
| `name`, `version`            | `get_registry_service`                          |
| `injects_objects_stop_order` | `run`, names of objects to stop first, in order |

`load_app_conf(key, factory)` builds an object from the value at `key` and
prints it.

## Running a service

Components are plain objects. Any object with an `init`, `start` or `stop`
method takes part in the lifecycle (`Initializer`, `Starter`, `Stopper`).
Objects that implement `Provider` or `ProvideFactory` contribute further
objects; objects that implement `NamedInject` are added under their own name.
An object may declare `__inject__`, a mapping from attribute name to the name
of another object or to a type, to have unset attributes filled in.

```python
import microcore.providers  # registers the db, redis and httpclient factories
from microcore.core import run

class Worker:
    def init(self):
        print("preparing")

    def start(self):
        print("running")

    def stop(self):
        print("stopped")

if __name__ == "__main__":
    run(Worker())
```

`run` parses `-p <path>` from the command line, loads the configuration, sets
up logging, builds the graph from everything registered with
`register_provider` plus its own arguments, calls `init` and then `start` on
each object, and waits for SIGINT, SIGTERM or an item put on the
`HTTP_ERRORS` queue. It then stops the objects named in
`injects_objects_stop_order` first (by default `RPCServer`, then
`HTTPServer`), then all others, and returns the `Graph`.
`stop_objects_in_order` can be called on its own.

## Service discovery and selection

```python
from microcore.selector import filter_version, new_selector, round_robin

selector = new_selector(registry, round_robin)   # registry: your Registry
next_node = selector.select("orders-rpc", [filter_version("1.2.0")])
node = next_node()
print(node.address, node.port)
```

If no node is left, `NoneAvailableError` is raised. `Service.to_json` and
`Service.from_json` encode services for storage in a registry.

## Metadata

```python
from microcore.metadata import MD, Context, join, new_outgoing_context

md = MD.pairs("Request_ID", "abc", "user", "42")
print(md.first("request_id"))  # keys are stored in lower case
merged = join(md, MD.from_mapping({"trace": "t-1"}))
ctx = new_outgoing_context(Context(), merged)
```

## Logging

`init_logger(LogOption(dir_path="logs/"))` installs the process-wide logger;
it writes to standard output and to `<dir_path><YYYY-MM-DD>.log`. The
module-level `debug`, `info`, `warn`, `error` and `fatal` take a context and a
`%`-style message with arguments; before `init_logger` they use a console-only
logger. `fatal` logs and then exits with status 1.

## HTTP client

```python
from microcore.httpclient import HttpClient, RequestOptions

with HttpClient() as client:
    reply = client.post(
        "https://api.example.com/items",
        {"name": "x"},
        RequestOptions(header={"RETRY-TIMES": "2", "RETRY-INTERVAL": "1"}),
    )
```

Replies are decoded from JSON. A status other than 200 or 204 raises
`HttpStatusError`; 204 returns `None`. Requests that fail with "reset by peer"
are retried as the retry headers say; those headers are not sent.

## Utilities

```python
from microcore.utils import is_private_ip, must_string, new_uuid

is_private_ip("192.168.1.10")   # True
must_string({"a": 1})           # '{"a":1}'
new_uuid()                      # 32 hexadecimal characters, no dashes
```

## What the package does not do

- It has no registry backend: `Registry` and `Watcher` are interfaces to
  implement.
- It has no HTTP or RPC server and no RPC client; the interceptors, codec and
  metadata helpers are building blocks for one you supply.
- It provides no PostgreSQL connections: `PostgresqlOption` only parses the
  settings.
- The logger does not rotate files; `max_file_size` and `rotate_duration` are
  kept but not used.
- It installs no command; call `run` from your own program.