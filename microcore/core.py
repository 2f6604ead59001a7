"""Application bootstrap: environment, configuration, object graph and life cycle."""

from __future__ import annotations

import argparse
import dataclasses
import os
import queue
import signal
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import yaml

from microcore import log
from microcore.constants import CONFIG_KEY_LOG

DEFAULT_CONFIG_PATH = "./configs/application.yml"
STOP_ORDER_KEY = "injects_objects_stop_order"
DEFAULT_STOP_ORDER = ("RPCServer", "HTTPServer")

# Servers report fatal errors (or None on a clean close) here to end ``run``.
HTTP_ERRORS: queue.Queue[BaseException | None] = queue.Queue()

_prefix = ""
_conf: Config | None = None
_registered: list[Any] = []


class Env(str):
    """Deployment environment name."""

    def is_live(self) -> bool:
        """Tell whether this is the production environment."""
        return self == "live"

    def is_dev(self) -> bool:
        """Tell whether this is development (also when unset)."""
        return self in ("dev", "")


def current_env() -> Env:
    """Read the environment from the ``env`` variable, lower-cased."""
    return Env(os.environ.get("env", "").lower())


def set_config_path_prefix(path_prefix: str) -> None:
    """Set the directory prefix used for non-development configuration files."""
    global _prefix
    _prefix = path_prefix


def config_path(env: Env, default_path: str = DEFAULT_CONFIG_PATH) -> str:
    """Return the configuration file to load for ``env``."""
    if env.is_dev():
        return default_path
    return f".{_prefix}/configs/application-{env}.yml"


class Config:
    """YAML configuration addressed by dotted keys."""

    def __init__(self, data: Any = None) -> None:
        self._data = {} if data is None else data

    @classmethod
    def load(cls, path: str) -> Config:
        """Read a YAML file."""
        with open(path, encoding="utf-8") as fh:
            return cls(yaml.safe_load(fh))

    def get(self, key: str) -> Any:
        """Return the value at ``key`` (``a.b.c``), or ``None`` if absent."""
        node = self._data
        if not key:
            return node
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return None
            node = node[part]
        return node

    def has(self, key: str) -> bool:
        """Tell whether ``key`` holds a non-null value."""
        return self.get(key) is not None


def init_config(default_path: str = DEFAULT_CONFIG_PATH) -> Config:
    """Load the configuration for the current environment and make it global."""
    global _conf
    _conf = Config.load(config_path(current_env(), default_path))
    return _conf


def get_config() -> Config:
    """Return the global configuration."""
    if _conf is None:
        raise RuntimeError("configuration is not initialised")
    return _conf


def load_app_conf(key: str, factory: Callable[[Any], Any]) -> Any:
    """Build an object from the configuration value at ``key`` and print it."""
    obj = factory(get_config().get(key))
    shown = dataclasses.asdict(obj) if dataclasses.is_dataclass(obj) else obj
    try:
        text = yaml.safe_dump(shown, sort_keys=False)
    except yaml.YAMLError:
        text = ""
    print(f"[Config] LoadConf \n{text}")
    return obj


def init_log(config: Config | None) -> None:
    """Install the global logger if the configuration has a ``log`` section."""
    if config is None or not config.has(CONFIG_KEY_LOG):
        return
    raw = config.get(CONFIG_KEY_LOG)
    if not isinstance(raw, Mapping):
        raise ValueError(f"{CONFIG_KEY_LOG}: expected a mapping")
    wanted = {f.name.replace("_", ""): f.name for f in dataclasses.fields(log.LogOption)}
    values = {}
    for key, value in raw.items():
        name = wanted.get(str(key).lower().replace("_", "").replace("-", ""))
        if name is not None:
            values[name] = "" if value is None else str(value)
    option = log.LogOption(**values)
    print(f"cfg:{option} monitor")
    log.init_logger(option)


@runtime_checkable
class Initializer(Protocol):
    def init(self) -> None: ...


@runtime_checkable
class Starter(Protocol):
    def start(self) -> None: ...


@runtime_checkable
class Stopper(Protocol):
    def stop(self) -> None: ...


@dataclass
class InjectObject:
    """A value in the object graph, optionally named."""

    value: Any
    name: str = ""

    def __str__(self) -> str:
        return self.name or type(self.value).__name__


@runtime_checkable
class Provider(Protocol):
    def provide(self) -> list[InjectObject]: ...


@runtime_checkable
class ProvideFactory(Protocol):
    def new_provider(self, config: Config) -> Provider | None: ...


@runtime_checkable
class NamedInject(Protocol):
    def inject_name(self) -> str: ...


class Graph:
    """The application's objects.

    An object may declare ``__inject__``: a mapping from attribute name to the
    name of another object, or to a type matched by exactly one object. Unset
    (``None``) attributes are filled when the graph is populated.
    """

    def __init__(self) -> None:
        self._objects: list[InjectObject] = []
        self._named: dict[str, InjectObject] = {}

    def provide(self, *args: Any) -> None:
        """Add objects; names must be unique, as must the types of unnamed ones."""
        for item in args:
            obj = item if isinstance(item, InjectObject) else InjectObject(item)
            if obj.name:
                if obj.name in self._named:
                    raise ValueError(f"provided two instances named {obj.name}")
                self._named[obj.name] = obj
            else:
                kind = type(obj.value)
                if any(not o.name and type(o.value) is kind for o in self._objects):
                    raise ValueError(
                        f"provided two unnamed instances of type {kind.__name__}"
                    )
            self._objects.append(obj)

    def objects(self) -> list[InjectObject]:
        """Return the objects in the order they were provided."""
        return list(self._objects)

    def _populate(self) -> None:
        for obj in self._objects:
            wiring = getattr(obj.value, "__inject__", None)
            if not isinstance(wiring, Mapping):
                continue
            for attr, target in wiring.items():
                if getattr(obj.value, attr, None) is None:
                    setattr(obj.value, attr, self._resolve(target, obj.value))

    def _resolve(self, target: Any, owner: Any) -> Any:
        if isinstance(target, str):
            found = self._named.get(target)
            if found is None:
                raise LookupError(f"did not find object named {target}")
            return found.value
        matches = [
            o.value
            for o in self._objects
            if isinstance(o.value, target) and o.value is not owner
        ]
        if len(matches) != 1:
            raise LookupError(
                f"found {len(matches)} objects of type {getattr(target, '__name__', target)}"
            )
        return matches[0]


def register_provider(*args: Any) -> None:
    """Queue values, providers or factories for the next ``run``."""
    _registered.extend(args)


class _ProvideFunc:
    def __init__(self, fn: Callable[[], list[InjectObject]]) -> None:
        self._fn = fn

    def provide(self) -> list[InjectObject]:
        return self._fn()


def new_provider(*args: Any) -> Provider:
    """Build a provider turning values into graph objects.

    Factories contribute what their provider yields and are added themselves;
    providers are expanded; named values keep their name; ``None`` is skipped.
    """
    vals: Iterable[Any] = tuple(args)

    def provide() -> list[InjectObject]:
        objects: list[InjectObject] = []
        for val in vals:
            if val is None:
                continue
            if isinstance(val, ProvideFactory):
                provider = val.new_provider(get_config())
                if provider is None:
                    continue
                objects.extend(provider.provide())
            if isinstance(val, Provider):
                objects.extend(val.provide())
            elif isinstance(val, InjectObject):
                objects.append(val)
            elif isinstance(val, NamedInject):
                objects.append(InjectObject(val, name=val.inject_name()))
            else:
                objects.append(InjectObject(val))
        return objects

    return _ProvideFunc(provide)


def stop_objects_in_order(graph: Graph, stop_order: Iterable[str] | None = None) -> list[str]:
    """Stop objects named in ``stop_order`` first, then the rest; return the names stopped."""
    order = list(stop_order or ()) or list(DEFAULT_STOP_ORDER)
    stoppers: dict[str, Stopper] = {}
    for obj in graph.objects():
        if isinstance(obj.value, Stopper):
            print(obj, "stoper collected")
            stoppers[str(obj)] = obj.value

    stopped = []
    for name in order:
        stopper = stoppers.pop(name, None)
        if stopper is None:
            print("no stoper found by name: ", name)
            continue
        print(name, "stop by name...")
        stopper.stop()
        stopped.append(name)
    for name, stopper in stoppers.items():
        print(name, "stop...")
        stopper.stop()
        stopped.append(name)
    return stopped


def _wait_for_shutdown() -> None:
    received: list[int] = []

    def on_signal(signum: int, frame: Any) -> None:
        received.append(signum)

    previous = {}
    try:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                previous[sig] = signal.signal(sig, on_signal)
            except ValueError:
                pass
        while not received:
            try:
                item = HTTP_ERRORS.get(timeout=0.2)
            except queue.Empty:
                continue
            if item is not None:
                print(f"HTTP server error: {item}")
            return
        print(f"received signal {signal.Signals(received[0]).name}; shutting down")
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def run(*args: Any, argv: list[str] | None = None) -> Graph:
    """Configure, build and start the application; block until shutdown, then stop it."""
    parser = argparse.ArgumentParser(prog="microcore")
    parser.add_argument(
        "-p", dest="config_path", default=DEFAULT_CONFIG_PATH, help="configs for service"
    )
    ns = parser.parse_args(argv)

    config = init_config(ns.config_path)
    init_log(config)

    register_provider(*args)
    graph = Graph()
    graph.provide(*new_provider(*_registered).provide())
    graph._populate()

    print("injects.Objects init...")
    for obj in graph.objects():
        if isinstance(obj.value, Initializer):
            print(obj, " init...")
            obj.value.init()

    print("injects.Objects start...")
    for obj in graph.objects():
        if isinstance(obj.value, Starter):
            print(obj, " start...")
            obj.value.start()

    _wait_for_shutdown()

    stop_order = config.get(STOP_ORDER_KEY)
    if stop_order is None:
        stop_order = []
    if not isinstance(stop_order, list) or not all(isinstance(s, str) for s in stop_order):
        raise ValueError(f"{STOP_ORDER_KEY}: expected a list of names")
    stop_objects_in_order(graph, stop_order)
    return graph