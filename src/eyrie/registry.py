"""Alias-based discovery of resolver and zone-provider classes.

Inputs:
  - A base class (BaseResolver or BaseZoneProvider) and the package to scan.

Outputs:
  - discover(): mapping of normalized aliases to concrete subclasses found by
    importing every module under the package.
  - get_class(): resolve an alias or dotted import path to a subclass.
"""

from __future__ import annotations

import difflib
import importlib
import inspect
import logging
import pkgutil
import re
from typing import Dict, Iterable, Optional, Type, TypeVar

from cachetools import LRUCache, cached

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CAMEL_1 = re.compile(r"(.)([A-Z][a-z]+)")
_CAMEL_2 = re.compile(r"([a-z0-9])([A-Z])")
_SUFFIXES = ("ZoneProvider", "Provider", "Resolver")


@cached(cache=LRUCache(maxsize=1024))
def _camel_to_snake(name: str) -> str:
    s1 = _CAMEL_1.sub(r"\1_\2", name)
    s2 = _CAMEL_2.sub(r"\1_\2", s1)
    return s2.lower()


def default_alias_for(cls: type) -> str:
    """Brief: Derive a default alias from a class name.

    Inputs:
      - cls: Concrete class.

    Outputs:
      - snake_case alias with a Resolver/ZoneProvider/Provider suffix removed,
        e.g. ForwardingResolver -> "forwarding", DBZoneProvider -> "db".
    """

    name = cls.__name__
    for suffix in _SUFFIXES:
        if name.endswith(suffix) and name != suffix:
            name = name[: -len(suffix)]
            break
    return _camel_to_snake(name)


def normalize_alias(alias: str) -> str:
    return alias.strip().lower().replace("-", "_")


def _iter_modules(package_name: str) -> Iterable[str]:
    pkg = importlib.import_module(package_name)
    for modinfo in pkgutil.walk_packages(pkg.__path__, pkg.__name__ + "."):
        yield modinfo.name


def discover(base: Type[T], package_name: str) -> Dict[str, Type[T]]:
    """Brief: Import every module under *package_name* and register subclasses of *base*.

    Inputs:
      - base: Base class whose concrete subclasses are collected.
      - package_name: Dotted package path to scan.

    Outputs:
      - Dict mapping normalized aliases (declared ``aliases`` plus the default
        alias) to classes.

    Raises:
      - ImportError when a module cannot be imported.
      - ValueError when two classes claim the same alias.

    Example:
        >>> from eyrie.resolvers.base import BaseResolver
        >>> "forwarding" in discover(BaseResolver, "eyrie.resolvers")
        True
    """

    registry: Dict[str, Type[T]] = {}

    for modname in _iter_modules(package_name):
        try:
            module = importlib.import_module(modname)
        except ImportError:
            logger.error("Failed importing module %s while scanning %s", modname, package_name)
            raise

        for _, obj in inspect.getmembers(module, inspect.isclass):
            if not issubclass(obj, base) or obj is base or inspect.isabstract(obj):
                continue

            claimed = set(normalize_alias(a) for a in (getattr(obj, "aliases", ()) or ()))
            claimed.add(normalize_alias(default_alias_for(obj)))

            for alias in claimed:
                if alias in registry and registry[alias] is not obj:
                    other = registry[alias]
                    raise ValueError(
                        f"Duplicate alias '{alias}' claimed by {obj.__module__}.{obj.__name__} "
                        f"and {other.__module__}.{other.__name__}"
                    )
                registry[alias] = obj

    return registry


def get_class(
    identifier: str,
    base: Type[T],
    package_name: str,
    registry: Optional[Dict[str, Type[T]]] = None,
) -> Type[T]:
    """Brief: Resolve *identifier* to a subclass of *base*.

    Inputs:
      - identifier: Alias (e.g. "forwarding") or dotted path "pkg.mod.Class".
      - base: Required base class.
      - package_name: Package scanned when resolving aliases.
      - registry: Optional precomputed registry from discover().

    Outputs:
      - The resolved class.

    Raises:
      - KeyError for unknown aliases (with close-match suggestions).
      - TypeError when a dotted path names a class of the wrong kind.
    """

    ident = str(identifier or "").strip()
    if "." in ident:
        modname, _, classname = ident.rpartition(".")
        if not modname or not classname:
            raise ValueError(f"Invalid class path '{identifier}'")
        module = importlib.import_module(modname)
        cls = getattr(module, classname)
        if not (inspect.isclass(cls) and issubclass(cls, base)):
            raise TypeError(f"{identifier} is not a {base.__name__} subclass")
        return cls

    reg = registry if registry is not None else discover(base, package_name)
    key = normalize_alias(ident)
    try:
        return reg[key]
    except KeyError:
        suggestions = difflib.get_close_matches(key, list(reg.keys()), n=3)
        raise KeyError(
            "Unknown %s alias '%s'. Known aliases: %s. Suggestions: %s"
            % (base.__name__, identifier, ", ".join(sorted(reg.keys())), suggestions)
        ) from None


def aliases(*names: str):
    """Brief: Class decorator setting ``aliases`` for registry discovery.

    Inputs:
      - *names: Alias strings.

    Outputs:
      - Decorator returning the class unchanged apart from ``aliases``.

    Example:
        >>> @aliases("fwd", "forward")
        ... class Demo:
        ...     pass
        >>> Demo.aliases
        ('fwd', 'forward')
    """

    def _wrap(cls: type) -> type:
        cls.aliases = tuple(names)
        return cls

    return _wrap
