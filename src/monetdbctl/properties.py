"""Instance property resolution for the ``get``, ``set`` and ``inherit`` commands.

The controller keeps a table of default property values plus, per
instance, the values set locally. A property without a local value
inherits the default. The instance name is a virtual property read
directly from the status record.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .errors import ApplicationError, UnknownPropertyError, UsageError
from .models import InstanceStatus
from .providers.control import DEFAULTS_TARGET, OK, ControlChannel, split_response

IDENTITY_KEY = "name"
ALL_KEYS = "all"
UNKNOWN_VALUE = "<unknown>"
DEFAULT_PROPERTY_KEYS: tuple[str, ...] = (
    "forward",
    "shared",
    "nthreads",
    "optpipe",
    "readonly",
    "nclients",
)

PropertyTable = dict[str, str | None]


class PropertySource(str, Enum):
    """Where a reported property value came from."""

    DIRECT = "direct"
    LOCAL = "local"
    DEFAULT = "default"


@dataclass(slots=True, frozen=True)
class PropertyRow:
    """One resolved property value for one instance."""

    instance: str
    key: str
    source: PropertySource
    value: str


def split_assignment(argument: str) -> tuple[str, str]:
    """Split ``key=value`` at the first ``=``."""
    key, sep, value = argument.partition("=")
    if not sep:
        raise UsageError("set: need property=value")
    if not key:
        raise UsageError("set: need a property name before '='")
    return key, value


def expand_keys(argument: str) -> list[str]:
    """Expand ``all`` or a comma separated key list into property keys."""
    if argument == ALL_KEYS:
        return [IDENTITY_KEY, *DEFAULT_PROPERTY_KEYS]
    keys = [key.strip() for key in argument.split(",")]
    return [key for key in keys if key]


def parse_properties(lines: Iterable[str]) -> PropertyTable:
    """Parse ``key=value`` lines; an empty value means "inherit the default"."""
    table: PropertyTable = {}
    for line in lines:
        key, sep, value = line.strip().partition("=")
        if not sep or not key:
            continue
        table[key] = value if value else None
    return table


def resolve_value(
    key: str,
    local: Mapping[str, str | None],
    defaults: Mapping[str, str | None],
) -> tuple[PropertySource, str]:
    """Resolve *key* with the local value taking precedence over the default."""
    known = key in local or key in defaults or key in DEFAULT_PROPERTY_KEYS
    if not known:
        raise UnknownPropertyError(f"no such property: {key}")
    value = local.get(key)
    if value is not None:
        return PropertySource.LOCAL, value
    default = defaults.get(key)
    return PropertySource.DEFAULT, default if default is not None else UNKNOWN_VALUE


@dataclass(slots=True)
class PropertyAccessor:
    """Fetch and resolve property tables through a control channel.

    Tables are fetched lazily and cached for the lifetime of the accessor,
    which is one CLI invocation.
    """

    control: ControlChannel
    _defaults: PropertyTable | None = field(default=None, init=False)
    _tables: dict[str, PropertyTable] = field(default_factory=dict, init=False)

    def defaults(self) -> PropertyTable:
        """Return the controller's default property table."""
        if self._defaults is None:
            self._defaults = self._fetch(DEFAULTS_TARGET)
        return self._defaults

    def instance_table(self, name: str) -> PropertyTable:
        """Return the locally set properties of instance *name*."""
        table = self._tables.get(name)
        if table is None:
            table = self._fetch(name)
            self._tables[name] = table
        return table

    def resolve(self, status: InstanceStatus, key: str) -> PropertyRow:
        """Resolve *key* for *status*."""
        if key == IDENTITY_KEY:
            return PropertyRow(status.name, key, PropertySource.DIRECT, status.name)
        source, value = resolve_value(key, self.instance_table(status.name), self.defaults())
        return PropertyRow(status.name, key, source, value)

    def _fetch(self, target: str) -> PropertyTable:
        head, lines = split_response(self.control.send(target, "get", want_body=True))
        if head != OK:
            raise ApplicationError(head)
        return parse_properties(lines)


__all__ = [
    "ALL_KEYS",
    "DEFAULT_PROPERTY_KEYS",
    "IDENTITY_KEY",
    "PropertyAccessor",
    "PropertyRow",
    "PropertySource",
    "PropertyTable",
    "expand_keys",
    "parse_properties",
    "resolve_value",
    "split_assignment",
]
