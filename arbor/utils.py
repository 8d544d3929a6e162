"""
Internal helpers shared by the flag, fault and command modules.

- Unset: marker for "argument omitted". None stays a legitimate value (a missing
  description, an unbound flag), so omission needs its own object.
- coalesce(): replace the marker with a default.
- rename(): decorator fixing the names of generated functions for tracebacks.
- mirror(): read-only property over a private attribute.
- ReflectiveType: metaclass giving flags, flag sets and commands the same
  introspection surface (__typename__, properties, reprs).

    >>> coalesce(Unset, "fallback")
    'fallback'
    >>> coalesce(None, "fallback") is None
    True
"""
import functools
import operator
import re
from collections.abc import Mapping, Sequence, Set
from typing import final


@final
class UnsetType:
    """
    Type of the Unset marker: one falsy instance per process, not subclassable.

    `str | Unset` and `Unset | str` build unions usable with isinstance().
    """
    __slots__ = ()
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = object.__new__(cls)
        return cls._instance

    def __init_subclass__(cls, /, **options):
        raise TypeError("UnsetType cannot be subclassed")

    def __reduce__(self):
        return "Unset"

    def __bool__(self):
        return False

    def __repr__(self):
        return "Unset"

    def __or__(self, other, /):
        return type(self) | other

    def __ror__(self, other, /):
        return other | type(self)


Unset = UnsetType()


def coalesce(value, default=None, /):
    """
    Return `default` when `value` is Unset, otherwise `value` itself (even if falsy).
    """
    if value is Unset:
        return default
    return value


def rename(name, /):
    """
    Decorator setting __name__ and __qualname__ of the decorated callable.
    """
    if not isinstance(name, str):
        raise TypeError("rename() argument must be a string")

    def decorator(function):
        if not callable(function):
            raise TypeError("@rename() must be applied to a callable")
        function.__name__ = function.__qualname__ = name
        return function

    return decorator


def _detach(value):
    # One fresh container per level; elements that are not containers are shared.
    match value:
        case str():
            return value
        case Mapping():
            return {key: _detach(item) for key, item in value.items()}
        case Sequence():
            return [_detach(item) for item in value]
        case Set():
            return {_detach(item) for item in value}
    return value


def mirror(name, /):
    """
    Property returning self._<name>; containers come back as copies.
    """
    if not isinstance(name, str):
        raise TypeError("mirror() argument must be a string")
    attribute = "_" + name

    @rename(name)
    def getter(self):
        return _detach(getattr(self, attribute))

    return property(getter, doc=f"Read-only view of {attribute}.")


class ReflectiveType(type):
    """
    Metaclass for the public object model.

    - __typename__ is the hyphenated lowercase class name ("FlagSet" becomes
      "flag-set"); validation messages use it as their subject.
    - names listed in __introspectable__ become mirror() properties.
    - repr() and rich's pretty printer show __displayable__, falling back to
      __introspectable__.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        namespace = dict(namespace)
        namespace["__typename__"] = re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()
        for field in namespace.get("__introspectable__", ()):
            namespace[field] = mirror(field)
        self = super().__new__(cls, name, bases, namespace, **options)

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for field in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield field, getattr(self, field)

        @rename("__repr__")
        def __repr__(self):
            fields = map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__())
            return f"{type(self).__typename__}({', '.join(fields)})"

        self.__rich_repr__ = __rich_repr__
        self.__repr__ = __repr__
        return self


__all__ = (
    "Unset",
    "UnsetType",
    "ReflectiveType",
    "coalesce",
    "rename",
    "mirror",
)
