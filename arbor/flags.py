r"""
Arbor flag sets: typed, named options parsed from a prefix of the argument list.

Overview
- Values
  • BoolValue, IntValue, FloatValue, StringValue, DurationValue, FuncValue.
  • Each value converts text through set(text), exposes the Python object through
    get() and prints itself through str(). A `boolean` value never consumes the
    following token.
  • Any object with a set(text) method can be registered through FlagSet.var().

- Flag
  • Read-only description: name, value, default (text form of the initial value), usage.
  • Optional binding: `bind=(target, "attribute")` writes the default on
    definition and every accepted value afterwards (the bound storage location).

- FlagSet
  • Definers (boolean/integer/floating/string/duration/func/var) return the Flag.
  • parse(arguments) consumes the flags at the head of `arguments` and returns the
    positional remainder, never looking past the first positional token, so flags
    meant for sub-commands stay untouched.
  • A failure is printed (message, then usage) to the set's output console and
    surfaced through the set's own ErrorHandling policy.

Grammar
- "-name" / "--name"                   boolean flags, or value flags taking the next token
- "-name=value" / "--name=value"       inline value (also for boolean flags)
- "--"                                 terminates flag parsing (consumed)
- "-" or any token not starting with "-" terminates flag parsing (kept)
- "-h" / "-help" when undefined        prints usage and raises HelpRequested

Quick example
    >>> flags = FlagSet("tool")
    >>> verbose = flags.boolean("v", False, "verbose output")
    >>> count = flags.integer("n", 1, "repetitions")
    >>> flags.parse(["-v", "-n", "3", "file.txt"])
    ['file.txt']
    >>> verbose.get(), count.get()
    (True, 3)
"""
import difflib
import re
import sys
from datetime import timedelta

from rich.console import Console, Group
from rich.table import Table
from rich.text import Text

from .faults import *
from .utils import *


class BoolValue:
    boolean = True

    def __init__(self, default=False):
        self._value = bool(default)

    def set(self, text):
        if text in ("1", "t", "T", "true", "TRUE", "True"):
            self._value = True
        elif text in ("0", "f", "F", "false", "FALSE", "False"):
            self._value = False
        else:
            raise ValueError("invalid syntax")

    def get(self):
        return self._value

    def __str__(self):
        return "true" if self._value else "false"

# Go integer syntax: optional sign, then decimal, 0x/0o/0b prefixed or 0-led octal digits.
_INTEGER = re.compile(r"([+-]?)(0[xXoObB][0-9a-fA-F_]+|[0-9][0-9_]*)")


class IntValue:
    boolean = False

    def __init__(self, default=0):
        self._value = int(default)

    def set(self, text):
        # base prefixes (0x, 0o, 0b), a bare leading 0 for octal and digit separators
        if (match := _INTEGER.fullmatch(text)) is None:
            raise ValueError("invalid syntax")
        sign, digits = match.groups()
        try:
            if len(digits) > 1 and digits[0] == "0" and digits[1] not in "xXoObB":
                self._value = int(sign + "0o" + digits[1:], 0)
            else:
                self._value = int(text, 0)
        except ValueError:
            raise ValueError("invalid syntax") from None

    def get(self):
        return self._value

    def __str__(self):
        return str(self._value)


class FloatValue:
    boolean = False

    def __init__(self, default=0.0):
        self._value = float(default)

    def set(self, text):
        try:
            self._value = float(text)
        except ValueError:
            raise ValueError("invalid syntax") from None

    def get(self):
        return self._value

    def __str__(self):
        text = repr(self._value)
        return text.removesuffix(".0")


class StringValue:
    boolean = False

    def __init__(self, default=""):
        self._value = str(default)

    def set(self, text):
        self._value = text

    def get(self):
        return self._value

    def __str__(self):
        return self._value


# Microseconds per unit; timedelta resolution is one microsecond.
_UNITS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}

_SEGMENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(text, /):
    """
    Parse a duration such as "300ms", "-1.5h" or "2h45m" into a timedelta.

    A sequence of decimal numbers, each with a unit suffix, optionally signed.
    Valid units are "ns", "us" (or "µs"), "ms", "s", "m", "h". The bare string
    "0" is accepted as a zero duration.
    """
    if not isinstance(text, str):
        raise TypeError("parse_duration() argument must be a string")

    sign, body = 1, text
    if body[:1] in ("-", "+"):
        sign, body = (-1 if body[0] == "-" else 1), body[1:]
    if body == "0":
        return timedelta()
    if not body:
        raise ValueError(f"invalid duration {text!r}")

    total = 0.0
    position = 0
    for match in _SEGMENT.finditer(body):
        if match.start() != position:
            break
        number, unit = match.groups()
        total += float(number) * _UNITS[unit]
        position = match.end()

    if position != len(body):
        raise ValueError(f"invalid duration {text!r}")
    return timedelta(microseconds=sign * total)


def _trim(number):
    return f"{number:.6f}".rstrip("0").rstrip(".")


def format_duration(delta, /):
    """
    Render a timedelta back into the compact form accepted by parse_duration.

    - zero:           "0s"
    - below a second: "750ms", "12µs"
    - otherwise:      "1h30m0s", "2m3.5s", "42s"
    """
    micros = delta // timedelta(microseconds=1)
    if not micros:
        return "0s"
    sign, micros = ("-" if micros < 0 else ""), abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_trim(micros / 1_000)}ms"

    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    text = f"{_trim(rest / 1_000_000)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{text}"
    if minutes:
        return f"{sign}{minutes}m{text}"
    return f"{sign}{text}"


class DurationValue:
    boolean = False

    def __init__(self, default=timedelta()):
        if not isinstance(default, timedelta):
            default = parse_duration(default)
        self._value = default

    def set(self, text):
        self._value = parse_duration(text)

    def get(self):
        return self._value

    def __str__(self):
        return format_duration(self._value)


class FuncValue:
    """
    Value calling `callback(text)` for every occurrence of the flag.

    The callback rejects a value by raising ValueError or TypeError. With
    boolean=True the flag takes no argument and the callback receives "true".
    """

    def __init__(self, callback, *, boolean=False):
        if not callable(callback):
            raise TypeError("func value 'callback' must be callable")
        self._callback = callback
        self.boolean = bool(boolean)

    def set(self, text):
        self._callback(text)

    def get(self):
        return None

    def __str__(self):
        return ""


def _sanitize_name(cls, name):
    if not isinstance(name, str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not name:
        raise ValueError(f"{cls.__typename__} 'name' cannot be empty")
    elif name.startswith("-"):
        raise ValueError(f"{cls.__typename__} 'name' cannot start with a hyphen")
    elif "=" in name:
        raise ValueError(f"{cls.__typename__} 'name' cannot contain '='")
    return name


def _sanitize_bind(cls, bind):
    if bind is Unset:
        return bind
    try:
        target, attribute = bind
    except (TypeError, ValueError):
        raise TypeError(f"{cls.__typename__} 'bind' must be a (target, attribute) pair") from None
    if not isinstance(attribute, str) or not attribute.isidentifier():
        raise ValueError(f"{cls.__typename__} 'bind' attribute must be an identifier")
    return target, attribute


class Flag(metaclass=ReflectiveType):
    """
    A named flag: value holder plus the metadata shown in usage listings.

    - default is captured as text when the flag is defined, like the listing shows it.
    - get() returns the current Python value of the flag.
    """

    __introspectable__ = (
        "name",
        "value",
        "default",
        "usage",
        "bind",
    )

    __displayable__ = (
        "name",
        "default",
        "usage",
    )

    def __init__(self, name, value, /, usage="", *, bind=Unset):
        if not callable(getattr(value, "set", None)):
            raise TypeError(f"{type(self).__typename__} 'value' must provide a set(text) method")
        if not isinstance(usage, str | Text):
            raise TypeError(f"{type(self).__typename__} 'usage' must be a string")

        self._name = _sanitize_name(type(self), name)
        self._value = value
        self._default = str(value)
        self._usage = usage
        self._bind = _sanitize_bind(type(self), bind)
        self._store()

    @property
    def boolean(self):
        return bool(getattr(self._value, "boolean", False))

    def get(self):
        getter = getattr(self._value, "get", None)
        return getter() if callable(getter) else self._value

    def _assign(self, text):
        self._value.set(text)
        self._store()

    def _store(self):
        if self._bind is not Unset:
            target, attribute = self._bind
            setattr(target, attribute, self.get())


def _suggest(name, names):
    if suggestions := difflib.get_close_matches(name, names, 1):
        return "did you mean '-%s'?" % suggestions[0]
    return "run with '-h' to list the available flags"


class FlagSet(metaclass=ReflectiveType):
    """
    Collection of flags owned by one command level.

    Parameters
    - name: str | Unset
      Owner name used in messages and usage headers; defaults to "".
    - errors: ErrorHandling
      The set's own reaction to malformed input (independent of the command tree).
    - output: rich Console | Unset
      Where failures and usage are printed; defaults to a stderr console.

    State
    - formal: all defined flags; actual: the flags set by parse()/set().
    - parsed: whether parse() ran; args: the positional remainder of the last parse.
    """

    __introspectable__ = (
        "name",
        "errors",
        "output",
        "formal",
        "actual",
        "parsed",
        "args",
    )

    __displayable__ = (
        "name",
        "errors",
        "formal",
        "parsed",
    )

    def __init__(self, name=Unset, errors=ErrorHandling.RETURN_ON_ERROR, *, output=Unset):
        if not isinstance(name, str | Unset):
            raise TypeError(f"{type(self).__typename__} 'name' must be a string")
        try:
            errors = ErrorHandling(errors)
        except ValueError:
            raise ValueError(f"{type(self).__typename__} 'errors' must be an error-handling policy") from None
        if not isinstance(output, Console | Unset):
            raise TypeError(f"{type(self).__typename__} 'output' must be a rich console")

        self._name = coalesce(name, "")
        self._errors = errors
        self._output = coalesce(output, Console(stderr=True))
        self._formal = {}
        self._actual = {}
        self._parsed = False
        self._args = []
        self._renderer = Unset
        self._owned = False

    def __iter__(self):
        """
        Iterate over every defined flag in lexicographical order.
        """
        return iter(sorted(self._formal.values(), key=lambda flag: flag.name))

    def __contains__(self, name):
        return name in self._formal

    def __len__(self):
        return len(self._formal)

    def visit(self):
        """
        Iterate over the flags that have been set, in lexicographical order.
        """
        return iter(sorted(self._actual.values(), key=lambda flag: flag.name))

    def lookup(self, name, /):
        return self._formal.get(name)

    def var(self, value, name, usage="", *, bind=Unset):
        """
        Define a flag backed by an arbitrary value object and return it.
        """
        if name in self._formal:
            raise ValueError(f"{self.__typename__} {self._name!r} flag redefined: {name}")
        self._formal[name] = flag = Flag(name, value, usage, bind=bind)
        return flag

    def boolean(self, name, default=False, usage="", *, bind=Unset):
        return self.var(BoolValue(default), name, usage, bind=bind)

    def integer(self, name, default=0, usage="", *, bind=Unset):
        return self.var(IntValue(default), name, usage, bind=bind)

    def floating(self, name, default=0.0, usage="", *, bind=Unset):
        return self.var(FloatValue(default), name, usage, bind=bind)

    def string(self, name, default="", usage="", *, bind=Unset):
        return self.var(StringValue(default), name, usage, bind=bind)

    def duration(self, name, default=timedelta(), usage="", *, bind=Unset):
        return self.var(DurationValue(default), name, usage, bind=bind)

    def func(self, name, usage, callback, *, boolean=False):
        return self.var(FuncValue(callback, boolean=boolean), name, usage)

    def set(self, name, text, /):
        """
        Set a flag programmatically, marking it as actual.

        Raises UnknownFlagError for undefined names and ValueError/TypeError for
        values the flag rejects. The set's policy is not involved.
        """
        if (flag := self._formal.get(name)) is None:
            raise UnknownFlagError(f"no such flag -{name}", tool=self, flag=name)
        flag._assign(text)  # NOQA: Same package
        self._actual[name] = flag

    def renderer(self, renderer, /):
        """
        Register the usage renderer (called without arguments by usage()).

        Returns the renderer, enabling decorator-style usage: @flags.renderer
        """
        if not callable(renderer):
            raise TypeError(f"{self.__typename__} renderer must be callable")
        self._renderer = renderer
        return renderer

    def defaults(self):
        """
        Return a rich renderable listing every flag with its usage and default.
        """
        table = Table.grid(padding=(0, 2))
        table.add_column(no_wrap=True)
        table.add_column()
        for flag in self:
            name = Text.assemble("  ", ("-" + flag.name, "bold cyan"))
            if not flag.boolean:
                name.append(" ").append(_placeholder(flag), "bold yellow")
            usage = Text.assemble(flag.usage)
            if flag.default not in ("", "0", "false", "0s"):
                usage.append(" " if flag.usage else "").append(f"(default: {flag.default})", "dim")
            table.add_row(name, usage)
        return table

    def usage(self):
        """
        Print the usage message: the registered renderer, or the flag listing.
        """
        if self._renderer is not Unset:
            return self._renderer()
        header = Text(f"Usage of {self._name}:" if self._name else "Usage:", "bold")
        self._output.print(Group(header, self.defaults()) if self._formal else header)

    def parse(self, arguments, /):
        """
        Consume the leading flags of `arguments` and return the positional remainder.

        A failure is printed to the output console together with the usage, then
        surfaced through the set's policy:
        - RETURN_ON_ERROR: the FlagError is raised.
        - EXIT_ON_ERROR: the process exits (0 for help requests, 2 otherwise).
        - PANIC_ON_ERROR: CommandPanic is raised.
        """
        if isinstance(arguments, str):
            raise TypeError(f"{self.__typename__} parse() argument must be a sequence of strings")
        self._parsed = True
        self._args = list(arguments)

        while True:
            try:
                if not self._parse_one():
                    break
            except FlagError as fault:
                self._fail(fault)
        return self.args

    def _parse_one(self):
        if not self._args:
            return False
        token = self._args[0]
        if len(token) < 2 or token[0] != "-":
            return False

        minuses = 1
        if token[1] == "-":
            minuses += 1
            if len(token) == 2:
                del self._args[0]
                return False

        name = token[minuses:]
        if not name or name[0] in ("-", "="):
            raise MalformedFlagError(f"bad flag syntax: {token}", tool=self, token=token)
        del self._args[0]

        name, separator, value = name.partition("=")
        inline = bool(separator)

        if (flag := self._formal.get(name)) is None:
            if name in ("help", "h"):
                raise HelpRequested("flag: help requested", tool=self, token=token)
            raise UnknownFlagError(
                f"flag provided but not defined: -{name}",
                tool=self, token=token, hint=_suggest(name, self._formal.keys())
            )

        if flag.boolean:
            try:
                flag._assign(value if inline else "true")  # NOQA: Same package
            except (ValueError, TypeError) as error:
                if inline:
                    raise InvalidFlagValueError(
                        f"invalid boolean value {value!r} for -{name}: {error}", tool=self, token=token, flag=flag
                    ) from error
                raise InvalidFlagValueError(
                    f"invalid boolean flag {name}: {error}", tool=self, token=token, flag=flag
                ) from error
        else:
            if not inline and self._args:
                inline, value = True, self._args.pop(0)
            if not inline:
                raise MissingFlagValueError(f"flag needs an argument: -{name}", tool=self, token=token, flag=flag)
            try:
                flag._assign(value)  # NOQA: Same package
            except (ValueError, TypeError) as error:
                raise InvalidFlagValueError(
                    f"invalid value {value!r} for flag -{name}: {error}", tool=self, token=token, flag=flag
                ) from error

        self._actual[name] = flag
        return True

    def _fail(self, fault):
        if not isinstance(fault, HelpRequested):
            self._output.print(fault)
        self.usage()
        if self._errors is ErrorHandling.EXIT_ON_ERROR:
            sys.exit(0 if isinstance(fault, HelpRequested) else fault.status)
        trigger(fault, self._errors)


def _placeholder(flag):
    """
    Name the value a flag expects in listings: the first `backquoted` word of the
    usage when present, otherwise the kind of value.
    """
    if match := re.search(r"`([^`]+)`", str(flag.usage)):
        return match.group(1)
    match flag.value:
        case IntValue():
            return "int"
        case FloatValue():
            return "float"
        case DurationValue():
            return "duration"
        case StringValue():
            return "string"
        case _:
            return "value"


__all__ = (
    "BoolValue",
    "IntValue",
    "FloatValue",
    "StringValue",
    "DurationValue",
    "FuncValue",
    "Flag",
    "FlagSet",
    "parse_duration",
    "format_duration",
)
