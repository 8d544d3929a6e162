"""
Arbor command layer: build command trees, resolve argument vectors, run handlers.

What this module provides
- Command: a tree node wrapping a FlagSet, a name, short/long descriptions, an
  error-handling policy, an optional handler and an ordered list of children.
  A command without children is a leaf.
- Command.resolve(arguments): walk the tree from this (root) command, one level
  per iteration, parsing each level's flags and selecting the next child.
  Returns (leaf, positional arguments).
- Command.dispatch(arguments): resolve, then call the leaf's handler.
- command(...): factory/decorator building a Command from a handler.
- invoke(object, prompt): convenience runner accepting a shell-like string.
- default(): the process-wide root command (built once on first use) and the
  add/resolve/dispatch/run helpers operating on it.

Quick start
    from arbor import Command, FlagSet, ErrorHandling

    flags = FlagSet("tool", ErrorHandling.EXIT_ON_ERROR)
    verbose = flags.boolean("v", False, "verbose output")

    tool = Command("tool", flags=flags, errors=ErrorHandling.EXIT_ON_ERROR)

    @tool.command(summary="print the arguments")
    def echo(command, arguments):
        print(*arguments)

    if __name__ == "__main__":
        tool.dispatch()                     # tool -v echo hello world

Dispatch rules
- Each level parses only the flags at the head of its arguments; the first
  positional token then selects a child by exact name (no prefixes, no case folding).
- The selector token is dropped BEFORE the selected child parses its flags, so
  `tool sub -x 1` gives `sub` the arguments ["-x", "1"].
- A level without a FlagSet gets one on first visit, named after the command and
  inheriting the root flag set's policy and console (EXIT_ON_ERROR without one).
- Failures are surfaced once, at the outermost call, through the root's policy
  (see arbor.faults.trigger). Handler errors are never wrapped.
"""
import difflib
import functools
import os.path
import shlex
import sys
from collections import defaultdict
from collections.abc import Iterable

from rich.box import ROUNDED
from rich.console import Group
from rich.table import Table
from rich.text import Text

from . import faults
from .faults import *
from .flags import FlagSet
from .utils import *


def _process_strings(cls, metadata):
    """
    Normalize the display strings of a command (summary, descr).

    - Values must be str | Text | Unset; strings are trimmed and cannot be empty.
    - Unset becomes None.
    """
    for name in ("summary", "descr"):
        if not isinstance(object := metadata[name], str | Text | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} must be a string")
        elif isinstance(object, str) and not (object := object.strip()):
            raise ValueError(f"{cls.__typename__} {name!r} cannot be empty")
        metadata[name] = coalesce(object)


def _process_handler(cls, handler):
    """
    Validate a handler: a callable (command, arguments) or an object exposing
    __handle__(command, arguments). Unset means "no handler yet".
    """
    if handler is Unset:
        return handler
    if hasattr(handler, "__handle__") and callable(handler.__handle__):
        return handler
    if callable(handler):
        return handler
    raise TypeError(f"{cls.__typename__} 'handler' must be callable or implement __handle__")


def _call(handler, command, arguments):
    if hasattr(handler, "__handle__") and callable(handler.__handle__):
        return handler.__handle__(command, arguments)
    return handler(command, arguments)


def _walk(command):
    """
    Yield a command and all of its descendants, depth first.
    """
    yield command
    for child in command._children:  # NOQA: Same module
        yield from _walk(child)


def _hint(root, current):
    route = (root.name, current.name if current is not root else "", "-h")
    return "run %r to see the available commands" % " ".join(filter(None, route))


def _styled(object, style):
    return object if isinstance(object, Text) else Text(object, style)


class Command(metaclass=ReflectiveType):
    """
    A node of the command tree.

    Parameters
    - name: str | Unset
      Selector matched against argument tokens. Defaults to the handler's name
      when that is an identifier (underscores become hyphens), otherwise to "".
    - handler: Callable[[Command, list[str]], Any] | object with __handle__ | Unset
      Invoked for a resolved leaf. Ignored on commands with children.
    - summary: str | Text | Unset
      One-line description shown in the parent's command table.
    - descr: str | Text | Unset
      Long description shown in this command's usage.
    - flags: FlagSet | Unset
      Owned flag set; created lazily on first visit when Unset.
    - errors: ErrorHandling
      Policy applied when this command is the root of a resolve/dispatch call.
    - children: Iterable[Command]
      Sub-commands in lookup order.

    Ownership
    - A command owns its flag set and its children exclusively: a child belongs to
      one parent only, child names are unique per parent, and cycles are rejected.
      No parent pointers are stored; the root is passed down explicitly.
    """

    __introspectable__ = (
        "name",
        "summary",
        "descr",
        "flags",
        "errors",
        "handler",
        "children",
    )

    __displayable__ = (
        "name",
        "summary",
        "errors",
        "handler",
        "children",
    )

    def __init__(
            self,
            name=Unset,
            /,
            handler=Unset,
            *,
            summary=Unset,
            descr=Unset,
            flags=Unset,
            errors=ErrorHandling.RETURN_ON_ERROR,
            children=(),
    ):
        cls = type(self)
        handler = _process_handler(cls, handler)

        if name is Unset:
            # Only identifiers become selectors; lambdas and callables without names stay anonymous.
            name = getattr(handler, "__name__", "")
            name = name.strip("_").replace("_", "-") if isinstance(name, str) and name.isidentifier() else ""
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        if not isinstance(flags, FlagSet | Unset):
            raise TypeError(f"{cls.__typename__} 'flags' must be a flag set")
        if flags is not Unset and flags._owned:  # NOQA: Same package
            raise ValueError(f"{cls.__typename__} flag set {flags.name!r} already belongs to another command")
        try:
            errors = ErrorHandling(errors)
        except ValueError:
            raise ValueError(f"{cls.__typename__} 'errors' must be an error-handling policy") from None
        if not isinstance(children, Iterable):
            raise TypeError(f"{cls.__typename__} 'children' must be an iterable of commands")

        metadata = {
            "name": name,
            "summary": summary,
            "descr": descr,
            "flags": flags,
            "errors": errors,
            "handler": handler,
        }
        _process_strings(cls, metadata)
        for name, object in metadata.items():
            setattr(self, "_" + name, object)

        self._children = []
        self._attached = False

        # A supplied flag set shows this command's usage unless it already has a renderer.
        if flags is not Unset:
            flags._owned = True  # NOQA: Same package
            if flags._renderer is Unset:  # NOQA: Same package
                flags.renderer(self.usage)

        self.add(*children)

    @property
    def is_leaf(self):
        return not self._children

    def find(self, name, /):
        """
        Return the first child named exactly `name`, or None.
        """
        for child in self._children:
            if child._name == name:
                return child
        return None

    def add(self, *children):
        """
        Append children to this command, enforcing tree ownership.
        """
        for child in children:
            if not isinstance(child, Command):
                raise TypeError(f"{self.__typename__} children must be commands")
            if not child._name:
                raise ValueError(f"{self.__typename__} child commands must have a name")
            if child._attached:
                raise ValueError(f"{self.__typename__} {child._name!r} already belongs to another command")
            if any(node is self for node in _walk(child)):
                raise ValueError(f"{self.__typename__} {child._name!r} cannot be added to its own subtree")
            if self.find(child._name) is not None:
                raise ValueError(f"{self.__typename__} subcommand name {child._name!r} is already in use")
            child._attached = True
            self._children.append(child)

    def command(self, source=Unset, /, **options):
        """
        Create or attach a child command.

        Modes
        - self.command(handler, name=..., summary=...) -> Command
        - self.command(existing_command) -> the same command, now attached
        - @self.command / @self.command(summary=...) decorating a handler

        Returns the child command (decorator mode returns it in place of the function).
        """
        @rename("command")
        def wrapper(source, /):
            if isinstance(source, Command):
                if options:
                    raise TypeError(f"{self.__typename__} command() options require a handler")
                child = source
            elif callable(source) or hasattr(source, "__handle__"):
                child = command(source, **options)
            else:
                raise TypeError(f"{self.__typename__} command() must be applied to a callable or a command")
            self.add(child)
            return child

        return wrapper(source) if source is not Unset else wrapper

    def handle(self, handler, /):
        """
        Attach the handler once; usable as a decorator (@cmd.handle).
        """
        if self._handler is not Unset:
            raise TypeError(f"{self.__typename__} handler cannot be overridden")
        self._handler = _process_handler(type(self), handler)
        return handler

    def usage(self):
        """
        Render this command's usage to its flag set console (stderr by default).

        Sections: usage line, long description, sub-command table (name, summary)
        and the flag listing. Palette entries may be overridden through a
        __styles__ mapping in __main__.
        """
        styles = defaultdict(str, {
            "usage-label": "bold #00E6FF",
            "program-name": "bold #FF4D94",
            "usage-section": "bold #36C5F0",
            "description-section": "italic #A3A3A3",
            "group-label": "bold #FFFFFF",
            "children-title": "bold #FFFFFF",
            "children-table": "#4B5563",
            "children": "bold #36C5F0",
            "children-description": "#9CA3AF",
        } | getattr(__import__("__main__"), "__styles__", {}))

        console = self._flags.output if self._flags is not Unset else faults.console

        usage = Text()
        usage.append("usage", styles["usage-label"]).append(":")
        if self._name:
            usage.append(" ").append(self._name, styles["program-name"])
        if self._flags is not Unset and len(self._flags):
            usage.append(" [flags]", styles["usage-section"])
        usage.append(" <command>" if self._children else " [arguments ...]", styles["usage-section"])
        renders = [usage]

        if self._descr:
            renders.append(Text.assemble("\n", _styled(self._descr, styles["description-section"])))

        if named := [child for child in self._children if child._name]:
            table = Table(
                "name", "description",
                title=Text("commands", styles["children-title"]),
                box=ROUNDED,
                style=styles["children-table"],
                header_style=styles["children-title"],
            )
            for child in named:
                table.add_row(
                    Text(child._name, styles["children"]),
                    _styled(child._summary or "", styles["children-description"]),
                )
            renders.append(table)

        if self._flags is not Unset and len(self._flags):
            renders.append(Text.assemble("\n", ("flags", styles["group-label"]), ":"))
            renders.append(self._flags.defaults())

        console.print(Group(*renders))

    def _ensure_flags(self, root):
        """
        Create this command's flag set on first visit.

        The policy and console come from the root's flag set when it has one;
        otherwise the set exits on error and prints to stderr.
        """
        if self._flags is Unset:
            if root._flags is not Unset:
                self._flags = FlagSet(self._name, root._flags.errors, output=root._flags.output)
            else:
                self._flags = FlagSet(self._name, ErrorHandling.EXIT_ON_ERROR)
            self._flags.renderer(self.usage)
            self._flags._owned = True  # NOQA: Same package
        return self._flags

    def _output(self):
        return self._flags.output if self._flags is not Unset else Unset

    def _resolve(self, arguments):
        current, remaining, parsed = self, list(arguments), set()
        while True:
            flags = current._ensure_flags(self)
            assert id(flags) not in parsed, f"flag set of {current._name!r} parsed twice in one traversal"
            parsed.add(id(flags))

            # The selector that led here is dropped before this level parses its flags.
            if current is not self:
                remaining = remaining[1:]

            remaining = flags.parse(remaining)

            if not current._children:
                return current, remaining

            if not remaining:
                if current is self:
                    raise MissingCommandError("missing command", tool=self, hint=_hint(self, current))
                raise MissingCommandError(
                    f"missing command for {current._name!r}", tool=self, command=current, hint=_hint(self, current)
                )

            if (child := current.find(selector := remaining[0])) is None:
                names = [child._name for child in current._children]
                if suggestions := difflib.get_close_matches(selector, names, 1):
                    hint = "did you mean %r? you can also %s" % (suggestions[0], _hint(self, current))
                else:
                    hint = _hint(self, current)
                raise UnknownCommandError(f"no such command {selector!r}", tool=self, token=selector, hint=hint)

            current = child

    def resolve(self, arguments=Unset, /):
        """
        Resolve `arguments` (sys.argv[1:] when Unset) into (leaf, positional arguments).

        Errors
        - FlagError from any level's flag set (when that set returns its errors).
        - MissingCommandError when a non-leaf level runs out of tokens.
        - UnknownCommandError when a selector matches no child.
        Each is surfaced through this command's policy (raise, exit 2/3, panic).
        """
        arguments = coalesce(arguments, sys.argv[1:])
        if isinstance(arguments, str) or not isinstance(arguments, Iterable):
            raise TypeError(f"{self.__typename__} resolve() argument must be an iterable of strings")
        try:
            return self._resolve(arguments)
        except CommandException as fault:
            trigger(fault, self._errors, output=self._output())

    def run(self, arguments=(), /):
        """
        Call this command's own handler with `arguments`, without resolving.
        """
        return self._invoke(self, list(arguments))

    def dispatch(self, arguments=Unset, /):
        """
        Resolve `arguments` and call the resolved leaf's handler.

        Returns whatever the handler returns. A leaf without a handler is a
        MissingHandlerError (a command error). Exceptions raised by the handler are
        not wrapped: with RETURN_ON_ERROR they propagate as raised, with
        EXIT_ON_ERROR the process exits with status 1, with PANIC_ON_ERROR they
        become the payload of a CommandPanic.
        """
        leaf, arguments = self.resolve(arguments)
        return self._invoke(leaf, arguments)

    def _invoke(self, leaf, arguments):
        if leaf._handler is Unset:
            trigger(
                MissingHandlerError(f"no handler for command {leaf._name or '(root)'!r}", tool=self, command=leaf),
                self._errors,
                output=self._output(),
            )
        try:
            return _call(leaf._handler, leaf, arguments)
        except Exception as error:
            if self._errors is ErrorHandling.RETURN_ON_ERROR:
                raise
            trigger(error, self._errors, output=self._output(), delegated=True, tool=self)

    def __invoke__(self, prompt=Unset):
        """
        Dispatch a prompt.

        - Unset: sys.argv[1:].
        - str: shell-like string split with shlex.split.
        - Iterable[str]: pre-tokenized arguments (kept verbatim).
        """
        if prompt is Unset:
            tokens = sys.argv[1:]
        elif isinstance(prompt, str):
            tokens = shlex.split(prompt)
        elif isinstance(prompt, Iterable):
            tokens = list(prompt)
            if not all(isinstance(token, str) for token in tokens):
                raise TypeError("__invoke__() argument must be a string or an iterable of strings")
        else:
            raise TypeError("__invoke__() argument must be a string or an iterable of strings")
        return self.dispatch(tokens)


def command(source=Unset, /, **options):
    """
    Create a Command from a handler, or return a decorator doing so.

    - command(handler, name=..., summary=..., ...) -> Command
    - @command / @command(flags=..., errors=...) decorating a handler
    """
    @rename("command")
    def wrapper(source, /):
        if not callable(source) and not hasattr(source, "__handle__"):
            raise TypeError("@command() must be applied to a callable")
        return Command(options.get("name", Unset), source, **{k: v for k, v in options.items() if k != "name"})

    return wrapper(source) if source is not Unset else wrapper


def invoke(object, prompt=Unset, /):
    """
    Run a command (or a plain handler wrapped into a leaf command) with a prompt.

    - prompt Unset reads sys.argv[1:]; a string is split with shlex.split.
    """
    if hasattr(object, "__invoke__") and callable(object.__invoke__):
        return object.__invoke__(prompt)
    if callable(object):
        return invoke(command(object), prompt)
    target = "argument" if prompt is Unset else "first argument"
    raise TypeError(f"invoke() {target} must implement __invoke__ method")


@functools.cache
def default():
    """
    Return the process-wide default root command.

    Built once, on first call: named after the program, with an EXIT_ON_ERROR flag
    set and policy. Populate it (add(), default().flags) before the single
    resolve()/dispatch() at program entry; it is never torn down and must not be
    mutated while a dispatch is running.
    """
    name = os.path.basename(sys.argv[0])
    return Command(
        name,
        flags=FlagSet(name, ErrorHandling.EXIT_ON_ERROR),
        errors=ErrorHandling.EXIT_ON_ERROR,
    )


def add(*children):
    """
    Add children to the default command.
    """
    default().add(*children)


def resolve(arguments=Unset, /):
    """
    Resolve sys.argv[1:] (or `arguments`) against the default command.
    """
    return default().resolve(arguments)


def dispatch(arguments=Unset, /):
    """
    Resolve and run sys.argv[1:] (or `arguments`) against the default command.
    """
    return default().dispatch(arguments)


def run(arguments=(), /):
    """
    Call the default command's own handler with `arguments`, without resolving.
    """
    return default().run(arguments)


__all__ = (
    "Command",
    "command",
    "invoke",
    "default",
    "add",
    "resolve",
    "dispatch",
    "run",
)
