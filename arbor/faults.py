"""
Arbor faults (error taxonomy, error-handling policy and rendering).

Scope
- ErrorHandling: the three policies (return, exit, panic) shared by flag sets and
  command trees. Each layer carries its own, independently configured value.
- FaultCode: stable numeric identifiers for every user-facing fault, grouped by
  domain so logs and docs stay searchable.
- CommandException: the generic "command-system error" marker. Two families derive
  from it:
  • FlagError: malformed/unknown flag tokens, missing or unconvertible values,
    help requests.
  • CommandError: missing sub-command, unknown sub-command, missing handler.
  Errors raised by handlers are never wrapped in either family, so callers can
  tell "the command line was wrong" apart from "the operation failed".
- CommandPanic: the fatal fault raised under PANIC_ON_ERROR. It derives from
  BaseException so a blanket `except Exception` does not absorb it.
- trigger(): the single point where a policy turns an error into a raise, a
  process exit or a panic.

Rendering
- Every CommandException renders itself through rich (`__rich__`):
    [ prog — code | title ]
    message
     → hint
- Hosts may remap codes (`__codes__`), restyle (`__styles__`) or rename the
  program (`__prog__`) through attributes of their __main__ module.

Exit statuses (EXIT_ON_ERROR only)
- 1 handler or unclassified error, 2 flag error, 3 command error.
"""
import os.path
import sys
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.text import Text

from .utils import Unset, coalesce

console = Console(stderr=True)


class ErrorHandling(IntEnum):
    """
    how a parse failure is surfaced.

    - RETURN_ON_ERROR: the error is raised to the caller as-is.
    - EXIT_ON_ERROR: the error is printed and the process exits (see fault status).
    - PANIC_ON_ERROR: a CommandPanic carrying the error is raised.
    """
    RETURN_ON_ERROR = 0
    EXIT_ON_ERROR = 1
    PANIC_ON_ERROR = 2


class FaultCode(IntEnum):
    """
    canonical fault codes (stable identifiers).

    grouping
    - routing (1110x): MISSING_COMMAND, UNKNOWN_COMMAND, MISSING_HANDLER
    - flags (1111x): MALFORMED_FLAG, UNKNOWN_FLAG, MISSING_FLAG_VALUE,
      INVALID_FLAG_VALUE, HELP_REQUESTED
    - delegated (1113x): DELEGATED_ERROR, errors raised by handlers
    """
    # --- routing errors (11xxx) ---
    MISSING_COMMAND             = 11101
    UNKNOWN_COMMAND             = 11102
    MISSING_HANDLER             = 11103

    # --- flag errors (11xxx) ---
    MALFORMED_FLAG              = 11111
    UNKNOWN_FLAG                = 11112
    MISSING_FLAG_VALUE          = 11114
    INVALID_FLAG_VALUE          = 11117
    HELP_REQUESTED              = 11119

    # --- delegated errors (11xxx) ---
    DELEGATED_ERROR             = 11131

    def normalize(self):
        """
        return a host-normalized label for this code.

        the host application can provide a __codes__ mapping in __main__; without
        one the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


def _program(options):
    main = __import__("__main__")
    if hasattr(main, "__prog__"):
        return main.__prog__
    if name := getattr(options.get("tool"), "name", ""):
        return name
    return os.path.basename(sys.argv[0]) or "arbor"


class CommandException(Exception):
    """
    generic command-system error.

    attributes
    - message: one-sentence, lowercased description.
    - options: read-only context (tool, token, flag, hint, ...).
    - code/title/status: class-level identity used by rendering and the exit policy.
    """
    code = Unset
    title = "command error"
    status = 1

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError(f"{type(self).__name__} message must be a string")
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __rich__(self):
        main = __import__("__main__")

        styles = defaultdict(str, {
            # header parts
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",

            # body
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        } | getattr(main, "__styles__", {}))

        header = Text.assemble(
            "[ ",
            (str(_program(self.options)), styles["prog-name"]),
            " — ",
            (coalesce(self.code, FaultCode.DELEGATED_ERROR).normalize(), styles["code"]),
            " | ",
            (self.title.title(), styles["error-title"]),
            " ]",
        )
        renders = [header, Text(self.message, styles["error-message"])]
        if hint := self.options.get("hint"):
            renders.append(Text.assemble((" → ", styles["hint-arrow"]), (hint, styles["hint"])))
        return Group(*renders)


class FlagError(CommandException):
    title = "flag error"
    status = 2


class MalformedFlagError(FlagError):
    code = FaultCode.MALFORMED_FLAG
    title = "malformed flag"


class UnknownFlagError(FlagError):
    code = FaultCode.UNKNOWN_FLAG
    title = "unknown flag"


class MissingFlagValueError(FlagError):
    code = FaultCode.MISSING_FLAG_VALUE
    title = "missing flag value"


class InvalidFlagValueError(FlagError):
    code = FaultCode.INVALID_FLAG_VALUE
    title = "invalid flag value"


class HelpRequested(FlagError):
    code = FaultCode.HELP_REQUESTED
    title = "help requested"


class CommandError(CommandException):
    title = "command error"
    status = 3


class MissingCommandError(CommandError):
    code = FaultCode.MISSING_COMMAND
    title = "missing command"


class UnknownCommandError(CommandError):
    code = FaultCode.UNKNOWN_COMMAND
    title = "unknown command"


class MissingHandlerError(CommandError):
    code = FaultCode.MISSING_HANDLER
    title = "missing handler"


class DelegatedCommandError(CommandException):
    """
    display-only envelope for handler errors printed under EXIT_ON_ERROR.

    never raised: handler errors reach callers unwrapped.
    """
    code = FaultCode.DELEGATED_ERROR
    title = "command failed"


class CommandPanic(BaseException):
    """
    fatal fault raised under PANIC_ON_ERROR; `fault` is the error that caused it.
    """

    def __init__(self, fault, /):
        super().__init__(fault)
        self.fault = fault

    def __str__(self):
        return str(self.fault)


def trigger(fault, /, errors=ErrorHandling.RETURN_ON_ERROR, *, output=Unset, delegated=False, **options):
    """
    surface a fault according to an error-handling policy.

    contract
    - RETURN_ON_ERROR: the fault is re-raised unchanged.
    - EXIT_ON_ERROR: the fault is printed to `output` (stderr console by default)
      and the process exits with the fault status (1 for foreign exceptions).
    - PANIC_ON_ERROR: CommandPanic(fault) is raised.

    delegated=True marks a fault raised by a handler: whatever its type, it is
    printed inside a DelegatedCommandError envelope and exits with status 1.
    options are only used to render such envelopes.
    """
    if not isinstance(fault, BaseException):
        raise TypeError("trigger() argument must be an exception")

    match ErrorHandling(errors):
        case ErrorHandling.EXIT_ON_ERROR:
            if isinstance(fault, CommandException) and not delegated:
                coalesce(output, console).print(fault)
                sys.exit(fault.status)
            coalesce(output, console).print(DelegatedCommandError(str(fault) or type(fault).__name__, **options))
            sys.exit(1)
        case ErrorHandling.PANIC_ON_ERROR:
            raise CommandPanic(fault) from fault
    raise fault


__all__ = (
    "ErrorHandling",
    "FaultCode",
    "CommandException",
    "FlagError",
    "MalformedFlagError",
    "UnknownFlagError",
    "MissingFlagValueError",
    "InvalidFlagValueError",
    "HelpRequested",
    "CommandError",
    "MissingCommandError",
    "UnknownCommandError",
    "MissingHandlerError",
    "DelegatedCommandError",
    "CommandPanic",
    "trigger",
)
