"""
Faults module tests (taxonomy, rendering, policy evaluation).

Scope
- Validate the two error families and their exit statuses.
- Validate trigger() for every ErrorHandling policy.
- Validate the rich rendering of faults and host overrides through __main__.

Conventions
- Test method names follow CamelCase per project convention.
- Rendering goes to an in-memory rich console.
"""
import io
import unittest
from unittest import TestCase, mock

from rich.console import Console

from arbor import Command
from arbor.faults import *


def quiet():
    return Console(file=io.StringIO(), width=120)


class TestTaxonomy(TestCase):

    def testFamilies(self):
        for error in (MalformedFlagError, UnknownFlagError, MissingFlagValueError, InvalidFlagValueError, HelpRequested):
            self.assertTrue(issubclass(error, FlagError))
            self.assertTrue(issubclass(error, CommandException))
            self.assertFalse(issubclass(error, CommandError))
        for error in (MissingCommandError, UnknownCommandError, MissingHandlerError):
            self.assertTrue(issubclass(error, CommandError))
            self.assertTrue(issubclass(error, CommandException))
            self.assertFalse(issubclass(error, FlagError))

    def testStatuses(self):
        self.assertEqual(FlagError.status, 2)
        self.assertEqual(CommandError.status, 3)
        self.assertEqual(UnknownFlagError("x").status, 2)
        self.assertEqual(MissingCommandError("x").status, 3)

    def testPanicIsNotAnException(self):
        self.assertTrue(issubclass(CommandPanic, BaseException))
        self.assertFalse(issubclass(CommandPanic, Exception))

    def testMessageAndReadOnlyOptions(self):
        fault = UnknownCommandError("no such command 'x'", token="x")
        self.assertEqual(fault.message, "no such command 'x'")
        self.assertEqual(str(fault), "no such command 'x'")
        self.assertEqual(fault.options["token"], "x")
        with self.assertRaises(TypeError):
            fault.options["token"] = "y"  # NOQA: read-only mapping

    def testMessageMustBeString(self):
        with self.assertRaises(TypeError):
            MissingCommandError(42)

    def testCodeNormalizeDefaultsToValue(self):
        self.assertEqual(FaultCode.MISSING_COMMAND.normalize(), "11101")


class TestTrigger(TestCase):

    def testReturnReraisesUnchanged(self):
        fault = MissingCommandError("missing command")
        with self.assertRaises(MissingCommandError) as context:
            trigger(fault, ErrorHandling.RETURN_ON_ERROR)
        self.assertIs(context.exception, fault)

    def testExitPrintsAndExitsWithStatus(self):
        output = quiet()
        with self.assertRaises(SystemExit) as context:
            trigger(MissingCommandError("missing command", hint="run 'tool -h'"), ErrorHandling.EXIT_ON_ERROR, output=output)
        self.assertEqual(context.exception.code, 3)

        text = output.file.getvalue()
        self.assertIn("missing command", text)
        self.assertIn("Missing Command", text)
        self.assertIn("11101", text)
        self.assertIn("→ run 'tool -h'", text)

    def testExitWithForeignErrorExitsWithOne(self):
        output = quiet()
        with self.assertRaises(SystemExit) as context:
            trigger(RuntimeError("boom"), ErrorHandling.EXIT_ON_ERROR, output=output)
        self.assertEqual(context.exception.code, 1)
        self.assertIn("boom", output.file.getvalue())
        self.assertIn("Command Failed", output.file.getvalue())

    def testExitWithDelegatedFaultExitsWithOne(self):
        output = quiet()
        with self.assertRaises(SystemExit) as context:
            trigger(UnknownFlagError("flag provided but not defined: -x"), ErrorHandling.EXIT_ON_ERROR,
                    output=output, delegated=True)
        self.assertEqual(context.exception.code, 1)
        self.assertIn("Command Failed", output.file.getvalue())
        self.assertIn("-x", output.file.getvalue())

    def testPanicCarriesFault(self):
        fault = UnknownFlagError("flag provided but not defined: -x")
        with self.assertRaises(CommandPanic) as context:
            trigger(fault, ErrorHandling.PANIC_ON_ERROR)
        self.assertIs(context.exception.fault, fault)
        self.assertIs(context.exception.__cause__, fault)
        self.assertEqual(str(context.exception), str(fault))

    def testRejectsNonExceptions(self):
        with self.assertRaises(TypeError):
            trigger("boom")


class TestRendering(TestCase):

    def testProgramNameFromTool(self):
        output = quiet()
        output.print(UnknownCommandError("no such command 'x'", tool=Command("tool")))
        self.assertIn("[ tool — 11102 | Unknown Command ]", output.file.getvalue())

    def testHostOverridesThroughMain(self):
        main = __import__("__main__")
        output = quiet()
        with mock.patch.object(main, "__prog__", "demo", create=True), \
                mock.patch.object(main, "__codes__", {FaultCode.UNKNOWN_FLAG: "E-FLAG"}, create=True):
            output.print(UnknownFlagError("flag provided but not defined: -x"))
        self.assertIn("[ demo — E-FLAG | Unknown Flag ]", output.file.getvalue())


if __name__ == "__main__":
    unittest.main()
