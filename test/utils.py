"""
Tests for the shared helpers.

This module verifies:
- The `Unset` sentinel: singleton identity, falsy semantics, unions and finality.
- coalesce() replacing only the sentinel.
- rename() as a decorator.
- mirror() handing out detached copies of containers.
- ReflectiveType wiring of __typename__ and reprs.
"""
import unittest
from unittest import TestCase

from arbor.utils import *


class UnsetTest(TestCase):
    """
    Test suite for the `Unset` singleton.
    """

    def testSingleton(self) -> None:
        """
        The constructor returns the same object reference on every call.
        """
        self.assertIs(Unset, UnsetType())
        self.assertIs(UnsetType(), UnsetType())

    def testFalsyAndRepr(self) -> None:
        self.assertFalse(Unset)
        self.assertEqual(repr(Unset), "Unset")
        self.assertNotEqual(Unset, None)

    def testUnionWithTypes(self) -> None:
        """
        `str | Unset` builds a union usable with isinstance, from either side.
        """
        self.assertTrue(isinstance(Unset, str | Unset))
        self.assertTrue(isinstance("x", Unset | str))
        self.assertFalse(isinstance(1, str | Unset))

    def testCannotSubclass(self) -> None:
        with self.assertRaises(TypeError):
            type("Derived", (UnsetType,), {})


class HelpersTest(TestCase):

    def testCoalesceReplacesOnlyUnset(self):
        self.assertEqual(coalesce(Unset, "fallback"), "fallback")
        self.assertIsNone(coalesce(Unset))
        self.assertIsNone(coalesce(None, "fallback"))
        self.assertEqual(coalesce(0, 1), 0)
        self.assertEqual(coalesce("", "x"), "")

    def testRenameDecorator(self):
        @rename("decorated")
        def original():
            pass

        self.assertEqual(original.__name__, "decorated")
        self.assertEqual(original.__qualname__, "decorated")

    def testRenameValidatesArguments(self):
        with self.assertRaises(TypeError):
            rename(1)
        with self.assertRaises(TypeError):
            rename("decorated")(1)

    def testMirrorReturnsDetachedCopies(self):
        class Holder:
            items = mirror("items")
            table = mirror("table")

            def __init__(self):
                self._items = [1, [2, 3]]
                self._table = {"a": [1]}

        holder = Holder()
        items = holder.items
        items.append(4)
        items[1].append(5)
        holder.table["a"].append(2)
        self.assertEqual(holder._items, [1, [2, 3]])
        self.assertEqual(holder._table, {"a": [1]})

        with self.assertRaises(AttributeError):
            holder.items = []


class ReflectiveTypeTest(TestCase):

    def testTypenameAndRepr(self):
        class SampleThing(metaclass=ReflectiveType):
            __introspectable__ = ("name", "size")
            __displayable__ = ("name",)

            def __init__(self):
                self._name = "box"
                self._size = 3

        thing = SampleThing()
        self.assertEqual(SampleThing.__typename__, "sample-thing")
        self.assertEqual(thing.size, 3)
        self.assertEqual(repr(thing), "sample-thing(name='box')")
        self.assertEqual(list(thing.__rich_repr__()), [("name", "box")])


if __name__ == "__main__":
    unittest.main()
