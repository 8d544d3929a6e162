from dataclasses import dataclass

from rich.console import Console
from rich.pretty import pprint

from arbor import *

console = Console(stderr=True)


@dataclass
class Options:
    verbose: bool = False
    capitalize: bool = False


options = Options()

tool = default()
tool.flags.boolean("v", False, "verbose output", bind=(options, "verbose"))

echo_flags = FlagSet("echo", ErrorHandling.EXIT_ON_ERROR)
echo_flags.boolean("c", False, "capitalize output", bind=(options, "capitalize"))


@tool.command(flags=echo_flags, summary="print the arguments, one per line")
def echo(command, arguments):
    if options.verbose:
        console.log("echoing output")
    for argument in arguments:
        print(argument.upper() if options.capitalize else argument)


@tool.command(summary="show the command tree")
def tree(command, arguments):
    pprint(tool)


if __name__ == '__main__':
    dispatch()
