"""Control line parsing."""
import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Command:
    """One parsed control line.

    Attributes:
        verb: Command token exactly as received
        argument: Remainder of the line with '/' translated to the
                  local path separator, '' when absent
    """

    verb: str
    argument: str = ""


def parse_command(line: str) -> Command:
    """Split a control line into verb and argument."""
    line = line.rstrip('\r\n')
    verb, _, argument = line.partition(' ')
    return Command(verb=verb, argument=argument.replace('/', os.sep))
