"""
Variable Resolver
-----------------
Turns a command template into a concrete command string.

Tokens:
- $N  direct argument: always args[N]
- #N  persistent variable: stored value for "#N", else args[N]

$N and #N with the same N read the same positional slot.
Resolution is a pure function: the variable mapping is only read.
"""

from typing import List, Mapping, Optional, Sequence
import re

from core.errors import MissingArgumentError, UnresolvedVariableError

TOKEN_PATTERN = re.compile(r"([$#])([1-9][0-9]*)")


def resolve(
    template: str,
    variables: Mapping[str, str],
    args: Sequence[str],
    context: Optional[str] = None,
) -> str:
    """
    Substitute every placeholder in one left-to-right pass.

    Args:
        template: Raw command template
        variables: Snapshot of the context's persistent variables
        args: Positional call arguments (args[0] binds to $1/#1)
        context: Context name, only used in error messages

    Raises:
        MissingArgumentError: a $N token has no argument
        UnresolvedVariableError: a #N token has no stored value and no argument
    """

    def substitute(match: "re.Match[str]") -> str:
        token = match.group(0)
        index = int(match.group(2))

        if match.group(1) == "$":
            if index > len(args):
                raise MissingArgumentError(token, len(args))
            return args[index - 1]

        value = variables.get(token)
        if value is not None:
            return str(value)
        if index <= len(args):
            return args[index - 1]
        raise UnresolvedVariableError(token, context)

    return TOKEN_PATTERN.sub(substitute, template)


def placeholders(template: str) -> List[str]:
    """Distinct placeholder tokens in order of first appearance."""
    seen: List[str] = []
    for match in TOKEN_PATTERN.finditer(template):
        if match.group(0) not in seen:
            seen.append(match.group(0))
    return seen
