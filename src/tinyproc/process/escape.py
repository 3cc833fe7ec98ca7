"""Escaping of commands and arguments for ``cmd.exe``.

``^`` is cmd's escape character. Arguments are additionally quoted using the
rules of the MSVC runtime argument parser, which runs after cmd has removed
its own escapes.
"""

import re

META_CHARS = re.compile(r'([()\][%!^"`<>&|;, *?])')

# A run of backslashes followed by a quote, or by the end of the string
# (which becomes a quote once the argument is wrapped).
_BACKSLASHES_BEFORE_QUOTE = re.compile(r'(\\*)"')
_BACKSLASHES_AT_END = re.compile(r"(\\*)\Z")


def escape_command(arg: str) -> str:
    """Escape the command name so cmd treats metacharacters literally."""
    return META_CHARS.sub(r"^\1", arg)


def escape_argument(arg: str, double_escape_meta_chars: bool = False) -> str:
    """Escape one argument for a cmd command line.

    Set ``double_escape_meta_chars`` when the target is a cmd shim that hands
    its arguments to a second cmd invocation; every ``^`` is then tripled.
    """
    arg = f"{arg}"
    arg = _BACKSLASHES_BEFORE_QUOTE.sub(r'\1\1\\"', arg)
    arg = _BACKSLASHES_AT_END.sub(r"\1\1", arg, count=1)
    arg = f'"{arg}"'

    arg = META_CHARS.sub(r"^\1", arg)
    if double_escape_meta_chars:
        arg = META_CHARS.sub(r"^\1", arg)
    return arg
