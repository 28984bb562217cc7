"""Quote-aware splitting of compound shell commands.

This is a lexical splitter, not a shell parser. It only exists so that a
dangerous command chained behind a harmless one (``git status && rm -rf /``)
is checked on its own, while operator characters inside quotes
(``grep 'a && b' file``) are left alone.
"""

# Marker that starts every segment following a single pipe, so patterns
# keyed on "piped into" (``| sh``, ``| curl``) still match the segment.
PIPE_MARKER = "|"


def split_command(command: str) -> list[str]:
    """Split a command on top-level ``&&``, ``||``, ``;`` and ``|``.

    Operators inside single or double quotes are literal. A lone ``&`` is
    kept as text. Segments are trimmed and empty ones dropped. Unbalanced
    quotes never raise: the unterminated tail becomes the last segment.

    >>> split_command("git status && ls -la")
    ['git status', 'ls -la']
    >>> split_command("cat file | grep foo")
    ['cat file', '| grep foo']
    >>> split_command("grep -r 'a && b' docs/")
    ["grep -r 'a && b' docs/"]
    >>> split_command("   ")
    []
    """
    segments: list[str] = []
    current: list[str] = []
    in_single_quote = False
    in_double_quote = False

    def flush(seed: str = "") -> None:
        segment = "".join(current).strip()
        if segment:
            segments.append(segment)
        current.clear()
        if seed:
            current.append(seed)

    i = 0
    n = len(command)
    while i < n:
        c = command[i]
        quoted = in_single_quote or in_double_quote
        nxt = command[i + 1] if i + 1 < n else ""

        if c == "'" and not in_double_quote:
            in_single_quote = not in_single_quote
            current.append(c)
        elif c == '"' and not in_single_quote:
            in_double_quote = not in_double_quote
            current.append(c)
        elif quoted:
            current.append(c)
        elif c == "&" and nxt == "&":
            flush()
            i += 1
        elif c == "|" and nxt == "|":
            flush()
            i += 1
        elif c == "|":
            flush(seed=PIPE_MARKER)
        elif c == ";":
            flush()
        else:
            current.append(c)
        i += 1

    flush()
    return segments
