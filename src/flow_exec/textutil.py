"""String trimming and splitting for captured output."""

WHITESPACE = " \t\n\r"


def trim(s: str, chars: str = WHITESPACE) -> str:
    """Strip any of `chars` from both ends of `s`."""
    return s.strip(chars)


def _split(s: str, find, max_splits: int, trim_tokens: bool, include_empty: bool) -> list[str]:
    parts = []
    start = 0
    splits = 0
    pos, width = find(s, start)
    while pos != -1 and (max_splits == 0 or splits < max_splits):
        token = s[start:pos]
        if trim_tokens:
            token = trim(token)
        if token or include_empty:
            splits += 1
            parts.append(token)
        start = pos + width
        pos, width = find(s, start)
    tail = s[start:]
    if trim_tokens:
        tail = trim(tail)
    if tail or include_empty:
        parts.append(tail)
    return parts


def split(
    s: str,
    sep: str = " ",
    max_splits: int = 0,
    trim_tokens: bool = True,
    include_empty: bool = True,
) -> list[str]:
    """Split `s` on the separator string `sep`.

    max_splits=0 means no limit. Tokens are trimmed of surrounding whitespace
    when trim_tokens is set; empty tokens are dropped unless include_empty.
    """
    if not sep:
        raise ValueError("empty separator")

    def find(text, start):
        return text.find(sep, start), len(sep)

    return _split(s, find, max_splits, trim_tokens, include_empty)


def split_on_any(
    s: str,
    seps: str,
    max_splits: int = 0,
    trim_tokens: bool = True,
    include_empty: bool = True,
) -> list[str]:
    """Split `s` on any single character found in `seps`."""
    if not seps:
        raise ValueError("empty separator set")

    def find(text, start):
        hits = [i for i in (text.find(c, start) for c in seps) if i != -1]
        return (min(hits) if hits else -1), 1

    return _split(s, find, max_splits, trim_tokens, include_empty)


def lines(s: str) -> list[str]:
    """Return the non-blank lines of `s`, trimmed."""
    return [line.strip() for line in s.splitlines() if line.strip()]


def tokens(line: str, sep: str | None = None) -> list[str]:
    """Split a line into tokens: whitespace runs by default, else on `sep`."""
    if sep is None:
        return line.split()
    return split(line, sep, include_empty=False)
