import sys
from typing import Any, Sequence

_DEFAULT_ERRORS = "backslashreplace"


def _get_encoding(stream) -> str:
    return getattr(stream, "encoding", None) or getattr(sys.stdout, "encoding", None) or "utf-8"


def safe_str(x: Any, encoding: str | None = None, errors: str = _DEFAULT_ERRORS) -> str:
    if isinstance(x, bytes):
        return x.decode(encoding or "utf-8", errors=errors)

    s = str(x)
    enc = encoding or _get_encoding(sys.stdout)
    try:
        s.encode(enc)
        return s
    except UnicodeEncodeError:
        return s.encode(enc, errors=errors).decode(enc, errors=errors)


def safe_print(*args: Any, sep: str = " ", end: str = "\n", file=None, flush: bool = False) -> None:
    """print() that survives consoles unable to encode Cyrillic titles or "₴"."""
    stream = file if file is not None else sys.stdout
    encoding = _get_encoding(stream)
    text = sep.join(safe_str(arg, encoding=encoding) for arg in args) + end
    try:
        stream.write(text)
    except UnicodeEncodeError:
        stream.write(text.encode(encoding, errors=_DEFAULT_ERRORS).decode(encoding, errors=_DEFAULT_ERRORS))
    if flush:
        stream.flush()


def format_table(headers: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    """Render a plain boxed table; column widths fit the widest cell."""
    cells = [[str(h) for h in headers]] + [[str(c) for c in row] for row in rows]
    widths = [max(len(r[i]) for r in cells) for i in range(len(headers))]
    border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"

    def line(row):
        return "|" + "|".join(f" {c.ljust(w)} " for c, w in zip(row, widths)) + "|"

    out = [border, line(cells[0]), border]
    out.extend(line(r) for r in cells[1:])
    out.append(border)
    return "\n".join(out)


def print_table(headers: Sequence[str], rows: Sequence[Sequence[Any]], file=None) -> None:
    safe_print(format_table(headers, rows), file=file)
