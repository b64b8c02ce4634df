"""
Caller Resolver
---------------
Finds the function that made a log call by walking the stack outward from
the formatter:

  1. frames from the formatter's own module are skipped
  2. standard library frames are skipped (this covers `logging` itself)
  3. the first remaining frame names the *calling module*, usually a thin
     logging wrapper, and is skipped along with the rest of that module
  4. the next frame is the call site

Frames are identified by a fully qualified name of the form
`package/module.Qualified.name`: the module's dotted path with `/`
separators, then `.`, then the function's qualified name.
"""

import os
import sys
import sysconfig
from typing import Callable, Iterable, NamedTuple, Optional

from kvlog.core.config import DEFAULT_STACK_DEPTH, DEFAULT_STACK_SKIP


class StackFrame(NamedTuple):
    name: str
    filename: str
    lineno: int


class CallSite(NamedTuple):
    function: str
    line: Optional[int]

    @property
    def known(self) -> bool:
        return self.line is not None


UNKNOWN_CALLER = CallSite("unknown", None)


def _stdlib_roots() -> tuple[str, ...]:
    roots = {os.path.dirname(os.__file__)}
    paths = sysconfig.get_paths()
    for key in ("stdlib", "platstdlib"):
        if paths.get(key):
            roots.add(paths[key])
    return tuple(sorted(os.path.join(os.path.normcase(r), "") for r in roots))


STDLIB_ROOTS = _stdlib_roots()
_THIRD_PARTY_DIRS = ("site-packages", "dist-packages")


def is_stdlib(filename: str, roots: Iterable[str] = STDLIB_ROOTS) -> bool:
    """True for files under the interpreter's standard library."""
    if filename.startswith("<frozen "):
        return True
    path = os.path.normcase(filename)
    if not path.startswith(tuple(roots)):
        return False
    return not any(part in path for part in _THIRD_PARTY_DIRS)


def pkgname(name: str) -> tuple[str, str]:
    """
    Split a fully qualified function name into (module, function).

    A parenthesised suffix is ignored while searching; after the last `/`
    the first `.` ends the module. A module whose last path segment itself
    contains a `.` is split in the wrong place, and a name with no `.` after
    its last `/` yields ("", "").
    """
    full_name = name
    first_paren = name.find("(")
    if first_paren > 0:
        name = name[:first_paren]

    last_slash = name.rfind("/")
    if last_slash > 0:
        pos = name.find(".", last_slash)
    else:
        pos = name.find(".")
    if pos == -1:
        return "", ""
    return name[:pos], full_name[pos + 1:]


def frame_name(frame) -> str:
    module = frame.f_globals.get("__name__") or "?"
    code = frame.f_code
    qualname = getattr(code, "co_qualname", code.co_name)
    return f"{module.replace('.', '/')}.{qualname}"


def capture_frames(depth: int = DEFAULT_STACK_DEPTH, skip: int = DEFAULT_STACK_SKIP) -> list[StackFrame]:
    """
    Return up to `depth` frames, innermost first. The first `skip` frames,
    counted from this function's caller, are dropped.
    """
    try:
        frame = sys._getframe(skip + 1)
    except ValueError:
        return []

    frames = []
    while frame is not None and len(frames) < depth:
        frames.append(StackFrame(frame_name(frame), frame.f_code.co_filename, frame.f_lineno))
        frame = frame.f_back
    return frames


def select_call_site(
    frames: Iterable[StackFrame],
    stdlib_check: Callable[[str], bool] = is_stdlib,
    calling_module: str = "",
) -> CallSite:
    """
    Apply the walk above to `frames`, innermost first.

    A non-empty `calling_module` is taken as already known: the first frame
    that is not standard library and belongs to neither the formatter nor
    that module is the call site.
    """
    frames = list(frames)
    if not frames:
        return UNKNOWN_CALLER

    this_module, _ = pkgname(frames[0].name)

    for frame in frames:
        module, function = pkgname(frame.name)
        if module == this_module:
            continue
        if calling_module and module == calling_module:
            continue
        if stdlib_check(frame.filename):
            continue
        if not calling_module:
            calling_module = module
            continue
        return CallSite(function, frame.lineno)

    return UNKNOWN_CALLER


def resolve_caller(
    depth: int = DEFAULT_STACK_DEPTH,
    skip: int = DEFAULT_STACK_SKIP,
    calling_module: str = "",
) -> CallSite:
    """
    Locate the call site of the current log call.

    The first `skip` frames (this function and its caller) are never looked
    at; the next frame determines which module belongs to the formatter.
    Returns UNKNOWN_CALLER when no frame qualifies.
    """
    return select_call_site(capture_frames(depth, skip), calling_module=calling_module)
