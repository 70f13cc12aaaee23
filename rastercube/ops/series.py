"""Member dispatch for series of cubes or stacks."""

from __future__ import annotations

from typing import Callable

from rastercube.exceptions import InvalidArgument

MEMBER_KINDS = ("stack", "raster")


def for_member_kind(member_kind: str, raster_fn: Callable, stack_fn: Callable) -> Callable:
    """Pick the per-member function for a series tagged with *member_kind*."""
    if member_kind == "stack":
        return stack_fn
    if member_kind == "raster":
        return raster_fn
    raise InvalidArgument(
        f"member_kind must be one of {list(MEMBER_KINDS)}, got {member_kind!r}"
    )
