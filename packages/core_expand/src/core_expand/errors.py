from __future__ import annotations

from typing import Iterable, Iterator, Mapping, Sequence


class ExpandError(Exception):
    """Base class for everything the expansion engine and its providers raise."""


class PayloadDecodeError(ExpandError):
    """Bytes could not be turned into a tree value."""


class PayloadEncodeError(ExpandError):
    """A tree value could not be serialized."""


class FetchError(ExpandError):
    """A single entry could not be read (backend failure or absence)."""

    def __init__(self, key: str, message: str | None = None):
        self.key = key
        super().__init__(message or f"fetch failed for {key!r}")


class EntryNotFound(FetchError):
    """Neither the cache nor the remote origin holds *key*."""

    def __init__(self, key: str):
        super().__init__(key, f"entry not found: {key!r}")


class BatchFetchError(ExpandError):
    """
    A batched read failed, wholly or for some keys.

    ``partial`` carries whatever was read successfully (keyed by normalized
    key) so callers can keep going with the available subset.
    """

    def __init__(
        self,
        keys: Sequence[str],
        message: str | None = None,
        *,
        partial: Mapping[str, bytes] | None = None,
    ):
        self.keys = tuple(keys)
        self.partial: dict[str, bytes] = dict(partial or {})
        super().__init__(message or f"batch fetch failed for {len(self.keys)} key(s)")


class ExpansionErrors(ExpandError):
    """Aggregate of the non-fatal errors collected during one expansion."""

    def __init__(self, errors: Iterable[BaseException]):
        self.errors: tuple[BaseException, ...] = tuple(flatten_errors(errors))
        super().__init__(self._render())

    def _render(self) -> str:
        n = len(self.errors)
        head = f"{n} error{'s' if n != 1 else ''} occurred during expansion"
        return head + "".join(f"\n\t* {type(e).__name__}: {e}" for e in self.errors)

    def __iter__(self) -> Iterator[BaseException]:
        return iter(self.errors)

    def __len__(self) -> int:
        return len(self.errors)


def flatten_errors(errors: Iterable[BaseException | None]) -> list[BaseException]:
    """Merge errors and nested aggregates into one flat list; ``None`` is skipped."""
    out: list[BaseException] = []
    for err in errors:
        if err is None:
            continue
        if isinstance(err, ExpansionErrors):
            out.extend(err.errors)
        else:
            out.append(err)
    return out


__all__ = [
    "ExpandError",
    "PayloadDecodeError",
    "PayloadEncodeError",
    "FetchError",
    "EntryNotFound",
    "BatchFetchError",
    "ExpansionErrors",
    "flatten_errors",
]
