from __future__ import annotations

from typing import Iterable


class FilterPolicy:
    """Decides which transactions are instrumented.

    Skipped paths bypass every metric; ignored status codes only drop the
    outcome metrics (request count, duration, cache results). The exposition
    path is tracked separately from ``skip_paths`` so reconfiguring one never
    affects the other.
    """

    def __init__(self) -> None:
        self.skip_paths: set[str] = set()
        self.ignore_status_codes: set[int] = set()
        self.exposition_path: str | None = None

    def add_skip_paths(self, paths: Iterable[str]) -> None:
        if isinstance(paths, str):
            paths = [paths]
        self.skip_paths.update(paths)

    def add_ignore_status_codes(self, codes: Iterable[int]) -> None:
        self.ignore_status_codes.update(int(code) for code in codes)

    def skips_path(self, path: str) -> bool:
        if self.exposition_path is not None and path == self.exposition_path:
            return True
        return path in self.skip_paths

    def records_status(self, status_code: int) -> bool:
        return status_code not in self.ignore_status_codes
