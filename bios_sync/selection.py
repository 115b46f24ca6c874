"""
Candidate selection sources.

The reconciler only asks "which plan items should be applied" and "should
this orphan be replaced by that catalog entry". Concrete selectors answer
automatically, from a console prompt, or from a list of model keys on disk.
"""

import os
import select
import sys
import time
from pathlib import Path
from typing import Callable, List, Optional, Set

from .models import CatalogEntry, OrphanRecord, PlanItem, PlanStatus
from .reconciler import outdated_only, sort_for_selection


class CandidateSelector:
    """Base selector: update strictly outdated models, never touch orphans"""

    def select(self, plan: List[PlanItem]) -> List[PlanItem]:
        return outdated_only(plan)

    def confirm_orphan(self, orphan: OrphanRecord, entry: CatalogEntry) -> bool:
        return False


class AutoSelector(CandidateSelector):
    """Default mode"""


def parse_selection(text: str, count: int) -> List[int]:
    """
    Parse '1,3-5' / 'all' / '' into zero-based indexes.

    Raises:
        ValueError: On tokens that are not numbers or ranges within 1..count
    """
    text = text.strip().lower()
    if not text:
        return []
    if text in ("all", "*"):
        return list(range(count))

    indexes = []
    for token in text.replace(" ", ",").split(","):
        if not token:
            continue
        if "-" in token:
            start, end = token.split("-", 1)
            numbers = range(int(start), int(end) + 1)
        else:
            numbers = [int(token)]
        for number in numbers:
            if number < 1 or number > count:
                raise ValueError(f"{number} is not between 1 and {count}")
            if number - 1 not in indexes:
                indexes.append(number - 1)
    return indexes


class ConsoleSelector(CandidateSelector):
    """Lists every plan item and lets the operator pick by number"""

    def __init__(self, input_fn: Callable[[str], str] = input, output_fn: Callable[[str], None] = print):
        self.input_fn = input_fn
        self.output_fn = output_fn

    def select(self, plan: List[PlanItem]) -> List[PlanItem]:
        items = sort_for_selection(plan)
        if not items:
            return []

        self.output_fn("")
        self.output_fn(f"{'#':>4}  {'Status':<17} {'Model':<32} {'Local':<12} Catalog")
        for number, item in enumerate(items, start=1):
            local_version = item.local.version if item.local else "-"
            self.output_fn(
                f"{number:>4}  {item.status.value:<17} {item.model:<32} {local_version:<12} {item.entry.version}"
            )
        self.output_fn("")

        while True:
            try:
                answer = self.input_fn("Select models to update (e.g. 1,3-5, 'all', blank for none): ")
            except EOFError:
                self.output_fn("No input available, nothing selected")
                return []
            try:
                return [items[i] for i in parse_selection(answer, len(items))]
            except ValueError as e:
                self.output_fn(f"Invalid selection: {e}")

    def confirm_orphan(self, orphan: OrphanRecord, entry: CatalogEntry) -> bool:
        try:
            answer = self.input_fn(
                f"Replace orphan {orphan.path.name} with {entry.file_name} ({entry.model} {entry.version})? [y/N]: "
            )
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")


class FileListSelector(CandidateSelector):
    """Selects models listed one per line in a text file ('#' starts a comment)"""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.models = self._read_models()

    def _read_models(self) -> Set[str]:
        models = set()
        for line in self.path.read_text(encoding="utf-8").splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                models.add(line.lower())
        return models

    def select(self, plan: List[PlanItem]) -> List[PlanItem]:
        return [
            item for item in sort_for_selection(plan)
            if item.model.lower() in self.models and item.status != PlanStatus.UNKNOWN
        ]

    def confirm_orphan(self, orphan: OrphanRecord, entry: CatalogEntry) -> bool:
        return entry.model.lower() in self.models


def wait_for_keypress(timeout: int, stream=None, output_fn: Callable[[str], None] = print) -> bool:
    """
    Give the operator `timeout` seconds to press Enter.

    Returns:
        True if input arrived in time, False on timeout or non-interactive stdin
    """
    stream = stream or sys.stdin
    if timeout <= 0 or not hasattr(stream, "isatty") or not stream.isatty():
        return False

    output_fn(f"Press Enter within {timeout} seconds for interactive selection...")

    if os.name == "nt":
        import msvcrt

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if msvcrt.kbhit():
                msvcrt.getwch()
                return True
            time.sleep(0.1)
        return False

    ready, _, _ = select.select([stream], [], [], timeout)
    if ready:
        stream.readline()
        return True
    return False


def build_selector(
    interactive: bool = False,
    select_file: Optional[str] = None,
) -> CandidateSelector:
    if select_file:
        return FileListSelector(Path(select_file))
    if interactive:
        return ConsoleSelector()
    return AutoSelector()
