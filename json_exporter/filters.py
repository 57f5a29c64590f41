from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class NameFilter:
    """Blacklist/whitelist gate for exported metric names. Blacklist wins."""

    blacklist: Optional[re.Pattern[str]] = None
    whitelist: Optional[re.Pattern[str]] = None

    def allow(self, name: str) -> bool:
        if self.blacklist is not None and self.blacklist.search(name):
            return False
        if self.whitelist is not None and not self.whitelist.search(name):
            return False
        return True
