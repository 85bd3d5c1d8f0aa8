"""Semantic target resolution against the live page"""

from dataclasses import dataclass, field
from typing import Any, Tuple

import fpl_meter_status.config as config
from fpl_meter_status.errors import SessionError
from fpl_meter_status.perception.strategies import LocatorStrategy


@dataclass(frozen=True)
class SemanticTarget:
    """A named intent ("the Confirm button") plus its ordered lookup strategies"""

    name: str
    strategies: Tuple[LocatorStrategy, ...]

    def __post_init__(self):
        if not self.strategies:
            raise ValueError(f"Target '{self.name}' needs at least one strategy")


@dataclass(frozen=True)
class Handle:
    """A resolved, visible element and the strategy that found it"""

    target: str
    strategy: str
    locator: Any

    def __bool__(self):
        return True


@dataclass(frozen=True)
class NotFound:
    """Every strategy for a target came up empty. Falsy, so `if not handle:` works"""

    target: str
    tried: Tuple[str, ...] = field(default_factory=tuple)

    def __bool__(self):
        return False

    @property
    def reason(self):
        return f"'{self.target}' not found after {len(self.tried)} strategies"


class Resolver:
    """Try each strategy of a target in order until one yields a visible element"""

    def __init__(self, page, timing=None):
        self.page = page
        self.timing = timing or config.TIMING

    @property
    def strategy_timeout(self):
        return self.timing["strategy_timeout"]

    async def resolve(self, target):
        """Return a Handle for the first strategy that matches, else NotFound

        Missing elements never raise. A closed page does, since no later
        strategy or step could succeed on it.
        """
        tried = []
        for strategy in target.strategies:
            locator = await strategy.locate(self.page, self.strategy_timeout)
            if locator is not None:
                if tried:
                    print(f"    '{target.name}' found via fallback {strategy.describe()}")
                return Handle(target=target.name, strategy=strategy.describe(), locator=locator)
            tried.append(strategy.describe())
            if self.page.is_closed():
                raise SessionError(f"Page closed while resolving '{target.name}'")
        return NotFound(target=target.name, tried=tuple(tried))
