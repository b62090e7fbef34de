"""
Ordered fallback chains
A strategy is an async callable returning a value or None; the chain returns the
first non-None result.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from loguru import logger


@dataclass
class Strategy:
    name: str
    run: Callable[[], Awaitable[Optional[Any]]]


async def first_success(strategies: Sequence[Strategy], description: str = "data") -> Optional[Any]:
    """Try each strategy in order; the first one producing a result wins"""
    for strategy in strategies:
        result = await strategy.run()
        if result is not None:
            logger.debug(f"Resolved {description} via {strategy.name}")
            return result
        logger.debug(f"{strategy.name} found no {description}")
    return None
