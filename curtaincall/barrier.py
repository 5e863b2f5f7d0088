"""
Wait-for-N-of-M barrier over concurrent async calls.

All calls run concurrently and the barrier returns only after every one has
succeeded, failed or timed out. A timed-out call is a definitive failure for
that slot; partial results are never handed out early.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Tuple, Union


@dataclass(frozen=True)
class SlotOutcome:
    label: str
    value: Any = None
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class BarrierResult:
    outcomes: List[SlotOutcome]
    minimum: int

    @property
    def successes(self) -> List[SlotOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failures(self) -> List[SlotOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def satisfied(self) -> bool:
        """True when at least `minimum` calls succeeded."""
        return len(self.successes) >= self.minimum


async def _run_slot(label: str, call: Callable[[], Awaitable[Any]], timeout: float) -> SlotOutcome:
    try:
        value = await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        return SlotOutcome(label=label, error=f"timed out after {timeout:g}s", timed_out=True)
    except Exception as e:
        return SlotOutcome(label=label, error=f"{type(e).__name__}: {e}")
    return SlotOutcome(label=label, value=value)


async def gather_with_timeout(
    calls: Union[
        Mapping[str, Callable[[], Awaitable[Any]]],
        Iterable[Tuple[str, Callable[[], Awaitable[Any]]]],
    ],
    timeout: float,
    minimum: int = 1,
) -> BarrierResult:
    """
    Run labelled async calls concurrently and join on all of them.

    Args:
        calls: label -> zero-argument callable returning an awaitable, or
            (label, callable) pairs when labels may repeat
        timeout: Per-call timeout in seconds
        minimum: Successes needed for the result to count as satisfied

    Returns:
        BarrierResult with one outcome per call, in the order given
    """
    pairs = calls.items() if isinstance(calls, Mapping) else calls
    tasks = [_run_slot(label, call, timeout) for label, call in pairs]
    outcomes = await asyncio.gather(*tasks)
    return BarrierResult(outcomes=list(outcomes), minimum=minimum)
