"""
CDP Waiters - Event races and poll loops built on a CDPSession.

Both primitives guarantee a single outcome and release everything they
registered (listeners, attached futures, timers) on every exit path.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from thrall.cdp.client import CDPSession
from thrall.core.config import DEFAULT_TIMEOUT
from thrall.core.errors import CDPTimeoutError

logger = logging.getLogger("thrall")

T = TypeVar("T")

EventPredicate = Callable[[Dict[str, Any]], bool]
Trigger = Callable[[], Awaitable[Any]]


def resolve_timeout(timeout: Optional[float], default: float = DEFAULT_TIMEOUT) -> float:
    """
    Normalize a caller-supplied timeout in seconds.

    ``None`` and ``0`` select ``default``. Negative values become ``0``: the
    wait still performs one check before failing.
    """
    if timeout is None or timeout == 0:
        return default
    return max(float(timeout), 0.0)


async def wait_for_event(
    session: CDPSession,
    event: str,
    predicate: Optional[EventPredicate] = None,
    *,
    timeout: Optional[float] = None,
    trigger: Optional[Trigger] = None,
    description: Optional[str] = None,
    default_timeout: float = DEFAULT_TIMEOUT,
) -> Dict[str, Any]:
    """
    Wait for the first ``event`` whose params satisfy ``predicate``.

    The listener is registered before ``trigger`` runs, so an event caused by
    the trigger cannot be missed. The trigger shares the wait's deadline.

    Args:
        session: Session to listen on.
        event: CDP event name, e.g. "Page.loadEventFired".
        predicate: Optional filter over the event params.
        timeout: Seconds to wait; see ``resolve_timeout``.
        trigger: Coroutine function issuing the command that causes the event.
        description: What is being waited for, used in the timeout message.
        default_timeout: Applied when timeout is None or 0.

    Returns:
        The params of the matching event.

    Raises:
        CDPTimeoutError: No matching event arrived in time.
        CDPConnectionError: The session closed during the wait.
    """
    timeout = resolve_timeout(timeout, default_timeout)
    what = description or event
    future = asyncio.get_running_loop().create_future()

    def handler(params: Dict[str, Any]) -> None:
        if future.done():
            return
        try:
            matched = predicate is None or predicate(params)
        except Exception as e:
            future.set_exception(e)
            return
        if matched:
            future.set_result(params)

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout

    session.on(event, handler)
    try:
        session.attach_waiter(future)
        if trigger is not None:
            # Expiry cancels the trigger, which detaches its in-flight send.
            await asyncio.wait_for(trigger(), timeout)
        return await asyncio.wait_for(future, max(deadline - loop.time(), 0))
    except asyncio.TimeoutError as e:
        logger.warning(
            f"Timed out after {timeout}s waiting for {what}",
            extra={"event": event, "timeout": timeout}
        )
        raise CDPTimeoutError(
            f"Timeout waiting for {what} after {timeout}s",
            timeout=timeout,
            what=what,
            method=event,
        ) from e
    finally:
        session.off(event, handler)
        session.detach_waiter(future)
        if not future.done():
            future.cancel()
        elif not future.cancelled():
            # Consumed here when the trigger's own error is the one propagating.
            future.exception()


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    *,
    timeout: Optional[float] = None,
    interval: float = 0.1,
    description: str = "condition",
    accept: Callable[[T], bool] = bool,
    default_timeout: float = DEFAULT_TIMEOUT,
) -> T:
    """
    Call ``probe`` until ``accept`` approves its result or the deadline passes.

    The probe always runs at least once, even for a zero-length deadline.
    Errors raised by the probe propagate immediately.
    """
    timeout = resolve_timeout(timeout, default_timeout)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0

    while True:
        attempts += 1
        result = await probe()
        if accept(result):
            return result

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.warning(
                f"Timed out after {timeout}s waiting for {description}",
                extra={"timeout": timeout, "attempts": attempts}
            )
            raise CDPTimeoutError(
                f"Timeout waiting for {description} after {timeout}s",
                timeout=timeout,
                what=description,
                attempts=attempts,
            )

        await asyncio.sleep(min(interval, remaining))
