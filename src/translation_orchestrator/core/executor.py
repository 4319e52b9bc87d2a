import asyncio
from functools import partial


async def run_blocking(func, *args, timeout: float, **kwargs):
    """
    Run a blocking SDK call in the default executor with a deadline.

    Raises:
        asyncio.TimeoutError: if the call does not finish within `timeout`
    """
    loop = asyncio.get_event_loop()
    return await asyncio.wait_for(
        loop.run_in_executor(None, partial(func, *args, **kwargs)),
        timeout=timeout,
    )
