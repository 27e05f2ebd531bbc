"""
Deferred-call helper.

Some listings are exposed as future-returning calls so callers can treat
them like asynchronous work. The work itself runs synchronously in the
calling thread; the returned Future is already completed.
"""
from concurrent.futures import Future


def completed_future(func, *args, **kwargs) -> Future:
    """Run `func` now and wrap its result (or its exception) in a done Future."""
    future = Future()
    try:
        result = func(*args, **kwargs)
    except Exception as exc:
        future.set_exception(exc)
    else:
        future.set_result(result)
    return future
