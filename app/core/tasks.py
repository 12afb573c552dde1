from typing import Any, Callable, Optional
from fastapi import BackgroundTasks


def run_after_commit(
    background_tasks: Optional[BackgroundTasks],
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any
) -> None:
    """
    Schedules post-commit work.

    Inside a request the work is handed to FastAPI's BackgroundTasks and runs
    after the response is sent. Without a request (direct service use, tests)
    it runs right away, which is still after the caller's commit.
    """
    if background_tasks is not None:
        background_tasks.add_task(func, *args, **kwargs)
    else:
        func(*args, **kwargs)
