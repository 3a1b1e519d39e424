"""In-memory model registry for agent components."""
import asyncio
from typing import Any, Callable, Dict

_REGISTRY: Dict[str, Callable[..., Any]] = {}


def bind_model(key: str, fn: Callable[..., Any]) -> None:
    """Bind a callable implementation to a registry key."""
    _REGISTRY[key] = fn


def get_model(key: str) -> Callable[..., Any]:
    """Retrieve a callable from the registry.

    Raises:
        KeyError: If no callable has been bound for ``key``.
    """

    if key not in _REGISTRY:
        raise KeyError(f"Model not bound in registry: {key}")
    return _REGISTRY[key]


def unbind_model(key: str) -> None:
    _REGISTRY.pop(key, None)


async def ainvoke(key: str, **kwargs: Any) -> Any:
    """Call the bound model without blocking the event loop.

    Coroutine functions are awaited directly; plain callables run in a worker
    thread so blocking HTTP transports stay off the loop.
    """

    fn = get_model(key)
    if asyncio.iscoroutinefunction(fn):
        return await fn(**kwargs)
    return await asyncio.to_thread(fn, **kwargs)


ADVISOR_KEY = "models.advisor"
TOPIC_OVERLAP_KEY = "models.topic_overlap"
SUMMARY_KEY = "models.question_summary"
INTERVIEWER_KEY = "models.interviewer"
RESPONDENT_KEY = "models.respondent"
ADDITIONAL_QUESTIONS_KEY = "models.additional_questions"
