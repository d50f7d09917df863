"""
Fire-and-log wrapper for effects that must never block or roll back the primary write
"""
import logging
from typing import Awaitable, Callable, TypeVar
from traffic_monitor.errors import RefreshWarning
from traffic_monitor.result import Ok, Err, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(effect: str, action: Callable[[], Awaitable[T]]) -> Result[T, RefreshWarning]:
    """
    Run a named secondary effect; failures become a logged RefreshWarning

    Args:
        effect: Human-readable effect name used in the log line
        action: Zero-argument coroutine function performing the effect

    Returns:
        Ok(value) on success, Err(RefreshWarning) on any failure
    """
    try:
        return Ok(await action())
    except Exception as e:
        warning = RefreshWarning(effect, e)
        logger.warning(f"Best-effort {warning}", exc_info=True)
        return Err(warning)
