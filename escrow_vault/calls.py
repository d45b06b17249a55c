"""Guarded calls into external collaborators."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, TypeVar

from .errors import ExternalCollaboratorUnavailable, VaultError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def guarded(awaitable: Awaitable[T], collaborator: str, timeout: float) -> T:
    """Await a collaborator call under ``timeout``.

    Vault errors pass through untouched; timeouts and any other failure are
    reported as ``ExternalCollaboratorUnavailable``.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except VaultError:
        raise
    except asyncio.TimeoutError as e:
        logger.error("%s timed out after %.1fs", collaborator, timeout)
        raise ExternalCollaboratorUnavailable(f"{collaborator} timed out") from e
    except Exception as e:
        logger.error("%s call failed: %s", collaborator, e)
        raise ExternalCollaboratorUnavailable(f"{collaborator} failed: {e}") from e


def describe(value: Any) -> str:
    """Short form of an address or identifier for log lines."""
    text = str(value)
    if len(text) > 16:
        return f"{text[:10]}...{text[-6:]}"
    return text
