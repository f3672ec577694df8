"""
Optional driver loading.

Backend drivers are optional extras. A driver that is not installed is
reported back as data so the caller can log a skip instead of failing.
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import logging
import sys
from dataclasses import dataclass
from types import ModuleType
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptionalModuleResult:
    """Either ``module`` or ``error`` is set, never both."""

    module: Optional[ModuleType] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.module is not None


def _exec_from_spec(specifier: str) -> ModuleType:
    spec = importlib.util.find_spec(specifier)
    if spec is None or spec.loader is None:
        raise ModuleNotFoundError(f"No module named {specifier!r}", name=specifier)
    module = importlib.util.module_from_spec(spec)
    sys.modules[specifier] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(specifier, None)
        raise
    return module


async def load_optional_module(specifier: str) -> OptionalModuleResult:
    """
    Try to import ``specifier`` without raising.

    The regular import system is tried first; if that fails the module is
    resolved from its spec and executed off the event loop. When both fail the
    first captured error is returned. A blank specifier is never imported and
    yields a ``ModuleNotFoundError``.
    """
    name = (specifier or "").strip()
    if not name:
        error = ModuleNotFoundError(f"Failed to load optional module: {specifier!r}")
        logger.debug("Optional module %r unavailable: %s", specifier, error)
        return OptionalModuleResult(error=error)

    try:
        return OptionalModuleResult(module=importlib.import_module(name))
    except Exception as e:
        first_error = e

    try:
        module = await asyncio.to_thread(_exec_from_spec, name)
        return OptionalModuleResult(module=module)
    except Exception as e:
        logger.debug("Spec loading of %s failed: %s", name, e)

    logger.debug("Optional module %s unavailable: %s", name, first_error)
    return OptionalModuleResult(error=first_error)
