"""
Provider Fallback Chain.

Tries interchangeable generation providers for one generation kind in a
fixed priority order and returns the first success. Each provider gets
exactly one bounded attempt per traversal; a timeout counts as a failure,
and so does a result the caller's `accept` predicate rejects. When every
provider has failed the chain returns an exhausted outcome instead of
raising, so the caller can apply its own terminal policy.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from .. import metrics

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER_TIMEOUT = 300.0  # seconds


class GenerationKind(str, Enum):
    CHARACTERS = "characters"
    PHOTOS = "photos"
    VIDEO = "video"


class ProviderHandle(BaseModel):
    """One provider in a chain: a name, the tag it stamps on results, and the call."""
    model_config = ConfigDict(frozen=True)

    name: str
    call: Callable[[Any], Awaitable[Any]]
    tag: Optional[str] = None
    timeout: float = DEFAULT_PROVIDER_TIMEOUT


class ProviderFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    error_type: str
    message: str


class ChainOutcome(BaseModel):
    kind: GenerationKind
    value: Any = None
    provider: Optional[ProviderHandle] = None
    failures: list[ProviderFailure] = Field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.provider is None

    @property
    def provider_tag(self) -> Optional[str]:
        if self.provider is None:
            return None
        return self.provider.tag or self.provider.name


class FallbackChain:
    """
    Ordered provider list for a single generation kind.

    Usage:
        chain = FallbackChain(GenerationKind.VIDEO, [runway_handle, replicate_handle])
        outcome = await chain.run(request, accept=lambda r: r.is_usable)
        if outcome.exhausted:
            ...
    """

    def __init__(self, kind: GenerationKind, providers: list[ProviderHandle]):
        self.kind = kind
        self._providers = list(providers)

    @property
    def providers(self) -> list[ProviderHandle]:
        return list(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    async def run(
        self,
        request: Any,
        before_attempt: Optional[Callable[[], None]] = None,
        accept: Optional[Callable[[Any], bool]] = None,
    ) -> ChainOutcome:
        """
        Attempt each provider once, in order.

        Args:
            request:        The payload handed unchanged to every provider.
            before_attempt: Optional hook invoked before each network call;
                            raising from it aborts the traversal.
            accept:         Optional predicate over a provider's return value;
                            a rejected value is recorded as that provider's
                            failure and the traversal moves on.
        """
        outcome = ChainOutcome(kind=self.kind)

        for handle in self._providers:
            if before_attempt is not None:
                before_attempt()

            logger.info(f"[{self.kind.value}] Attempting provider {handle.name}")
            started = time.monotonic()
            try:
                value = await asyncio.wait_for(handle.call(request), timeout=handle.timeout)
            except asyncio.TimeoutError:
                self._record_failure(outcome, handle, "timeout",
                                     f"no result within {handle.timeout:.0f}s", started)
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._record_failure(outcome, handle, type(e).__name__, str(e), started)
                continue

            if accept is not None and not accept(value):
                self._record_failure(outcome, handle, "rejected",
                                     "returned an unfinished or empty result", started)
                continue

            elapsed_ms = (time.monotonic() - started) * 1000
            metrics.record_provider_attempt(self.kind.value, handle.name, True, elapsed_ms)
            logger.info(f"[{self.kind.value}] Provider {handle.name} succeeded in {elapsed_ms:.0f}ms")
            outcome.value = value
            outcome.provider = handle
            return outcome

        logger.warning(
            f"[{self.kind.value}] All {len(self._providers)} provider(s) exhausted: "
            f"{[f.provider for f in outcome.failures]}"
        )
        metrics.inc_counter(f"chains.{self.kind.value}.exhausted")
        return outcome

    def _record_failure(
        self,
        outcome: ChainOutcome,
        handle: ProviderHandle,
        error_type: str,
        message: str,
        started: float,
    ):
        elapsed_ms = (time.monotonic() - started) * 1000
        outcome.failures.append(ProviderFailure(provider=handle.name, error_type=error_type, message=message))
        metrics.record_provider_attempt(self.kind.value, handle.name, False, elapsed_ms)
        metrics.record_error(f"provider.{handle.name}", error_type, message)
        logger.error(f"[{self.kind.value}] Provider {handle.name} failed ({error_type}): {message}")
