"""
Suggestion pipeline orchestration.

Composes cache, governor, context capture and the remote dispatcher into
the single entry point consumed by a terminal UI.

Pipeline order:
1. Enabled and minimum-length checks
2. Cache lookup
3. Governor check
4. Context snapshot and direct match
5. Prompt build and remote dispatch
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .context import CommandHistory, ContextSnapshot, ContextSummary, build_snapshot
from .governor import GovernorDecision, UsageGovernor, UsageStats
from .pricing import ModelPricing
from .prompt import build_prompt, direct_match, summarize
from ai_suggest.config.loader import AppConfig
from ai_suggest.sdk.gemini_client import CredentialRotatingDispatcher, CredentialsExhaustedError
from ai_suggest.storage.cache import SuggestionCache
from ai_suggest.storage.store import PersistentStore

logger = logging.getLogger(__name__)


class SuggestionOutcome(Enum):
    """Terminal state of one pipeline run."""
    DISABLED = "disabled"
    TOO_SHORT = "too_short"
    CACHE_HIT = "cache_hit"
    RATE_LIMITED = "rate_limited"
    DIRECT_MATCH = "direct_match"
    REMOTE = "remote"
    NO_CANDIDATE = "no_candidate"
    DISPATCH_FAILED = "dispatch_failed"


@dataclass(frozen=True)
class SuggestionResult:
    """Outcome of a pipeline run and the suggestion, if any."""
    outcome: SuggestionOutcome
    suggestion: Optional[str] = None
    reason: Optional[str] = None


SnapshotFactory = Callable[[Optional[str], tuple], ContextSnapshot]


class SuggestionService:
    """Single entry point for suggestions.

    Not safe for concurrent use: the UI is expected to debounce keystrokes
    and run at most one request at a time.
    """

    def __init__(
        self,
        cache: SuggestionCache,
        governor: UsageGovernor,
        dispatcher: CredentialRotatingDispatcher,
        history: Optional[CommandHistory] = None,
        snapshot_factory: Optional[SnapshotFactory] = None,
        enabled: bool = True,
        min_input_length: int = 3,
        max_suggestion_length: int = 30,
        prompt_recent_commands: int = 3,
        cwd: Optional[str] = None,
    ):
        if min_input_length < 0:
            raise ValueError("min_input_length must be >= 0")
        if max_suggestion_length <= 0:
            raise ValueError("max_suggestion_length must be > 0")

        self.cache = cache
        self.governor = governor
        self.dispatcher = dispatcher
        self.history = history or CommandHistory()
        self.snapshot_factory = snapshot_factory or (
            lambda cwd, recent: build_snapshot(cwd, recent)
        )
        self.enabled = enabled
        self.min_input_length = min_input_length
        self.max_suggestion_length = max_suggestion_length
        self.prompt_recent_commands = prompt_recent_commands
        self.cwd = cwd

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        cwd: Optional[str] = None,
        clock: Callable[[], float] = time.time,
        dispatcher: Optional[CredentialRotatingDispatcher] = None,
    ) -> "SuggestionService":
        """Wire every component from configuration.

        Raises:
            ConfigurationError: If no credentials are configured
        """
        config.require_credentials()

        governor = UsageGovernor(
            PersistentStore(config.usage.path),
            daily_limit=config.usage.daily_limit,
            cooldown_seconds=config.usage.cooldown_seconds,
            pricing=ModelPricing.from_rates(
                config.usage.input_cost_per_million,
                config.usage.output_cost_per_million,
            ),
            clock=clock,
        )
        cache = SuggestionCache(
            PersistentStore(config.cache.path),
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
            enabled=config.cache.enabled,
            clock=clock,
            on_hit=governor.record_cache_hit,
        )
        if dispatcher is None:
            dispatcher = CredentialRotatingDispatcher(
                config.api.url,
                config.api.credentials,
                timeout=config.api.timeout_seconds,
                credential_header=config.api.credential_header,
            )

        ctx = config.context

        def snapshot_factory(directory, recent):
            return build_snapshot(
                directory,
                recent,
                max_entries=ctx.max_directory_entries,
                probe_timeout=ctx.probe_timeout_seconds,
            )

        return cls(
            cache=cache,
            governor=governor,
            dispatcher=dispatcher,
            history=CommandHistory(ctx.max_recent_commands),
            snapshot_factory=snapshot_factory,
            enabled=config.suggestions.enabled,
            min_input_length=config.suggestions.min_input_length,
            max_suggestion_length=config.suggestions.max_suggestion_length,
            prompt_recent_commands=ctx.prompt_recent_commands,
            cwd=cwd,
        )

    def snapshot(self) -> ContextSnapshot:
        return self.snapshot_factory(self.cwd, self.history.recent())

    def resolve(self, user_input: str) -> SuggestionResult:
        """Run the pipeline for ``user_input`` and report how it ended.

        Remote failures never raise; they end in NO_CANDIDATE or
        DISPATCH_FAILED.
        """
        if not self.enabled:
            return SuggestionResult(SuggestionOutcome.DISABLED)

        if len(user_input.strip()) < self.min_input_length:
            return SuggestionResult(SuggestionOutcome.TOO_SHORT)

        cached = self.cache.get(user_input)
        if cached is not None:
            return SuggestionResult(SuggestionOutcome.CACHE_HIT, cached)

        decision = self.governor.check()
        if decision != GovernorDecision.ALLOW:
            logger.debug("Remote call denied: %s", decision.name)
            return SuggestionResult(SuggestionOutcome.RATE_LIMITED, reason=decision.name)

        try:
            snapshot = self.snapshot()

            # Free, so neither cached nor counted.
            matched = direct_match(user_input, snapshot)
            if matched is not None:
                return SuggestionResult(SuggestionOutcome.DIRECT_MATCH, matched)

            prompt = build_prompt(
                user_input,
                snapshot,
                snapshot.recent_commands,
                max_suggestion_length=self.max_suggestion_length,
                max_recent_commands=self.prompt_recent_commands,
            )
            completion = self.dispatcher.complete(prompt)
        except CredentialsExhaustedError as e:
            logger.warning("Suggestion request failed: %s", e)
            return SuggestionResult(SuggestionOutcome.DISPATCH_FAILED, reason=str(e))
        except Exception as e:
            logger.warning("Suggestion pipeline error: %s", e, exc_info=True)
            return SuggestionResult(SuggestionOutcome.DISPATCH_FAILED, reason=str(e))

        if completion is None:
            return SuggestionResult(SuggestionOutcome.NO_CANDIDATE)

        suggestion = completion.text[:self.max_suggestion_length]
        self.cache.set(user_input, suggestion)
        self.governor.record_request(completion.usage.total_tokens)
        return SuggestionResult(SuggestionOutcome.REMOTE, suggestion)

    def get_suggestion(self, user_input: str) -> Optional[str]:
        """Suggestion text for ``user_input``, or None."""
        return self.resolve(user_input).suggestion

    def get_usage_stats(self) -> UsageStats:
        return self.governor.get_stats()

    def get_context_summary(self) -> ContextSummary:
        return summarize(self.snapshot(), self.prompt_recent_commands)

    def record_executed_command(self, command: str) -> None:
        """Feed an executed command into the recent-command history."""
        self.history.add(command)

    def clear_cache(self) -> None:
        self.cache.clear()

    def reset_usage_stats(self) -> None:
        self.governor.reset()

    def close(self) -> None:
        self.dispatcher.close()
