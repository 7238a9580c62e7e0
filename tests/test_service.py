"""
Tests for the suggestion pipeline.
"""
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import Mock

import httpx
import pytest
import yaml

from ai_suggest.config.loader import ConfigurationError, load_config
from ai_suggest.core.context import ContextSnapshot, ManifestState, VcsState
from ai_suggest.core.governor import UsageGovernor
from ai_suggest.core.service import SuggestionOutcome, SuggestionService
from ai_suggest.core.token_counter import TokenUsage
from ai_suggest.sdk.gemini_client import (
    Completion,
    CredentialRotatingDispatcher,
    CredentialsExhaustedError,
)
from ai_suggest.storage.cache import SuggestionCache
from ai_suggest.storage.store import PersistentStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


PYPROJECT = ManifestState(ecosystem="python", filename="pyproject.toml", name="tool")
REPO = VcsState(is_repo=True, branch="main")


class TestSuggestionService:
    """Test orchestration states and side effects."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.clock = FakeClock(datetime(2024, 3, 15, 12, 0, 0).timestamp())
        self.governor = UsageGovernor(
            PersistentStore(os.path.join(self.temp_dir, "usage.json")),
            daily_limit=100,
            cooldown_seconds=5,
            clock=self.clock,
        )
        self.cache = SuggestionCache(
            PersistentStore(os.path.join(self.temp_dir, "cache.json")),
            ttl_seconds=3600,
            max_entries=100,
            clock=self.clock,
            on_hit=self.governor.record_cache_hit,
        )
        self.dispatcher = Mock(spec=CredentialRotatingDispatcher)
        self.snapshots = []
        self.context = ContextSnapshot(path=Path("/work/tool"), manifest=PYPROJECT)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _snapshot_factory(self, cwd, recent):
        snap = ContextSnapshot(
            path=self.context.path,
            entries=self.context.entries,
            vcs=self.context.vcs,
            manifest=self.context.manifest,
            recent_commands=tuple(recent),
        )
        self.snapshots.append(snap)
        return snap

    def _service(self, **kwargs) -> SuggestionService:
        return SuggestionService(
            cache=self.cache,
            governor=self.governor,
            dispatcher=self.dispatcher,
            snapshot_factory=self._snapshot_factory,
            **kwargs,
        )

    def _reply(self, text="npm install", tokens=20):
        self.dispatcher.complete.return_value = Completion(text=text, usage=TokenUsage(tokens))

    def test_disabled_has_no_side_effects(self):
        """Test disabled suggestions short-circuit."""
        result = self._service(enabled=False).resolve("npm inst")

        assert result.outcome == SuggestionOutcome.DISABLED
        assert result.suggestion is None
        self.dispatcher.complete.assert_not_called()
        assert self.snapshots == []

    @pytest.mark.parametrize("text", ["", "n", "np", "  np  "])
    def test_short_input_touches_nothing(self, text):
        """Test short inputs skip cache, governor and dispatcher."""
        self.cache.get = Mock()
        self.governor.check = Mock()

        result = self._service(min_input_length=3).resolve(text)

        assert result.outcome == SuggestionOutcome.TOO_SHORT
        self.cache.get.assert_not_called()
        self.governor.check.assert_not_called()
        self.dispatcher.complete.assert_not_called()

    def test_end_to_end_remote_suggestion(self):
        """Test a fresh process dispatches once and caches the result."""
        self._reply("npm install", tokens=20)
        service = self._service()

        assert service.get_suggestion("npm inst") == "npm install"

        self.dispatcher.complete.assert_called_once()
        assert "npm inst" in self.cache
        assert self.cache.get("npm inst") == "npm install"
        stats = service.get_usage_stats()
        assert stats.total_requests == 1
        assert stats.cached_hits == 1  # the lookup just above

    def test_end_to_end_counters_before_any_hit(self):
        """Test a single remote request leaves no cache hits."""
        self._reply("npm install")
        service = self._service()

        service.get_suggestion("npm inst")

        stats = service.get_usage_stats()
        assert stats.total_requests == 1
        assert stats.cached_hits == 0
        with open(os.path.join(self.temp_dir, "cache.json"), encoding='utf-8') as f:
            assert json.load(f)["npm inst"]["suggestion"] == "npm install"

    def test_repeated_input_uses_cache(self):
        """Test the same input within ttl is served from cache."""
        self._reply("docker compose up")
        service = self._service()

        first = service.get_suggestion("docker comp")
        self.dispatcher.complete.side_effect = CredentialsExhaustedError(1)
        second = service.resolve(" Docker Comp ")

        assert first == "docker compose up"
        assert second.outcome == SuggestionOutcome.CACHE_HIT
        assert second.suggestion == first
        assert self.dispatcher.complete.call_count == 1

    def test_governor_denial_has_no_side_effects(self):
        """Test rate limiting stops before context capture."""
        self._reply("make test")
        service = self._service()
        service.get_suggestion("make te")

        result = service.resolve("cargo b")

        assert result.outcome == SuggestionOutcome.RATE_LIMITED
        assert result.reason == "COOLDOWN"
        assert len(self.snapshots) == 1
        assert self.dispatcher.complete.call_count == 1

    def test_daily_limit_denial(self):
        """Test quota exhaustion yields no suggestion."""
        governor = UsageGovernor(
            PersistentStore(os.path.join(self.temp_dir, "limited.json")),
            daily_limit=1, cooldown_seconds=0, clock=self.clock,
        )
        governor.record_request()
        service = SuggestionService(
            self.cache, governor, self.dispatcher, snapshot_factory=self._snapshot_factory
        )

        result = service.resolve("terraform pl")

        assert result.outcome == SuggestionOutcome.RATE_LIMITED
        assert result.reason == "DAILY_LIMIT"

    def test_direct_match_skips_dispatch_cache_and_usage(self):
        """Test canonical commands are free."""
        self.context = ContextSnapshot(path=Path("/work/repo"), vcs=REPO)
        service = self._service(min_input_length=2)

        result = service.resolve("gi")

        assert result.outcome == SuggestionOutcome.DIRECT_MATCH
        assert result.suggestion == "git status"
        self.dispatcher.complete.assert_not_called()
        assert len(self.cache) == 0
        assert service.get_usage_stats().total_requests == 0

    def test_prompt_includes_context_and_history(self):
        """Test the dispatched prompt carries context signals."""
        self._reply("pytest -x")
        service = self._service()
        service.record_executed_command("pip install -e .")

        service.get_suggestion("pytest --l")

        prompt = self.dispatcher.complete.call_args[0][0]
        assert '"tool" directory' in prompt
        assert 'python project "tool"' in prompt
        assert "Recent commands: pip install -e .." in prompt
        assert 'User input: "pytest --l"' in prompt

    def test_suggestion_truncated(self):
        """Test remote text is cut to the maximum length before caching."""
        self._reply("kubectl get pods --all-namespaces --watch")
        service = self._service(max_suggestion_length=10)

        assert service.get_suggestion("kubectl g") == "kubectl ge"
        assert self.cache.get("kubectl g") == "kubectl ge"

    def test_usage_recorded_with_tokens(self):
        """Test the reported token count feeds the cost estimate."""
        self._reply("npm install", tokens=1_000_000)
        service = self._service()

        service.get_suggestion("npm inst")

        assert service.get_usage_stats().estimated_cost == 0.000375

    def test_no_candidate_is_not_cached(self):
        """Test an empty response yields nothing and records nothing."""
        self.dispatcher.complete.return_value = None
        service = self._service()

        result = service.resolve("npm inst")

        assert result.outcome == SuggestionOutcome.NO_CANDIDATE
        assert len(self.cache) == 0
        assert service.get_usage_stats().total_requests == 0

    def test_dispatch_exhaustion_swallowed(self):
        """Test credential exhaustion yields no suggestion."""
        self.dispatcher.complete.side_effect = CredentialsExhaustedError(2, RuntimeError("quota"))
        service = self._service()

        result = service.resolve("npm inst")

        assert result.outcome == SuggestionOutcome.DISPATCH_FAILED
        assert result.suggestion is None
        assert len(self.cache) == 0

    def test_unexpected_error_swallowed(self):
        """Test any pipeline exception yields no suggestion."""
        def broken(cwd, recent):
            raise RuntimeError("boom")

        service = SuggestionService(
            self.cache, self.governor, self.dispatcher, snapshot_factory=broken
        )

        assert service.get_suggestion("npm inst") is None

    def test_context_summary(self):
        """Test the display summary reflects recorded commands."""
        service = self._service()
        for command in ["a", "b", "c", "d"]:
            service.record_executed_command(command)

        summary = service.get_context_summary()

        assert summary.directory == "tool"
        assert summary.project_type == "python"
        assert summary.recent_commands == ["d", "c", "b"]

    def test_clear_cache_and_reset_usage(self):
        """Test maintenance operations."""
        self._reply("npm install")
        service = self._service()
        service.get_suggestion("npm inst")

        service.clear_cache()
        service.reset_usage_stats()

        assert len(self.cache) == 0
        assert service.get_usage_stats().total_requests == 0
        assert self.governor.can_make_request() is True


class TestFromConfig:
    """Test wiring from configuration."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _config(self, credentials):
        path = os.path.join(self.temp_dir, "config.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump({
                "cache": {"path": os.path.join(self.temp_dir, "cache.json")},
                "usage": {"path": os.path.join(self.temp_dir, "usage.json")},
                "api": {"credentials": credentials, "url": "https://example.test/gen"},
            }, f)
        return load_config(path, env={}, require_credentials=False)

    def test_missing_credentials_fatal(self):
        """Test the service refuses to start without credentials."""
        with pytest.raises(ConfigurationError):
            SuggestionService.from_config(self._config([]))

    def test_end_to_end_over_http(self):
        """Test the wired pipeline against a mock endpoint."""
        calls = []

        def handler(request):
            calls.append(request.headers["X-goog-api-key"])
            return httpx.Response(200, json={
                "candidates": [{"content": {"parts": [{"text": "npm install"}]}}],
                "usageMetadata": {"totalTokenCount": 15},
            })

        config = self._config(["only-key"])
        dispatcher = CredentialRotatingDispatcher(
            config.api.url,
            config.api.credentials,
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        workdir = Path(self.temp_dir) / "proj"
        workdir.mkdir()
        (workdir / "pyproject.toml").write_text('[project]\nname = "proj"\n')

        service = SuggestionService.from_config(config, cwd=str(workdir), dispatcher=dispatcher)

        assert service.get_suggestion("npm inst") == "npm install"
        assert calls == ["only-key"]
        stats = service.get_usage_stats()
        assert stats.total_requests == 1
        assert stats.cached_hits == 0
        assert "npm inst" in service.cache
