import pytest

from codegraph.embedding.model_gateway import ModelGateway, RetryPolicy
from codegraph.exceptions import ThrottlingError, ThrottlingExhaustedError, UpstreamFatalError


class ScriptedCompletionProvider:
    """Raises the scripted errors in order, then answers."""

    def __init__(self, errors, answer="ok"):
        self.errors = list(errors)
        self.answer = answer
        self.calls = []

    def complete(self, system_prompt, messages):
        self.calls.append((system_prompt, messages))
        if self.errors:
            raise self.errors.pop(0)
        return self.answer


class AlwaysThrottled:
    def __init__(self):
        self.calls = 0

    def complete(self, system_prompt, messages):
        self.calls += 1
        raise ThrottlingError("slow down")


class TestModelGateway:
    """Test throttling retries and pacing."""

    def test_retries_after_throttling(self, embedding_provider, sleeps):
        """Two throttled calls then success: two full pauses, no error surfaced."""
        provider = ScriptedCompletionProvider([ThrottlingError("429"), ThrottlingError("429")])
        gateway = ModelGateway(provider, embedding_provider, RetryPolicy(pause_seconds=2.5), sleep=sleeps.append)

        messages = [{"role": "user", "content": "hello"}]
        assert gateway.complete("system", messages) == "ok"
        assert sleeps == [2.5, 2.5]
        assert len(provider.calls) == 3
        assert all(call == ("system", messages) for call in provider.calls)

    def test_other_errors_propagate_immediately(self, embedding_provider, sleeps):
        """A non-throttling failure is not retried."""
        provider = ScriptedCompletionProvider([ValueError("bad request")])
        gateway = ModelGateway(provider, embedding_provider, sleep=sleeps.append)

        with pytest.raises(ValueError):
            gateway.complete("system", [])
        assert sleeps == []
        assert len(provider.calls) == 1

    def test_fatal_upstream_error_is_not_retried(self, embedding_provider, sleeps):
        provider = ScriptedCompletionProvider([UpstreamFatalError("invalid key")])
        gateway = ModelGateway(provider, embedding_provider, sleep=sleeps.append)

        with pytest.raises(UpstreamFatalError):
            gateway.complete("system", [])
        assert sleeps == []

    def test_max_attempts_bound(self, embedding_provider, sleeps):
        """With a bound configured, the last throttled attempt raises."""
        provider = AlwaysThrottled()
        gateway = ModelGateway(provider, embedding_provider, RetryPolicy(pause_seconds=1.0, max_attempts=3),
                               sleep=sleeps.append)

        with pytest.raises(ThrottlingExhaustedError) as excinfo:
            gateway.complete("system", [])
        assert excinfo.value.attempts == 3
        assert provider.calls == 3
        assert sleeps == [1.0, 1.0]

    def test_embedding_calls_share_the_retry_loop(self, completion_provider, sleeps):
        class FlakyEmbedding:
            def __init__(self):
                self.calls = 0

            def embed_text(self, text):
                self.calls += 1
                if self.calls == 1:
                    raise ThrottlingError("429")
                return [1.0, 0.0]

            def get_dimension(self):
                return 2

        gateway = ModelGateway(completion_provider, FlakyEmbedding(), sleep=sleeps.append)
        assert gateway.embed("text") == [1.0, 0.0]
        assert gateway.dimension == 2
        assert sleeps == [2.5]

    def test_min_interval_paces_consecutive_calls(self, completion_provider, embedding_provider, sleeps):
        """Calls closer together than the minimum interval wait for the remainder."""
        gateway = ModelGateway(completion_provider, embedding_provider, min_interval_seconds=1.0,
                               sleep=sleeps.append, clock=lambda: 10.0)

        gateway.embed("first")
        gateway.embed("second")
        assert sleeps == [1.0]


class TestRetryPolicy:
    """Test pause computation."""

    def test_default_is_fixed_and_unbounded(self):
        policy = RetryPolicy()
        assert [policy.pause_for(n) for n in (1, 2, 10)] == [2.5, 2.5, 2.5]
        assert not policy.exhausted(1000)

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(pause_seconds=1.0, backoff_multiplier=2.0, max_pause_seconds=3.0)
        assert [policy.pause_for(n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 3.0, 3.0]

    def test_jitter_stays_within_bound(self):
        policy = RetryPolicy(pause_seconds=1.0, jitter_seconds=0.5)
        for retry in range(1, 20):
            assert 1.0 <= policy.pause_for(retry) <= 1.5
