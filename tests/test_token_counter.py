import pytest

from shared.config import ConfigurationError
from shared.schemas import ConversationMessage
from tokenization import TokenCounter, estimate_tokens, get_counter

SAMPLE = "Mira tightened the saddle straps and looked north, toward the storm."


@pytest.mark.parametrize("scheme", ["cl100k_base", "o200k_base", "gemini", "claude", "estimate", ""])
def test_supported_schemes_count_deterministically(scheme):
    counter = TokenCounter(scheme)
    first = counter.count(SAMPLE)
    assert first > 0
    assert counter.count(SAMPLE) == first


def test_unknown_scheme_fails_at_construction():
    with pytest.raises(ConfigurationError):
        TokenCounter("no-such-tokenizer")


def test_empty_scheme_is_approximate():
    counter = TokenCounter("")
    assert counter.scheme == "estimate"
    assert counter.is_approximate


def test_approximate_schemes_never_undercount():
    exact = TokenCounter("cl100k_base")
    for scheme in ("gemini", "claude", "estimate"):
        approx = TokenCounter(scheme)
        for text in (SAMPLE, "a", SAMPLE * 20):
            assert approx.count(text) >= exact.count(text)


def test_empty_text_counts_zero(counter):
    assert counter.count("") == 0
    assert estimate_tokens("") == 0


def test_estimate_rounds_up():
    assert estimate_tokens("abcde") == 2


def test_count_messages_includes_overhead(counter):
    messages = [ConversationMessage.user("Hello"), ConversationMessage.assistant("Hi")]
    content = counter.count("Hello") + counter.count("Hi")
    assert counter.count_messages(messages) > content
    assert counter.count_messages([]) == 0


def test_truncate_keeps_fitting_text(counter):
    assert counter.truncate(SAMPLE, 1000) == SAMPLE


def test_truncate_limits_tokens(counter):
    long_text = SAMPLE * 30
    truncated = counter.truncate(long_text, 20)
    assert counter.count(truncated) <= 20
    assert long_text.startswith(truncated)
    assert counter.truncate(long_text, 0) == ""


def test_split_short_text_is_single_window(counter):
    assert counter.split(SAMPLE, 100, 0.15) == [SAMPLE]


def test_split_long_text_windows_fit(counter):
    text = "word " * 1000
    windows = counter.split(text, 100, 0.15)
    assert len(windows) > 1
    assert text.startswith(windows[0])
    assert all(counter.count(w) <= 100 for w in windows)


def test_get_counter_is_cached():
    assert get_counter("o200k_base") is get_counter("o200k_base")
