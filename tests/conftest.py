"""Pytest configuration, Hypothesis profiles and shared strategies."""

import pytest
from hypothesis import settings
from hypothesis import strategies as st

# Register Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=20)

# Load dev profile by default, CI can override via --hypothesis-profile=ci
settings.load_profile("dev")


def valid_event_names() -> st.SearchStrategy[str]:
    """Dotted event names such as ``todo.add``."""
    return st.from_regex(r"[a-z][a-z0-9_]{0,10}\.[a-z][a-zA-Z0-9_]{0,10}", fullmatch=True)


def valid_payloads() -> st.SearchStrategy[dict]:
    """Small JSON-serializable payloads that never use the ``prev`` key."""
    return st.dictionaries(
        st.from_regex(r"[a-z]{1,8}", fullmatch=True).filter(lambda k: k != "prev"),
        st.none() | st.booleans() | st.integers() | st.text(max_size=20),
        max_size=5,
    )


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio as the async backend for pytest-asyncio."""
    return "asyncio"
