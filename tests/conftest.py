import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from promptcache.cache import PromptFragmentCache  # noqa: E402


@pytest.fixture
def cache():
    return PromptFragmentCache(system_prompt="You are a careful analyst.")
