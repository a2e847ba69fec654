import os
from unittest import mock

import pytest

from bidledger.core.config import ENV_PREFIX


@pytest.fixture(autouse=True)
def clean_env():
    """Isolate BIDLEDGER_* variables, including ones set by dotenv files."""
    with mock.patch.dict(os.environ):
        for key in [k for k in os.environ if k.startswith(ENV_PREFIX)]:
            del os.environ[key]
        yield
