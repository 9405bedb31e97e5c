"""pytest configuration — add src/ to sys.path and provide shared fixtures."""
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent / "src"))

from credvault import auth  # noqa: E402
from credvault.crypto import Argon2Cost  # noqa: E402
from credvault.store import VaultStore  # noqa: E402

# Cheap enough to keep the suite fast; production defaults live in crypto.DEFAULT_COST.
FAST_COST = Argon2Cost(time_cost=1, memory_cost=64, parallelism=1)


@pytest.fixture
def cost() -> Argon2Cost:
    return FAST_COST


@pytest.fixture
def store(tmp_path):
    with VaultStore(tmp_path / "vault.db") as s:
        yield s


@pytest.fixture
def alice(store, cost):
    """Registered user "alice" with an unlocked session."""
    auth.register(store, "alice", "Secret123!", cost)
    with auth.login(store, "alice", "Secret123!", cost) as session:
        yield session


@pytest.fixture
def bob(store, cost):
    auth.register(store, "bob", "hunter2!", cost)
    with auth.login(store, "bob", "hunter2!", cost) as session:
        yield session
