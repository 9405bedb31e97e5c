"""Tests for the typer CLI and the get_password helper."""

import re

import pytest
from typer.testing import CliRunner

from credvault import auth, cli, credentials, get_password
from credvault.cli import _make_password, _settings, app
from credvault.errors import AuthenticationError, NotFoundError
from credvault.store import VaultStore

runner = CliRunner()


@pytest.fixture
def env(monkeypatch, tmp_path, cost):
    """Point the CLI at a throwaway database with cheap Argon2 settings."""
    db = tmp_path / "cli.db"
    monkeypatch.setenv("CREDVAULT_DB", str(db))
    monkeypatch.setenv("CREDVAULT_ARGON2_TIME_COST", str(cost.time_cost))
    monkeypatch.setenv("CREDVAULT_ARGON2_MEMORY_COST", str(cost.memory_cost))
    monkeypatch.setenv("CREDVAULT_ARGON2_PARALLELISM", str(cost.parallelism))
    _settings.cache_clear()
    yield db
    _settings.cache_clear()


@pytest.fixture
def answers(monkeypatch):
    """Queue of replies for hidden passphrase/password prompts."""
    queue = []

    def reply(prompt="Master passphrase", allow_blank=False):
        return queue.pop(0)

    monkeypatch.setattr(cli, "_ask_password", reply)
    return queue


def _register(answers, account="alice", passphrase="Secret123!"):
    answers += [passphrase, passphrase]
    result = runner.invoke(app, ["register", account])
    assert result.exit_code == 0, result.output
    return result


def _add(answers, name="GitHub", password="p@ss-word", passphrase="Secret123!"):
    answers += [passphrase, password]
    result = runner.invoke(
        app,
        ["add", name, "-a", "alice", "-u", "alice@x.com", "--url", "https://github.com", "-n", "work account"],
    )
    assert result.exit_code == 0, result.output
    return result


# ---------------------------------------------------------------------------
# Password generator
# ---------------------------------------------------------------------------


def test_make_password_length_and_charset():
    pw = _make_password(32, no_symbols=True)
    assert len(pw) == 32
    assert re.fullmatch(r"[A-Za-z0-9]+", pw)


def test_generate_command(env):
    result = runner.invoke(app, ["generate", "--length", "12", "--count", "3", "--no-symbols"])
    assert result.exit_code == 0
    assert "Generated 3 passwords" in result.output


def test_info_reports_database(env):
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 0
    assert "credvault info" in result.output
    assert "Argon2id" in result.output


def test_list_without_database_fails(env):
    result = runner.invoke(app, ["list", "--account", "alice"])
    assert result.exit_code == 1
    assert "No vault database found" in result.output


def test_bad_configuration_exits_cleanly(env, monkeypatch):
    monkeypatch.setenv("CREDVAULT_LOG_LEVEL", "chatty")
    _settings.cache_clear()
    result = runner.invoke(app, ["info"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


# ---------------------------------------------------------------------------
# Account and credential commands
# ---------------------------------------------------------------------------


def test_register_add_get_delete_roundtrip(env, answers):
    result = _register(answers)
    assert "created" in result.output
    assert env.exists()

    assert "saved" in _add(answers).output

    answers.append("Secret123!")
    result = runner.invoke(app, ["get", "git", "-a", "alice", "--show"])
    assert result.exit_code == 0, result.output
    assert "p@ss-word" in result.output
    assert "alice@x.com" in result.output

    answers.append("Secret123!")
    result = runner.invoke(app, ["get", "GitHub", "-a", "alice"])
    assert result.exit_code == 0
    assert "p@ss-word" not in result.output

    answers.append("Secret123!")
    result = runner.invoke(app, ["delete", "GitHub", "-a", "alice", "--yes"])
    assert result.exit_code == 0, result.output
    assert "deleted" in result.output

    answers.append("Secret123!")
    result = runner.invoke(app, ["get", "GitHub", "-a", "alice"])
    assert result.exit_code == 1
    assert "No credential found" in result.output
    assert answers == []


def test_wrong_passphrase_exits_with_authentication_message(env, answers):
    _register(answers)
    answers.append("not-it")
    result = runner.invoke(app, ["list", "-a", "alice"])
    assert result.exit_code == 1
    assert "Invalid username or passphrase." in result.output


def test_duplicate_register_exits_with_validation_message(env, answers):
    _register(answers)
    answers += ["other-pass", "other-pass"]
    result = runner.invoke(app, ["register", "alice"])
    assert result.exit_code == 1
    assert "already registered" in result.output


def test_register_rejects_mismatched_confirmation(env, answers):
    answers += ["Secret123!", "Secret124!"]
    result = runner.invoke(app, ["register", "alice"])
    assert result.exit_code == 1
    assert "do not match" in result.output


def test_ambiguous_name_lists_candidates(env, answers):
    _register(answers)
    _add(answers, name="GitHub")
    _add(answers, name="GitLab")
    answers.append("Secret123!")
    result = runner.invoke(app, ["get", "git", "-a", "alice"])
    assert result.exit_code == 1
    assert "matches 2 credentials" in result.output


def test_update_changes_fields(env, answers):
    _register(answers)
    _add(answers)

    answers.append("Secret123!")
    result = runner.invoke(app, ["update", "GitHub", "-a", "alice", "--username", "bob", "--url", "", "--generate"])
    assert result.exit_code == 0, result.output
    assert "updated" in result.output

    with VaultStore(env) as store, auth.login(store, "alice", "Secret123!", _settings().cost) as session:
        (summary,) = credentials.list_credentials(store, session)
        detail = credentials.get_full(store, session, summary.id)
    assert detail.username == "bob"
    assert detail.url is None
    assert detail.password != "p@ss-word"
    assert detail.notes == "work account"


def test_passwd_then_unregister(env, answers):
    _register(answers)
    _add(answers)

    answers += ["Secret123!", "N3wPass!", "N3wPass!"]
    result = runner.invoke(app, ["passwd", "-a", "alice"])
    assert result.exit_code == 0, result.output
    assert "Passphrase changed" in result.output

    answers.append("Secret123!")
    assert runner.invoke(app, ["list", "-a", "alice"]).exit_code == 1

    answers.append("N3wPass!")
    result = runner.invoke(app, ["list", "-a", "alice"])
    assert result.exit_code == 0
    assert "GitHub" in result.output

    answers.append("N3wPass!")
    result = runner.invoke(app, ["unregister", "-a", "alice", "--yes"])
    assert result.exit_code == 0, result.output

    answers.append("N3wPass!")
    assert runner.invoke(app, ["list", "-a", "alice"]).exit_code == 1


def test_shell_session(env, answers):
    _register(answers)
    _add(answers)

    answers.append("Secret123!")
    result = runner.invoke(app, ["shell", "-a", "alice"], input="list\nshow GitHub\nget nothing\nbogus\nquit\n")
    assert result.exit_code == 0, result.output
    assert "(1 credential)" in result.output
    assert "p@ss-word" in result.output
    assert "No credential found" in result.output
    assert "Unknown command" in result.output
    assert "Vault locked." in result.output


# ---------------------------------------------------------------------------
# get_password
# ---------------------------------------------------------------------------


@pytest.fixture
def seeded(env, cost):
    with VaultStore(env) as store:
        auth.register(store, "alice", "Secret123!", cost)
        with auth.login(store, "alice", "Secret123!", cost) as session:
            credentials.create(store, session, "Snowflake prod", password="s3cret", notes="warehouse")
            credentials.create(store, session, "Snowflake dev", password="dev")
    return env


def test_get_password_exact_match(seeded):
    assert get_password("snowflake PROD", "alice", "Secret123!") == "s3cret"
    assert get_password("Snowflake prod", "alice", "Secret123!", field="notes") == "warehouse"


def test_get_password_ambiguous_partial_match(seeded):
    with pytest.raises(NotFoundError):
        get_password("snow", "alice", "Secret123!")


def test_get_password_wrong_passphrase(seeded):
    with pytest.raises(AuthenticationError):
        get_password("Snowflake prod", "alice", "nope")


def test_get_password_rejects_plain_field(seeded):
    with pytest.raises(KeyError):
        get_password("Snowflake prod", "alice", "Secret123!", field="username")
