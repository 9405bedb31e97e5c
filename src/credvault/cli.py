"""credvault — offline, per-user encrypted credential vault for the command line.

Commands
--------
  register    Create an account and its vault
  add         Add a credential
  get         Show a credential (optionally reveal / copy the password)
  list        List credentials in a rich table
  search      Search name, username and URL
  update      Update fields on an existing credential
  delete      Remove a credential
  passwd      Change the master passphrase
  unregister  Delete the account, its vault and every credential
  generate    Generate strong random passwords
  shell       Unlock once and work interactively
  info        Show database location and settings
"""

from __future__ import annotations

import functools
import secrets
import string
from contextlib import contextmanager
from typing import Annotated, Iterator, Optional

import typer
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from . import __version__
from . import auth, credentials
from .config import Settings
from .errors import CredVaultError, ErrorKind
from .log import setup_logging
from .models import CredentialDetail, CredentialSummary
from .session import Session
from .store import VaultStore

# ---------------------------------------------------------------------------
# App & consoles
# ---------------------------------------------------------------------------

_THEME = Theme(
    {
        "success": "bold green",
        "warning": "bold yellow",
        "danger": "bold red",
        "muted": "dim",
        "label": "cyan",
        "highlight": "bold white",
    }
)

console = Console(theme=_THEME)
err = Console(stderr=True, theme=_THEME)

app = typer.Typer(
    name="credvault",
    help="[bold cyan]credvault[/bold cyan] — offline, encrypted credential vault.",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    add_completion=True,
)

AccountOption = Annotated[
    Optional[str],
    typer.Option("--account", "-a", envvar="CREDVAULT_USER", help="Vault account to unlock.", show_default=False),
]

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

_ERROR_STYLE = {
    ErrorKind.VALIDATION: "warning",
    ErrorKind.AUTHENTICATION: "danger",
    ErrorKind.NOT_FOUND: "warning",
    ErrorKind.INTEGRITY: "danger",
    ErrorKind.STORAGE: "danger",
}


@functools.lru_cache(maxsize=1)
def _settings() -> Settings:
    load_dotenv()
    return Settings.from_env()


def _store() -> VaultStore:
    return VaultStore(_settings().db_path)


@contextmanager
def _errors() -> Iterator[None]:
    """Print credvault errors in the house style and exit non-zero."""
    try:
        yield
    except CredVaultError as exc:
        style = _ERROR_STYLE[exc.kind]
        err.print(f"[{style}]{escape(str(exc))}[/{style}]")
        raise typer.Exit(1) from exc


def _ask_account(account: Optional[str]) -> str:
    return account or Prompt.ask("Account", console=console)


def _ask_password(prompt: str = "Master passphrase", allow_blank: bool = False) -> str:
    """Hidden prompt; every secret the CLI reads goes through here."""
    if allow_blank:
        return Prompt.ask(prompt, password=True, default="", console=console)
    return Prompt.ask(prompt, password=True, console=console)


@contextmanager
def _unlocked(account: Optional[str]) -> Iterator[tuple[VaultStore, Session]]:
    """Prompt for credentials and yield an open store and session."""
    with _errors():
        store = _store()
        if not store.exists():
            err.print("[danger]No vault database found.[/danger] Run [bold]credvault register[/bold] first.")
            raise typer.Exit(1)
        with store:
            username = _ask_account(account)
            with auth.login(store, username, _ask_password(), _settings().cost) as session:
                yield store, session


def _make_password(length: int, no_symbols: bool = False) -> str:
    charset = string.ascii_letters + string.digits
    if not no_symbols:
        charset += r"!@#$%^&*()-_=+[]{}|;:,.<>?"
    return "".join(secrets.choice(charset) for _ in range(length))


def _optional(value: str) -> Optional[str]:
    return value or None


def _find_one(store: VaultStore, session: Session, name: str) -> CredentialSummary:
    """Return the single credential *name* refers to, or print the candidates and exit."""
    matches = credentials.find_by_name(store, session, name)
    if len(matches) == 1:
        return matches[0]
    if not matches:
        err.print(f"[danger]No credential found matching '[bold]{escape(name)}[/bold]'.[/danger]")
    else:
        err.print(f"[warning]'{escape(name)}' matches {len(matches)} credentials; be more specific.[/warning]")
        for c in matches:
            err.print(f"  • {escape(c.name)} [muted]({str(c.id)[:8]})[/muted]")
    raise typer.Exit(1)


def _render_credential(cred: CredentialDetail, *, show_password: bool = False) -> None:
    body = Text()

    def row(label: str, value: str, style: str = "highlight") -> None:
        body.append(f"  {label:<12}", style="label")
        body.append(value + "\n", style=style)

    if cred.username is not None:
        row("Username", cred.username)
    if cred.password is not None:
        row("Password", cred.password if show_password else "••••••••••••", style="bold green" if show_password else "muted")
    if cred.url is not None:
        row("URL", cred.url, style="blue underline")
    if cred.notes is not None:
        row("Notes", cred.notes, style="italic")
    row("Created", cred.created_at.strftime("%Y-%m-%d %H:%M UTC"), style="muted")
    row("Updated", cred.updated_at.strftime("%Y-%m-%d %H:%M UTC"), style="muted")
    row("ID", str(cred.id)[:8] + "…", style="muted")

    console.print(
        Panel(body, title=f"[bold cyan]{cred.name}[/bold cyan]", expand=False, border_style="cyan")
    )


def _render_table(creds: list[CredentialSummary], title: str = "Credentials") -> None:
    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        show_lines=False,
        highlight=True,
        title_style="bold",
    )
    table.add_column("#", style="muted", justify="right", no_wrap=True)
    table.add_column("Name", style="bold white", min_width=16)
    table.add_column("Username", style="dim", min_width=14)
    table.add_column("URL", style="blue", max_width=35)
    table.add_column("Updated", style="muted", no_wrap=True)

    for i, c in enumerate(creds, 1):
        table.add_row(
            str(i),
            c.name,
            c.username or "",
            c.url or "",
            c.updated_at.strftime("%Y-%m-%d"),
        )
    console.print(table)


def _copy_to_clipboard(value: str, what: str = "Password") -> None:
    try:
        import pyperclip  # noqa: PLC0415

        pyperclip.copy(value)
        console.print(f"[success]{what} copied to clipboard.[/success]")
    except Exception:
        console.print("[warning]Could not access clipboard. Is pyperclip installed and configured?[/warning]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    verbose: Annotated[bool, typer.Option("--verbose", "-V", help="Log at DEBUG level.")] = False,
) -> None:
    with _errors():
        settings = _settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    setup_logging(settings, console=err)


@app.command()
def register(
    account: Annotated[Optional[str], typer.Argument(help="Account name (3-32 chars: letters, digits, . _ -).")] = None,
) -> None:
    """Create an account and its encrypted vault."""
    console.print(
        Panel(
            "[bold]Welcome to credvault[/bold]\n"
            "[muted]Choose a strong master passphrase — it cannot be recovered if lost.[/muted]",
            title="[bold cyan]Registration[/bold cyan]",
            border_style="cyan",
            expand=False,
        )
    )
    username = _ask_account(account)
    pw = _ask_password("  Master passphrase")
    confirm = _ask_password("  Confirm passphrase")
    if pw != confirm:
        err.print("[danger]Passphrases do not match.[/danger]")
        raise typer.Exit(1)

    with _errors(), _store() as store:
        auth.register(store, username, pw, _settings().cost)
    console.print(f"\n[success]Account '[bold]{username}[/bold]' created →[/success] [bold]{store.path}[/bold]")


@app.command()
def add(
    name: Annotated[str, typer.Argument(help="Name / label for this credential.")],
    account: AccountOption = None,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="Username or email.")] = None,
    url: Annotated[Optional[str], typer.Option("--url", help="Associated URL.")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", "-n", help="Free-form notes (stored encrypted).")] = None,
    generate: Annotated[bool, typer.Option("--generate", "-g", help="Auto-generate a password.")] = False,
    length: Annotated[int, typer.Option("--length", "-l", help="Generated password length.")] = 20,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols from generated password.")] = False,
) -> None:
    """Add a new credential to the vault."""
    with _unlocked(account) as (store, session):
        console.print(f"\n[bold cyan]Adding[/bold cyan] [bold]{name}[/bold]\n")

        if username is None:
            username = _optional(Prompt.ask("  Username [muted](blank to skip)[/muted]", default="", console=console))
        if url is None:
            url = _optional(Prompt.ask("  URL      [muted](blank to skip)[/muted]", default="", console=console))

        if generate:
            cred_pw: Optional[str] = _make_password(length, no_symbols)
            console.print(f"  [muted]Generated:[/muted] [bold green]{cred_pw}[/bold green]")
        else:
            cred_pw = _optional(
                _ask_password("  Password [muted](blank to skip)[/muted]", allow_blank=True)
            )

        if notes is None:
            notes = _optional(Prompt.ask("  Notes    [muted](blank to skip)[/muted]", default="", console=console))

        with _errors():
            credentials.create(store, session, name, username=username, url=url, password=cred_pw, notes=notes)

    console.print(f"\n[success]Credential '[bold]{name}[/bold]' saved.[/success]")


@app.command()
def get(
    name: Annotated[str, typer.Argument(help="Credential name (exact or partial).")],
    account: AccountOption = None,
    show: Annotated[bool, typer.Option("--show", "-s", help="Display password in plain text.")] = False,
    copy: Annotated[bool, typer.Option("--copy", "-c", help="Copy password to clipboard.")] = False,
) -> None:
    """Retrieve a credential and display its details."""
    with _unlocked(account) as (store, session):
        summary = _find_one(store, session, name)
        with _errors():
            cred = credentials.get_full(store, session, summary.id)
    _render_credential(cred, show_password=show)

    if copy and cred.password is not None:
        _copy_to_clipboard(cred.password)


@app.command("list")
def list_creds(account: AccountOption = None) -> None:
    """List all credentials in a formatted table."""
    with _unlocked(account) as (store, session), _errors():
        creds = credentials.list_credentials(store, session)

    if not creds:
        console.print("[muted]The vault is empty.[/muted]")
        return
    _render_table(creds, title=f"Credentials ({len(creds)} total)")


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search term (matches name, username, URL).")],
    account: AccountOption = None,
) -> None:
    """Search credentials by name, username or URL."""
    with _unlocked(account) as (store, session), _errors():
        results = credentials.search(store, session, query)

    if not results:
        console.print(f"[muted]No results for '[bold]{query}[/bold]'.[/muted]")
        return
    _render_table(results, title=f"Search: {query}  ({len(results)} match{'es' if len(results) != 1 else ''})")


@app.command()
def update(
    name: Annotated[str, typer.Argument(help="Credential name (exact or partial).")],
    account: AccountOption = None,
    new_name: Annotated[Optional[str], typer.Option("--name", help="Rename the credential.")] = None,
    username: Annotated[Optional[str], typer.Option("--username", "-u", help="New username ('' clears).")] = None,
    url: Annotated[Optional[str], typer.Option("--url", help="New URL ('' clears).")] = None,
    notes: Annotated[Optional[str], typer.Option("--notes", "-n", help="New notes ('' clears).")] = None,
    generate: Annotated[bool, typer.Option("--generate", "-g", help="Auto-generate a new password.")] = False,
    length: Annotated[int, typer.Option("--length", "-l", help="Generated password length.")] = 20,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols from generated password.")] = False,
) -> None:
    """Update an existing credential."""
    with _unlocked(account) as (store, session):
        summary = _find_one(store, session, name)
        changes: dict[str, Optional[str]] = {}

        if new_name and new_name != summary.name:
            changes["name"] = new_name
        if username is not None:
            changes["username"] = _optional(username)
        if url is not None:
            changes["url"] = _optional(url)
        if notes is not None:
            changes["notes"] = _optional(notes)

        if generate:
            changes["password"] = _make_password(length, no_symbols)
            console.print(f"  [muted]New password:[/muted] [bold green]{changes['password']}[/bold green]")
        else:
            new_pw = _ask_password("  New password [muted](blank to keep current)[/muted]", allow_blank=True)
            if new_pw:
                changes["password"] = new_pw

        if not changes:
            console.print("[muted]No changes made.[/muted]")
            return

        with _errors():
            updated = credentials.update(store, session, summary.id, **changes)
    console.print(f"[success]Credential '[bold]{updated.name}[/bold]' updated.[/success]")


@app.command()
def delete(
    name: Annotated[str, typer.Argument(help="Credential name (exact or partial).")],
    account: AccountOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Permanently delete a credential."""
    with _unlocked(account) as (store, session):
        summary = _find_one(store, session, name)

        if not yes:
            confirmed = Confirm.ask(
                f"  Delete '[bold]{summary.name}[/bold]'? [muted]This cannot be undone.[/muted]",
                default=False,
                console=console,
            )
            if not confirmed:
                raise typer.Exit(0)

        with _errors():
            credentials.delete(store, session, summary.id)
    console.print(f"[danger]Credential '[bold]{summary.name}[/bold]' deleted.[/danger]")


@app.command()
def passwd(account: AccountOption = None) -> None:
    """Change the master passphrase (credentials are not re-encrypted)."""
    with _errors(), _store() as store:
        username = _ask_account(account)
        old = _ask_password("Current passphrase")
        with auth.login(store, username, old, _settings().cost) as session:
            new = _ask_password("  New passphrase")
            if new != _ask_password("  Confirm passphrase"):
                err.print("[danger]Passphrases do not match.[/danger]")
                raise typer.Exit(1)
            auth.change_passphrase(store, session, old, new, _settings().cost)
    console.print("[success]Passphrase changed.[/success]")


@app.command()
def unregister(
    account: AccountOption = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt.")] = False,
) -> None:
    """Delete the account, its vault and every credential in it."""
    username = _ask_account(account)
    if not yes and not Confirm.ask(
        f"  Delete account '[bold]{username}[/bold]' and all its credentials? "
        "[muted]This cannot be undone.[/muted]",
        default=False,
        console=console,
    ):
        raise typer.Exit(0)
    with _errors(), _store() as store:
        auth.unregister(store, username, _ask_password(), _settings().cost)
    console.print(f"[danger]Account '[bold]{username}[/bold]' deleted.[/danger]")


@app.command()
def generate(
    length: Annotated[int, typer.Option("--length", "-l", help="Password length.")] = 20,
    count: Annotated[int, typer.Option("--count", "-c", help="Number of passwords to generate.")] = 1,
    no_symbols: Annotated[bool, typer.Option("--no-symbols", help="Exclude symbols.")] = False,
    copy: Annotated[bool, typer.Option("--copy", help="Copy first password to clipboard.")] = False,
) -> None:
    """Generate one or more strong random passwords."""
    passwords = [_make_password(length, no_symbols) for _ in range(count)]

    if count == 1:
        console.print(
            Panel(
                f"[bold green]{passwords[0]}[/bold green]",
                title=f"[bold]Generated password ({length} chars)[/bold]",
                border_style="green",
                expand=False,
            )
        )
    else:
        console.print(f"\n[bold]Generated {count} passwords ({length} chars each)[/bold]\n")
        for i, pw in enumerate(passwords, 1):
            console.print(f"  [muted]{i:>3}.[/muted]  [bold green]{pw}[/bold green]")
        console.print()

    if copy:
        _copy_to_clipboard(passwords[0], "First password")


@app.command()
def shell(account: AccountOption = None) -> None:
    """Unlock once and run several commands; the key is wiped on exit."""
    with _unlocked(account) as (store, session):
        with _errors():
            count = store.count_credentials(session.vault_id)
        console.print(
            f"[success]Vault unlocked for[/success] [bold]{session.username}[/bold] "
            f"[muted]({count} credential{'s' if count != 1 else ''})[/muted]. Type [bold]help[/bold]."
        )
        while True:
            line = Prompt.ask("[bold cyan]credvault[/bold cyan]", default="", console=console).strip()
            cmd, _, arg = line.partition(" ")
            arg = arg.strip()
            try:
                with _errors():
                    if cmd in ("quit", "exit", "q"):
                        break
                    elif cmd == "help":
                        console.print("[muted]list · search <q> · get <name> · show <name> · add <name> · delete <name> · quit[/muted]")
                    elif cmd == "list":
                        _render_table(credentials.list_credentials(store, session))
                    elif cmd == "search":
                        _render_table(credentials.search(store, session, arg), title=f"Search: {arg}")
                    elif cmd in ("get", "show") and arg:
                        summary = _find_one(store, session, arg)
                        _render_credential(credentials.get_full(store, session, summary.id), show_password=cmd == "show")
                    elif cmd == "add" and arg:
                        credentials.create(
                            store,
                            session,
                            arg,
                            username=_optional(Prompt.ask("  Username", default="", console=console)),
                            url=_optional(Prompt.ask("  URL", default="", console=console)),
                            password=_optional(_ask_password("  Password", allow_blank=True)),
                            notes=_optional(Prompt.ask("  Notes", default="", console=console)),
                        )
                        console.print(f"[success]Credential '[bold]{arg}[/bold]' saved.[/success]")
                    elif cmd == "delete" and arg:
                        summary = _find_one(store, session, arg)
                        if Confirm.ask(f"  Delete '[bold]{summary.name}[/bold]'?", default=False, console=console):
                            credentials.delete(store, session, summary.id)
                            console.print(f"[danger]Credential '[bold]{summary.name}[/bold]' deleted.[/danger]")
                    elif cmd:
                        console.print(f"[warning]Unknown command '{line}'.[/warning] Type [bold]help[/bold].")
            except typer.Exit:
                # Per-command failures were already printed; keep the shell open.
                continue
    console.print("[muted]Vault locked.[/muted]")


@app.command()
def info() -> None:
    """Show database location and settings."""
    settings = _settings()
    path = settings.db_path

    table = Table(box=box.SIMPLE, show_header=False, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Version", __version__)
    table.add_row("Database", str(path))
    table.add_row("Exists", "[green]yes[/green]" if path.exists() else "[red]no[/red]")
    if path.exists():
        table.add_row("Size", f"{path.stat().st_size / 1024:.1f} KB")
    cost = settings.cost
    table.add_row("Argon2id", f"t={cost.time_cost} m={cost.memory_cost} KiB p={cost.parallelism}")
    table.add_row("Log level", settings.log_level)
    if settings.log_file:
        table.add_row("Log file", str(settings.log_file))

    console.print(Panel(table, title="[bold cyan]credvault info[/bold cyan]", border_style="cyan", expand=False))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    app()


if __name__ == "__main__":
    main()
