"""
Terminal user interface for the Passman password manager.

Menu-driven CRUD over the session store. This layer only talks to
SessionStore (get_all, replace_all, verify_passphrase, rekey, switch_vault)
and never touches the codec or the vault file itself.
"""

import os
import string
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from . import config
from . import vault_manager
from .errors import AuthError, ConfigError, PassmanError, PersistError, ValidationError
from .generator import generate_password
from .models import CredentialEntry
from .search import FIELD_LABELS, SEARCH_FIELDS, search_entries
from .settings import Settings, save_settings
from .storage import SessionStore

logger = logging.getLogger(__name__)

HIDDEN_PASSWORD_TEXT = "••••••••"

MENU_OPTIONS = [
    ("1", "Add a new credential entry", "add_entry"),
    ("2", "Search entries", "search"),
    ("3", "View all entries", "view_entries"),
    ("4", "Edit an entry", "edit_entry"),
    ("5", "Remove entries", "remove_entries"),
    ("6", "Quit (saves and encrypts)", None),
    ("7", "Change master password", "change_master_password"),
    ("8", "Manage settings", "manage_settings"),
    ("9", "Load another vault file", "load_external_vault"),
]
QUIT_CHOICE = "6"

SETTING_MENU = [
    ("1", "DEFAULT_PASSWORD_LENGTH", "Default generated password length"),
    ("2", "DEFAULT_PASSWORD_UPPER", "Include uppercase letters (y/n)"),
    ("3", "DEFAULT_PASSWORD_NUMBERS", "Include numbers (y/n)"),
    ("4", "DEFAULT_PASSWORD_SYMBOLS", "Include symbols (y/n)"),
    ("5", "SAVE_LOCATION", "Vault directory (used from next start)"),
    ("6", "DEFAULT_SEARCH_MODE", "Default search mode (and/or)"),
    ("7", "DEFAULT_EMAIL", "Default email for new entries"),
    ("8", "DEFAULT_SERVICE", "Default login service for new entries"),
]
# CLIPBOARD_CLEAR_DELAY stays in the settings file but has nothing to act on here


class OperationCancelled(Exception):
    """The user typed 'C' at a prompt."""


class PasswordStrengthValidator:
    """Validates master password strength."""

    @staticmethod
    def check_strength(password: str) -> Tuple[bool, str]:
        """
        Check if password meets the recommended requirements.

        Returns:
            Tuple of (is_strong, message)
        """
        if len(password) < config.PASSWORD_MIN_LENGTH:
            return False, f"Password should be at least {config.PASSWORD_MIN_LENGTH} characters long"

        has_upper = any(c.isupper() for c in password)
        has_lower = any(c.islower() for c in password)
        has_digit = any(c.isdigit() for c in password)
        has_special = any(c in string.punctuation for c in password)

        if not has_upper:
            return False, "Password should contain uppercase letters"
        if not has_lower:
            return False, "Password should contain lowercase letters"
        if not has_digit:
            return False, "Password should contain digits"
        if not has_special:
            return False, "Password should contain special characters"

        return True, "Password is strong"


def ask_secret(console: Console, prompt: str) -> str:
    """Masked input."""
    return Prompt.ask(f"[yellow]{prompt}[/yellow]", password=True, default="",
                      show_default=False, console=console)


def prompt_new_master_password(console: Console, prompt: str = "Enter NEW master password") -> Optional[str]:
    """
    Ask for a new master password twice.

    Weak passwords only get a warning. Returns None if the user enters nothing.
    """
    while True:
        first = ask_secret(console, prompt)
        if not first:
            return None
        is_strong, message = PasswordStrengthValidator.check_strength(first)
        if not is_strong:
            console.print(f"[yellow]Warning: {message}.[/yellow]")
        second = ask_secret(console, "Confirm master password")
        if first == second:
            return first
        console.print("[red]Passwords do not match. Please try again.[/red]")


class VaultMenu:
    """Main menu of an unlocked session."""

    def __init__(self, store: SessionStore, settings: Settings, settings_path: str,
                 console: Optional[Console] = None, config_dir: Optional[str] = None):
        self.store = store
        self.settings = settings
        self.settings_path = settings_path
        self.console = console or Console()
        self.config_dir = config_dir

    # ------------------------------------------------------------------
    # Prompt helpers
    # ------------------------------------------------------------------

    def _ask(self, prompt: str, password: bool = False) -> str:
        value = Prompt.ask(f"[yellow]{prompt}[/yellow]", password=password, default="",
                           show_default=False, console=self.console)
        # secrets are kept verbatim
        return value if password else value.strip()

    def _confirm(self, prompt: str, default: bool = True) -> bool:
        return Confirm.ask(prompt, default=default, console=self.console)

    @staticmethod
    def _check_cancel(value: str) -> None:
        if value.lower() == "c":
            raise OperationCancelled()

    def _ask_required(self, label: str, default: str = "") -> str:
        hint = f" (default: {default})" if default else ""
        while True:
            value = self._ask(f"{label}{hint}")
            self._check_cancel(value)
            value = value or default
            if value:
                return value
            self.console.print(f"[red]{label} cannot be empty. Type 'C' to cancel.[/red]")

    def _ask_optional(self, label: str, current: str = "") -> str:
        hint = f" (current: {current}, 'X' to remove)" if current else ""
        value = self._ask(f"{label}{hint}")
        self._check_cancel(value)
        if value.lower() == "x":
            return ""
        return value or current

    def _ask_index(self, count: int, prompt: str = "Entry number") -> int:
        while True:
            value = self._ask(f"{prompt} (1-{count})")
            self._check_cancel(value)
            if value.isdigit() and 1 <= int(value) <= count:
                return int(value) - 1
            self.console.print(f"[red]Please enter a number between 1 and {count}, or 'C' to cancel.[/red]")

    def _generate(self) -> str:
        password = generate_password(
            self.settings.default_password_length,
            use_upper=self.settings.default_password_upper,
            use_numbers=self.settings.default_password_numbers,
            use_symbols=self.settings.default_password_symbols,
        )
        self.console.print(f"Generated password: [bold]{password}[/bold]")
        return password

    def _ask_entry_password(self, current: str = "") -> str:
        keep = "Enter to keep current" if current else "Enter to leave empty"
        value = self._ask(f"Password ({keep}, 'G' to generate, 'X' to remove)", password=True)
        self._check_cancel(value)
        if value.lower() == "g":
            return self._generate()
        if value.lower() == "x":
            return ""
        return value or current

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _entries_table(self, rows: Iterable[Tuple[int, CredentialEntry]], show_passwords: bool = False,
                       title: str = "Credentials") -> Table:
        table = Table(title=title, show_lines=False)
        table.add_column("#", justify="right", style="bold")
        table.add_column("Website")
        table.add_column("Email / Linked email")
        table.add_column("Username")
        table.add_column("Logged in via")
        table.add_column("Password")
        table.add_column("Recovery email")
        table.add_column("Last updated")
        for index, entry in rows:
            if entry.password:
                password = entry.password if show_passwords else HIDDEN_PASSWORD_TEXT
            else:
                password = ""
            table.add_row(
                str(index + 1),
                entry.website,
                entry.account_email,
                entry.username,
                entry.logged_in_via,
                password,
                entry.recovery_email,
                entry.added,
            )
        return table

    def _show_entry(self, entry: CredentialEntry, title: str) -> None:
        body = Text()
        labels = [
            ("Website", entry.website),
            ("Email", entry.email),
            ("Logged in via", entry.logged_in_via),
            ("Linked email", entry.linked_email),
            ("Username", entry.username),
            ("Password", HIDDEN_PASSWORD_TEXT if entry.password else ""),
            ("Recovery email", entry.recovery_email),
            ("Updated", entry.added),
        ]
        for label, value in labels:
            if value:
                body.append(f"{label + ':':<16}{value}\n")
        self.console.print(Panel(body, title=title, border_style="cyan", expand=False))

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def show_menu(self) -> None:
        lines = Text()
        for key, label, _ in MENU_OPTIONS:
            lines.append(f"  {key}) ", style="bold")
            lines.append(f"{label}\n")
        subtitle = f"{os.path.basename(self.store.vault_path)} - {len(self.store.get_all())} entries"
        self.console.print(Panel(lines, title=f"[bold]{config.APP_TITLE}[/bold]",
                                 subtitle=subtitle, border_style="magenta", expand=False))

    def run(self) -> None:
        """Run the menu until the user quits. EOFError (Ctrl-D) propagates."""
        actions = {key: getattr(self, name) for key, _, name in MENU_OPTIONS if name}
        while True:
            self.show_menu()
            choice = self._ask("Enter your choice")
            if choice == QUIT_CHOICE:
                self.console.print("[cyan]Goodbye![/cyan]")
                return
            action = actions.get(choice)
            if action is None:
                self.console.print("[red]Invalid option. Please choose 1-9.[/red]")
                continue
            try:
                action()
            except OperationCancelled:
                self.console.print("[cyan]Operation cancelled. Returning to main menu.[/cyan]")
            except PassmanError as e:
                logger.error(f"Menu action {choice} failed: {e}")
                self.console.print(f"[bold red]Error:[/bold red] {e}")

    # ------------------------------------------------------------------
    # Entry operations
    # ------------------------------------------------------------------

    def prompt_entry(self, current: Optional[CredentialEntry] = None) -> CredentialEntry:
        """Ask for every field; current values (or settings defaults) pre-fill the prompts."""
        cur = current or CredentialEntry(website="")
        website = self._ask_required("Website/service name", cur.website)

        via_default = cur.logged_in_via if current else self.settings.default_service
        logged_in_via = self._ask_optional(
            "Logged in via another service, e.g. Google (blank if not)", via_default
        )

        if logged_in_via:
            linked_default = cur.linked_email or cur.email or self.settings.default_email
            linked_email = self._ask_required(f"Email used for {logged_in_via}", linked_default)
            username = self._ask_optional(f"Username for {logged_in_via} (optional)", cur.username)
            email = ""
        else:
            email_default = cur.email if current else self.settings.default_email
            while True:
                email = self._ask_optional("Email for this site", email_default)
                username = self._ask_optional("Username for this site", cur.username)
                if email or username:
                    break
                self.console.print("[red]An email or a username is required when not logging in via a service.[/red]")
            linked_email = ""

        password = self._ask_entry_password(cur.password)
        recovery_email = self._ask_optional("Recovery email (optional)", cur.recovery_email)

        entry = CredentialEntry(
            website=website,
            email=email,
            username=username,
            password=password,
            logged_in_via=logged_in_via,
            linked_email=linked_email,
            recovery_email=recovery_email,
        )
        entry.touch()
        entry.validate()
        return entry

    def add_entry(self) -> None:
        self.console.print(Panel("Type 'C' at any prompt to cancel.", title="Add New Credential Entry",
                                 border_style="magenta", expand=False))
        entry = self.prompt_entry()
        self._show_entry(entry, "Review New Entry")
        if not self._confirm("Save this entry?"):
            self.console.print("[cyan]Entry discarded.[/cyan]")
            return
        entries = self.store.get_all()
        entries.append(entry)
        self.store.replace_all(entries)
        self.console.print(f"[green]Entry for {entry.website} added.[/green]")

    def search(self) -> None:
        entries = self.store.get_all()
        if not entries:
            self.console.print("[yellow]No entries yet. Add some first.[/yellow]")
            return

        for number, field in enumerate(SEARCH_FIELDS, 1):
            self.console.print(f"  [bold]{number})[/bold] {FIELD_LABELS[field]}")
        raw = self._ask("Fields to filter by (comma-separated, e.g. 1,3), or Enter to show all")
        self._check_cancel(raw)

        filters: Dict[str, str] = {}
        for token in filter(None, (t.strip() for t in raw.split(","))):
            if not token.isdigit() or not 1 <= int(token) <= len(SEARCH_FIELDS):
                self.console.print(f"[yellow]Ignoring unknown field '{token}'.[/yellow]")
                continue
            field = SEARCH_FIELDS[int(token) - 1]
            value = self._ask(f"{FIELD_LABELS[field]} contains")
            self._check_cancel(value)
            filters[field] = value

        mode = self.settings.default_search_mode
        if len([v for v in filters.values() if v]) > 1:
            answer = self._ask(f"Combine filters with AND or OR? (default: {mode})").lower()
            if answer in config.SEARCH_MODES:
                mode = answer

        results = search_entries(entries, filters, mode)
        if not results:
            self.console.print("[yellow]No matching entries found.[/yellow]")
            return
        show = self._confirm("Show passwords?", default=False)
        self.console.print(self._entries_table(results, show, title=f"Search results ({len(results)})"))

    def view_entries(self) -> None:
        entries = self.store.get_all()
        if not entries:
            self.console.print("[yellow]No entries yet. Add some first.[/yellow]")
            return
        show = self._confirm("Show passwords?", default=False)
        self.console.print(self._entries_table(enumerate(entries), show, title=f"All entries ({len(entries)})"))

    def edit_entry(self) -> None:
        entries = self.store.get_all()
        if not entries:
            self.console.print("[yellow]No entries to edit. Add some first.[/yellow]")
            return
        self.console.print(self._entries_table(enumerate(entries), title="Choose an entry to edit"))
        index = self._ask_index(len(entries))
        self.console.print("Press Enter to keep a value, 'X' to remove it, 'C' to cancel.")
        updated = self.prompt_entry(entries[index])
        self._show_entry(updated, "Review Updated Entry")
        if not self._confirm("Save these changes?"):
            self.console.print("[cyan]Changes discarded.[/cyan]")
            return
        entries[index] = updated
        self.store.replace_all(entries)
        self.console.print(f"[green]Entry {index + 1} ({updated.website}) updated.[/green]")

    def _parse_indices(self, raw: str, count: int) -> Optional[List[int]]:
        indices = []
        for token in filter(None, (t.strip() for t in raw.split(","))):
            if not token.isdigit() or not 1 <= int(token) <= count:
                self.console.print(f"[red]'{token}' is not a valid entry number.[/red]")
                return None
            if int(token) - 1 not in indices:
                indices.append(int(token) - 1)
        return indices or None

    def remove_entries(self) -> None:
        entries = self.store.get_all()
        if not entries:
            self.console.print("[yellow]No entries to remove. Add some first.[/yellow]")
            return
        self.console.print(self._entries_table(enumerate(entries), title="Choose entries to remove"))

        while True:
            raw = self._ask(f"Entry numbers to remove, comma-separated (1-{len(entries)})")
            self._check_cancel(raw)
            indices = self._parse_indices(raw, len(entries))
            if indices is not None:
                break

        names = ", ".join(entries[i].website for i in sorted(indices))
        if not self._confirm(f"Permanently remove {len(indices)} entr{'y' if len(indices) == 1 else 'ies'} ({names})?",
                             default=False):
            self.console.print("[cyan]Nothing removed.[/cyan]")
            return
        remaining = [e for i, e in enumerate(entries) if i not in indices]
        self.store.replace_all(remaining)
        self.console.print(f"[green]Removed {len(indices)} entr{'y' if len(indices) == 1 else 'ies'}.[/green]")

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    def change_master_password(self) -> None:
        self.console.print(Panel("You will be asked for your current master password, then a new one.",
                                 title="Change Master Password", border_style="magenta", expand=False))
        current = self._ask("Current master password", password=True)
        if not current:
            self.console.print("[red]No password entered. Aborting.[/red]")
            return
        if not self.store.verify_passphrase(current):
            logger.warning("Master password change refused: current password incorrect")
            self.console.print("[red]Incorrect current master password. Aborting.[/red]")
            return

        new = prompt_new_master_password(self.console)
        if not new:
            self.console.print("[red]New password not set. Aborting.[/red]")
            return
        if new == current:
            self.console.print("[yellow]New password is the same as the current one. No changes made.[/yellow]")
            return

        try:
            self.store.rekey(new, current_passphrase=current)
        except PersistError as e:
            self.console.print(f"[bold red]Failed to change master password:[/bold red] {e}")
            self.console.print("[yellow]Your previous master password is still in effect.[/yellow]")
            return
        self.console.print("[green]Master password changed. The vault has been re-encrypted.[/green]")

    def _settings_table(self) -> Table:
        table = Table(title="Current Settings")
        table.add_column("#", style="bold")
        table.add_column("Setting")
        table.add_column("Value")
        for number, key, label in SETTING_MENU:
            table.add_row(number, label, self.settings.value_text(key) or "<empty>")
        return table

    def manage_settings(self) -> None:
        menu = {number: (key, label) for number, key, label in SETTING_MENU}
        while True:
            self.console.print(self._settings_table())
            choice = self._ask(f"Setting to change (1-{len(SETTING_MENU)}), or Q to go back").lower()
            if choice in ("q", "c", ""):
                return
            if choice not in menu:
                self.console.print("[red]Invalid option.[/red]")
                continue

            key, label = menu[choice]
            value = self._ask(f"New value for '{label}' (current: {self.settings.value_text(key) or '<empty>'})")
            if value.lower() == "c":
                continue
            if key == "SAVE_LOCATION" and not os.path.isdir(os.path.expanduser(value)):
                self.console.print(f"[red]Directory not found: {value}[/red]")
                continue
            try:
                self.settings.update(key, value)
            except ConfigError as e:
                self.console.print(f"[red]{e}[/red]")
                continue

            try:
                save_settings(self.settings, self.settings_path)
            except OSError as e:
                logger.error(f"Could not save settings to {self.settings_path}: {e}")
                self.console.print(f"[red]Setting changed for this session but could not be saved: {e}[/red]")
                continue
            self.console.print(f"[green]{label} updated to {self.settings.value_text(key) or '<empty>'}.[/green]")
            if key == "SAVE_LOCATION":
                self.console.print(f"[cyan]New vaults will be stored at {self.settings.vault_path} "
                                   f"from the next start.[/cyan]")

    def load_external_vault(self) -> None:
        current = os.path.abspath(self.store.vault_path)
        recent = [p for p in vault_manager.get_recent_vault_paths(self.config_dir) if p != current]
        for number, path in enumerate(recent, 1):
            self.console.print(f"  [bold]{number})[/bold] {path}")

        raw = self._ask("Path of the vault file to load" + (" (or a number from the list)" if recent else ""))
        self._check_cancel(raw)
        if not raw:
            return
        if raw.isdigit() and 1 <= int(raw) <= len(recent):
            path = recent[int(raw) - 1]
        else:
            path = os.path.abspath(os.path.expanduser(raw))
        if not os.path.isfile(path):
            self.console.print(f"[red]No vault file found at {path}.[/red]")
            return
        if os.path.exists(current) and os.path.samefile(path, current):
            self.console.print(f"[yellow]{path} is the vault already open.[/yellow]")
            return

        passphrase = self._ask(f"Master password for {os.path.basename(path)}", password=True)
        if not passphrase:
            self.console.print("[red]No password entered. Aborting.[/red]")
            return

        try:
            entries = self.store.switch_vault(path, passphrase)
        except (AuthError, ValidationError):
            self.console.print(f"[bold red]{config.AUTH_FAILED_MESSAGE}[/bold red] The current vault remains open.")
            return
        except PersistError as e:
            self.console.print(f"[bold red]Could not save the current vault before switching:[/bold red] {e}")
            self.console.print("[yellow]The current vault remains open.[/yellow]")
            return

        vault_manager.save_recent_vault_path(path, self.config_dir)
        self.console.print(f"[green]Now using {path} ({len(entries)} entries).[/green]")
