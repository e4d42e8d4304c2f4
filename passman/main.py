"""
Main entry point for the Passman password manager.

Runs one session: load settings, unlock (or create) the vault, run the
menu, and save exactly once on the way out, whichever way that is.
"""

import os
import sys
import logging
import argparse
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel

from . import config
from . import utils
from . import vault_manager
from .errors import AuthError, ValidationError
from .session import SessionController
from .settings import default_settings_path, load_settings
from .storage import SessionStore
from .ui import VaultMenu, ask_secret, prompt_new_master_password

logger = logging.getLogger(__name__)


class PasswordManagerApp:
    """Main application class for the password manager."""

    def __init__(self, vault_path: Optional[str] = None, config_path: Optional[str] = None,
                 console: Optional[Console] = None):
        """
        Initialize the application.

        Args:
            vault_path: Vault file to open instead of the configured one
            config_path: Settings file instead of the default one
            console: Console for all output
        """
        self.console = console or Console()
        self.error_console = Console(stderr=True)
        self.settings_path = config_path or default_settings_path()
        self.config_dir = os.path.dirname(os.path.abspath(self.settings_path))
        self.settings = load_settings(self.settings_path)

        self.storage_path = self._get_default_storage_path(vault_path)
        self.storage = SessionStore(self.storage_path)
        self.controller = SessionController(self.storage, reporter=self._report)
        self.exit_code = config.EXIT_OK

    def _get_default_storage_path(self, vault_path: Optional[str]) -> str:
        """Get the path for the encrypted storage file."""
        if vault_path:
            return os.path.abspath(os.path.expanduser(vault_path))
        return self.settings.vault_path

    def _report(self, ok: bool, message: str) -> None:
        if ok:
            self.console.print(f"[green]{message}[/green]")
        else:
            self.error_console.print(f"[bold red]{message}[/bold red]")

    def _ask_passphrase(self, new_vault: bool) -> Optional[str]:
        """Passphrase provider for the session controller."""
        if new_vault:
            self.console.print(Panel(
                f"No vault found at {self.storage_path}.\n"
                "A new one will be created when you quit.\n\n"
                "[bold]There is NO way to recover a forgotten master password.[/bold]",
                title="Create New Vault", border_style="yellow", expand=False,
            ))
            return prompt_new_master_password(self.console, "Create a master password")
        return ask_secret(self.console, f"Master password for {os.path.basename(self.storage_path)}")

    def install_exit_hooks(self) -> None:
        self.controller.install_exit_hooks()

    def run(self) -> int:
        """Run the application. Returns the exit code."""
        current_state = config.STATE_STARTUP

        while current_state != config.STATE_EXIT:
            if current_state == config.STATE_STARTUP:
                self.console.print(f"[bold magenta]{config.APP_TITLE}[/bold magenta]")
                self.console.print(f"Vault: {self.storage_path}")
                current_state = config.STATE_LOGIN

            elif current_state == config.STATE_LOGIN:
                try:
                    unlocked = self.controller.open_session(self._ask_passphrase)
                except EOFError:
                    self.controller.last_error = AuthError("No master password provided")
                    unlocked = False

                if unlocked:
                    vault_manager.save_recent_vault_path(self.storage_path, self.config_dir)
                    current_state = config.STATE_MAIN_MENU
                else:
                    error = self.controller.last_error
                    if isinstance(error, ValidationError):
                        self.console.print(f"[bold red]The vault decrypted but its contents are invalid:[/bold red] {error}")
                    elif isinstance(error, AuthError) and str(error) != config.AUTH_FAILED_MESSAGE:
                        self.console.print(f"[red]{error}. Exiting.[/red]")
                    else:
                        self.console.print(f"[bold red]{config.AUTH_FAILED_MESSAGE}[/bold red]")
                    self.exit_code = config.EXIT_AUTH_FAILED
                    current_state = config.STATE_EXIT

            elif current_state == config.STATE_MAIN_MENU:
                menu = VaultMenu(self.storage, self.settings, self.settings_path,
                                 console=self.console, config_dir=self.config_dir)
                try:
                    menu.run()
                except EOFError:
                    self.console.print()
                    logger.info("End of input, quitting")
                current_state = config.STATE_EXIT

        return self.exit_code

    def cleanup(self) -> bool:
        """Save and scrub the session. Returns False if the final save failed."""
        return self.controller.close()


def _setup_logging(debug: bool, config_dir: str) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format='%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    )
    try:
        utils.setup_audit_log(os.path.join(config_dir, config.LOG_DIR_NAME))
    except OSError as e:
        logger.warning(f"Audit log disabled: {e}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="passman", description=config.APP_TITLE)
    parser.add_argument("--vault", metavar="PATH", help="vault file to open instead of the configured one")
    parser.add_argument("--config", metavar="PATH",
                        help=f"settings file (default: ${config.CONFIG_PATH_ENV} or "
                             f"~/.config/passman/{config.CONFIG_FILE_NAME})")
    parser.add_argument("--debug", action="store_true", help="enable debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {config.APP_VERSION}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config_path = args.config or default_settings_path()
    _setup_logging(args.debug, os.path.dirname(os.path.abspath(config_path)))

    app = PasswordManagerApp(vault_path=args.vault, config_path=config_path)
    app.install_exit_hooks()

    try:
        code = app.run()
    finally:
        saved = app.cleanup()

    if not saved:
        return config.EXIT_PERSIST_FAILED
    return code


if __name__ == "__main__":
    sys.exit(main())
