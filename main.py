import asyncio
import json
import sys

import questionary

from config import get_config_value, load_config, validate_config
from menus.auth_menu import spotify_authenticate
from menus.main_menu import EXIT, START_PLAYER, handle_account_choice, main_menu
from spotify_api.token_manager import TokenManager
from ui.app import run_player
from utils.logger import log_error, log_info, log_warning, setup_logging


def start_player(config: dict) -> int:
    tm = TokenManager(cache_path=get_config_value(config, "spotify_token_cache_path"))
    if tm.load() is None:
        log_warning("No cached Spotify token found.")
        if questionary.confirm("Authenticate with Spotify now?", default=True).ask():
            spotify_authenticate(config)

    # The player owns the terminal; log to the file only while it runs.
    setup_logging(config.get("log_file"), config.get("log_level", "INFO"), console=False)
    try:
        return asyncio.run(run_player(config))
    finally:
        setup_logging(config.get("log_file"), config.get("log_level", "INFO"))
        print()


def main() -> int:
    setup_logging(None)

    try:
        config = load_config()
    except json.JSONDecodeError as e:
        log_error(f"Config file contains invalid JSON: {e}")
        return 1
    except (OSError, ValueError) as e:
        log_error(f"Error loading config: {e}")
        return 1

    setup_logging(config.get("log_file"), config.get("log_level", "INFO"))

    is_valid, errors = validate_config(config)
    if not is_valid:
        for err in errors:
            log_warning(err)
        log_info("Choose 'Spotify app setup help' for instructions.")

    while True:
        choice = main_menu()

        if choice == START_PLAYER:
            start_player(config)

        elif choice == EXIT:
            log_info("Exiting program...")
            return 0

        else:
            handle_account_choice(choice, config)


if __name__ == "__main__":
    sys.exit(main())
