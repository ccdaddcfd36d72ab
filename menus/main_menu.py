import questionary

from menus.auth_menu import spotify_authenticate, spotify_logout, spotify_setup_help, spotify_token_status
from utils.logger import log_info

START_PLAYER = "Start player"
AUTHENTICATE = "Authenticate with Spotify"
TOKEN_STATUS = "Show token status"
LOGOUT = "Log out"
SETUP_HELP = "Spotify app setup help"
EXIT = "Exit"


def main_menu() -> str:
    return questionary.select(
        "🎵 spotycli: What would you like to do?",
        choices=[START_PLAYER, AUTHENTICATE, TOKEN_STATUS, LOGOUT, SETUP_HELP, EXIT],
    ).ask() or EXIT


def handle_account_choice(choice: str, config: dict) -> None:
    """Run one of the account-related menu entries."""

    if choice == AUTHENTICATE:
        spotify_authenticate(config)
    elif choice == TOKEN_STATUS:
        log_info(spotify_token_status(config))
    elif choice == LOGOUT:
        spotify_logout(config)
    elif choice == SETUP_HELP:
        spotify_setup_help(config)
