"""
Session state: the Gmail login gate and the dashboard theme.
The login is an email-shape check only, not authentication.
"""
import logging
import re

from .store import SettingsStore

logger = logging.getLogger(__name__)

GMAIL_PATTERN = re.compile(r"^[^@\s]+@gmail\.com$", re.IGNORECASE)
THEMES = ("light", "dark")


class LoginError(ValueError):
    """The submitted email was rejected."""


class Session:
    """Process-wide session, loaded from and saved to the settings store."""

    EMAIL_KEY = "auth_email"
    THEME_KEY = "theme"

    def __init__(self, store: SettingsStore):
        self.store = store
        self.email = store.get(self.EMAIL_KEY, "")
        theme = store.get(self.THEME_KEY, "light")
        self.theme = theme if theme in THEMES else "light"

    @property
    def logged_in(self) -> bool:
        return bool(self.email)

    def login(self, value: str):
        email = (value or "").strip()
        if not email:
            raise LoginError("An email address is required.")
        if not GMAIL_PATTERN.match(email):
            raise LoginError("Only Gmail addresses are accepted (example@gmail.com)")
        self.store.set(self.EMAIL_KEY, email)
        self.email = email
        logger.info(f"Logged in as {email}")

    def logout(self):
        self.store.set(self.EMAIL_KEY, "")
        self.email = ""

    def set_theme(self, theme: str):
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self.store.set(self.THEME_KEY, theme)
        self.theme = theme

    def toggle_theme(self) -> str:
        self.set_theme("light" if self.theme == "dark" else "dark")
        return self.theme

    def to_dict(self) -> dict:
        return {"email": self.email, "logged_in": self.logged_in, "theme": self.theme}
