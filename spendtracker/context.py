"""Preferences and session state, loaded once and saved on every change."""
import json
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from spendtracker.exceptions import ValidationError
from spendtracker.logger import get_logger, set_user_context

logger = get_logger(__name__)

THEMES = ("light", "dark", "system")


@dataclass
class Session:
    user_name: Optional[str] = None
    auth_token: Optional[str] = None

    @property
    def is_logged_in(self) -> bool:
        return bool(self.user_name)


@dataclass
class AppContext:
    path: Path
    theme: str = "system"
    currency: str = "₹"
    session: Session = field(default_factory=Session)

    @classmethod
    def load(cls, path: Path, currency: str = "₹") -> "AppContext":
        path = Path(path)
        context = cls(path=path, currency=currency)
        if not path.exists():
            return context

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences file {path}: {e}")
            return context
        if not isinstance(data, dict):
            logger.warning(f"Ignoring preferences file {path}: expected a JSON object")
            return context

        theme = data.get("theme", "system")
        context.theme = theme if theme in THEMES else "system"
        session = data.get("session")
        if not isinstance(session, dict):
            session = {}
        context.session = Session(
            user_name=session.get("user_name"),
            auth_token=session.get("auth_token"),
        )
        set_user_context(context.session.user_name)
        return context

    def save(self) -> None:
        data = {"theme": self.theme, "session": asdict(self.session)}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug(f"Saved preferences to {self.path}")

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValidationError(f"Theme must be one of: {', '.join(THEMES)}")
        self.theme = theme
        self.save()

    def login(self, user_name: str, auth_token: Optional[str] = None) -> None:
        if not user_name or not user_name.strip():
            raise ValidationError("User name is required")
        self.session = Session(user_name=user_name.strip(), auth_token=auth_token)
        set_user_context(self.session.user_name)
        logger.info("Logged in")
        self.save()

    def logout(self) -> None:
        logger.info("Logged out")
        self.session = Session()
        set_user_context(None)
        self.save()

    def rename(self, user_name: str) -> bool:
        """Change the display name; returns False when nothing changed."""
        if not self.session.is_logged_in:
            raise ValidationError("Log in first")
        user_name = (user_name or "").strip()
        if not user_name:
            raise ValidationError("User name is required")
        if user_name == self.session.user_name:
            return False
        self.session.user_name = user_name
        set_user_context(user_name)
        self.save()
        return True
