"""
Enrollment configuration form for the Face Unlock enrollment UI.

Holds the values entered in the configuration panel (alias, threshold,
linked account) and turns them into the arguments of
SessionController.save().
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

from core.models import AccountIdentity
from core.verification import VerificationScorer


@dataclass
class SliderRange:
    """Threshold slider bounds."""
    minimum: int = 20
    maximum: int = 100
    value: int = 50
    step: int = 1


@dataclass
class EnrollmentForm:
    """Values from the configuration panel."""
    alias: Optional[str] = None
    threshold: Any = 50
    username: str = ""
    password: str = ""

    def account(self) -> AccountIdentity:
        # Password is collected for the linked account but never stored
        return AccountIdentity(username=(self.username or "").strip(), password=self.password or "")

    def save_arguments(self) -> Tuple[Optional[str], Any, AccountIdentity]:
        """(alias, threshold, account) for SessionController.save()."""
        return self.alias, self.threshold, self.account()


def slider_range(scorer: VerificationScorer) -> SliderRange:
    """Threshold slider bounds from the scorer's configured range."""
    return SliderRange(
        minimum=scorer.min_threshold,
        maximum=scorer.max_threshold,
        value=scorer.default_threshold,
    )


def format_saved_message(file_name: str, form: EnrollmentForm) -> str:
    """Confirmation shown after a successful save."""
    name = (form.alias or "").strip() or "(no alias)"
    return f"Saved **{name}** for `{form.username.strip()}` as `{file_name}`"
