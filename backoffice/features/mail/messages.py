"""
Outbound mail messages and their rendering.
"""
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, select_autoescape

from backoffice.core import config


TEMPLATES_DIR = Path(__file__).resolve().parent.parent.parent / "templates"

_environment = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html"]),
)


@dataclass
class MailMessage:
    to: str
    subject: str
    html_body: str
    text_body: str
    attempts: int = 0


@dataclass(frozen=True)
class WelcomeMessage:
    """Login details for a freshly created account."""
    to: str
    name: str
    password: str

    def render(self) -> MailMessage:
        context = {
            "app_name": config.APP_NAME,
            "user_name": self.name,
            "user_email": self.to,
            "password": self.password,
            "login_url": f"{config.APP_URL.rstrip('/')}/login",
            "year": datetime.now().year,
        }
        html = _environment.get_template("emails/user_password.html").render(**context)
        text = (
            f"Welcome, {self.name}!\n\n"
            f"Your {config.APP_NAME} account has been created.\n"
            f"Email: {self.to}\nPassword: {self.password}\n\n"
            f"Log in at {context['login_url']} and change your password."
        )
        return MailMessage(
            to=self.to,
            subject=f"Welcome to {config.APP_NAME}",
            html_body=html,
            text_body=text,
        )
