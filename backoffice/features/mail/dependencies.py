"""
FastAPI dependencies for outbound mail.
"""
from fastapi import Request

from backoffice.features.mail.outbox import MailOutbox


def get_mail_outbox(request: Request) -> MailOutbox:
    return request.app.state.mail_outbox
