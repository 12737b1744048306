"""SQLAlchemy ORM models."""

from helpdesk.db.models.tenancy import Client, Company, Membership, SlaPolicy, User
from helpdesk.db.models.portal import CustomerPortalAccess, PortalOtpCode
from helpdesk.db.models.ticketing import Ticket, TicketComment
from helpdesk.db.models.forms import Form, FormSubmission
from helpdesk.db.models.knowledge import KnowledgeBaseArticle
from helpdesk.db.models.integrations import EmailThread, GmailIntegration
from helpdesk.db.models.api_keys import ApiKey

__all__ = [
    "ApiKey",
    "Client",
    "Company",
    "CustomerPortalAccess",
    "EmailThread",
    "Form",
    "FormSubmission",
    "GmailIntegration",
    "KnowledgeBaseArticle",
    "Membership",
    "PortalOtpCode",
    "SlaPolicy",
    "Ticket",
    "TicketComment",
    "User",
]
