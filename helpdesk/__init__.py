"""Multi-tenant helpdesk API."""
