"""Service layer: business logic over SQLAlchemy sessions."""
