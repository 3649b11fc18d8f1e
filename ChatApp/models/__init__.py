# Import all SQLAlchemy models so Alembic autogenerate can discover tables via Base.metadata.
# Alembic's env.py imports this package for side effects.

from .chat_models import ChatExchange, ChatSession  # noqa: F401
