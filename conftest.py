"""Global pytest configuration."""

import os

# Set env defaults for tests before any policyrag imports read settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret-with-at-least-32-bytes!!")
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ["OPENAI_API_KEY"] = ""
os.environ["PINECONE_API_KEY"] = ""
