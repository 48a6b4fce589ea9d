import os

# Settings() is built at import time; give it values before any app module loads
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "aaa.bbb.ccc")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")
