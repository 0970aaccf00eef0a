# Quick reference commands (run from repo root). These are comments only; copy/paste as needed.

# Install the app and the test extra
# python -m pip install -e ".[test]"

# Run the full test suite (DB tests are skipped unless DATABASE_URL points at a scratch database)
# python -m pytest
# DATABASE_URL=postgresql://localhost/quotedesk_test python -m pytest

# Run focused test files
# python -m pytest tests/test_quoting.py tests/test_quick_fill.py
# python -m pytest tests/test_cache.py tests/test_realtime.py
# python -m pytest tests/test_security_headers.py tests/test_security_auth.py
# python -m pytest tests/test_quote_store.py tests/test_part_store.py

# Start the API locally (with env vars loaded)
# python -m dotenv run -- python -m uvicorn app.api:app --reload
# python main.py

# Create staff accounts
# python -m scripts.create_user admin@example.com 'change-me-please' admin "Office Admin"
# python -m scripts.create_user driver@example.com 'change-me-please' driver "Van One"

# Inspect the database
# python scripts/db_shell.py
# python scripts/db_shell.py "SELECT id, quote_ref, status, created_at FROM quotes ORDER BY created_at DESC LIMIT 10"
# python -m scripts.check_quote 42

# Run without the LISTEN/NOTIFY cache listener
# REALTIME_ENABLED=false python -m uvicorn app.api:app
