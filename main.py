"""
Entry point to run the web app with uvicorn.
"""
import os

import uvicorn
from dotenv import load_dotenv


if __name__ == "__main__":
    load_dotenv(override=True)
    uvicorn.run(
        "app.api:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )
