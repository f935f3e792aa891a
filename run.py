"""
Run script for the API server.
"""
import os
import uvicorn
from dotenv import load_dotenv

# Environment variables take precedence over .env file values
load_dotenv(override=False)

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")
    reload = os.getenv("RELOAD", "true").lower() == "true"

    uvicorn.run(
        "tcg_pricing.api.main:app",
        host=host,
        port=port,
        reload=reload
    )
