#!/usr/bin/env python
"""
Entry point for the Golden Host backend.
Starts the FastAPI server with uvicorn.
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "goldenhost.main:app",
        host="0.0.0.0",
        port=int(os.environ.get("PORT", 3000)),
        log_level="info",
    )
