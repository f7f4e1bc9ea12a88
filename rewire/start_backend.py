#!/usr/bin/env python3
"""
Backend startup wrapper for the Rewire meter.
"""
import os
import sys

if __name__ == "__main__":
    try:
        import uvicorn
        uvicorn.run(
            "rewire.main:app",
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "8000")),
            reload=False,
            log_level="info",
            access_log=True
        )
    except KeyboardInterrupt:
        print("\n[Backend] Shutting down...")
        sys.exit(0)
