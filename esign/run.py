#!/usr/bin/env python3
"""Run the eSign service"""
import uvicorn

from esign.core.config import settings

if __name__ == "__main__":
    uvicorn.run(
        "esign.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
