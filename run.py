"""
shardline — Entry Point
"""
import uvicorn

from shardline import settings

if __name__ == "__main__":
    uvicorn.run("shardline.app:app", host="0.0.0.0", port=settings.PORT, log_level="info")
