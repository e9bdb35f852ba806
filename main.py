import uvicorn

from analytics_engine.config import settings
from analytics_engine.main import app

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
