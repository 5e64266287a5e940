"""Run the API with uvicorn: ``python -m codedrop``."""
import uvicorn

from codedrop.config import settings

if __name__ == "__main__":
    uvicorn.run("codedrop.main:app", host="0.0.0.0", port=settings.API_PORT)
