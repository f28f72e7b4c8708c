# flightdesk/main.py
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from flightdesk.config import settings
from flightdesk.db.session import engine
from flightdesk.models.booking import Base
from flightdesk.routes import booking

logging.basicConfig(level=settings.LOG_LEVEL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield
    # pending payment timers must not outlive the process
    booking.session_registry.close_all()


app = FastAPI(
    title="Flightdesk",
    version="1.0.0",
    description="Flight search and booking service",
    lifespan=lifespan,
)

# Mount routes
app.include_router(booking.router, prefix="/booking", tags=["Booking"])

@app.get("/")
def root():
    return {"message": "Flightdesk is running"}
