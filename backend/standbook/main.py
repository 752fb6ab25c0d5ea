from fastapi import FastAPI

from .routers import bookings, policies
from .utils.request_id import request_id_middleware

app = FastAPI(title="Stand Booking API")
app.middleware("http")(request_id_middleware)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(bookings.router)
app.include_router(policies.router)
