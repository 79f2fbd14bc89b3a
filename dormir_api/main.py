# dormir-la-haut-api/dormir_api/main.py
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dormir_api import config
from dormir_api.routers import admin, poi, user

config.configure_logging()

app = FastAPI(
    title="Dormir Là-Haut API",
    description="Places to sleep in the mountains: POI catalog and contribution moderation",
    version="1.0.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(user.router)
app.include_router(poi.router)
app.include_router(admin.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # malformed input is a 400 across the API
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.get("/")
async def root():
    return {"message": "Welcome to Dormir Là-Haut API, find a place to sleep up there"}


@app.get("/health")
async def health_check():
    return {"status": "ok", "firestore": config.db is not None}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("dormir_api.main:app", host="0.0.0.0", port=8000)
