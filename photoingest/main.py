# photoingest/main.py: only app wiring, no endpoints here.
# Run: uvicorn photoingest.main:app --reload --port 8000
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# import routers
from photoingest.api.routes import ingest

app = FastAPI(title="Photoingest API", version="0.1")

# CORS (allow Vite dev)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API routers
app.include_router(ingest.api_router, prefix="/api")
