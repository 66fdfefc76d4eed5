"""FastAPI application — bids_matrix analytics and trading backend."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bids_matrix.server.routes.analytics import router as analytics_router
from bids_matrix.server.routes.trading import router as trading_router

app = FastAPI(
    title="bids_matrix",
    version="1.0.0",
    description="Backend API for TP/SL optimization, analysis and paper trading sessions",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(analytics_router)
app.include_router(trading_router)


@app.get("/")
def root():
    return {"service": "bids_matrix", "version": "1.0.0"}
