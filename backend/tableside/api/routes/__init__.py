"""API routes."""

from fastapi import APIRouter

from tableside.api.routes import auth, subscriptions, table_sessions, tables

api_router = APIRouter()

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(table_sessions.router, prefix="/table-sessions", tags=["table-sessions"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(subscriptions.router, prefix="/restaurants", tags=["subscriptions"])
