"""Centralized v1 API router; module routers are included here."""

from fastapi import APIRouter

from src.modules.dispute.router import admin_router as dispute_admin_router
from src.modules.dispute.router import deals_router as dispute_deals_router

v1_router = APIRouter(prefix="/api/v1")
v1_router.include_router(dispute_deals_router)
v1_router.include_router(dispute_admin_router)
