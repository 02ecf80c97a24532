# FILE: medstore/api/router.py
from fastapi import APIRouter
from medstore.api import (
    routes_inventory,
    routes_stock_alerts,
    routes_sales,
    routes_medicines,
)

api_router = APIRouter()

# Inventory
api_router.include_router(routes_inventory.router)
api_router.include_router(routes_stock_alerts.router)

# Sales
api_router.include_router(routes_sales.router)

# Catalog
api_router.include_router(routes_medicines.router)
