from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
import os
import logging

from audit_service import AuditService
from bill_routes import bill_router
from reconciliation import (
    QuantityReconciliationEngine, BillReversalService, mongo_unit_of_work_factory
)
from reconciliation.stores import ensure_indexes

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# MongoDB connection with replica set for transactions
mongo_url = os.environ.get('MONGO_URL', 'mongodb://localhost:27017/?replicaSet=rs0')
db_name = os.environ.get('DB_NAME', 'contractor_po')
cors_origins = [origin.strip() for origin in os.environ.get('CORS_ORIGINS', '*').split(',') if origin.strip()]

client = AsyncIOMotorClient(mongo_url)
db = client[db_name]


@asynccontextmanager
async def lifespan(app: FastAPI):
    await ensure_indexes(db)
    logger.info(f"Connected to database: {db_name}")
    yield
    client.close()


# Create the main app
app = FastAPI(
    title="Contractor PO System - Bill Quantity Reconciliation",
    version="1.0.0",
    description="Keeps bills, JobopsMaster and Contractor_WD quantities consistent",
    lifespan=lifespan
)

# Initialize services
unit_of_work_factory = mongo_unit_of_work_factory(client, db)
app.state.reconciliation_engine = QuantityReconciliationEngine(unit_of_work_factory)
app.state.reversal_service = BillReversalService(unit_of_work_factory)
app.state.audit_service = AuditService(db)

api_router = APIRouter(prefix="/api")


@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "version": "1.0.0"
    }


# Include routers in main app
app.include_router(api_router)
app.include_router(bill_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)
