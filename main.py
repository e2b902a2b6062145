import os
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse
import traceback
from starlette.middleware.base import BaseHTTPMiddleware

from config import CORS_ORIGINS, RECEIPTS_DIR
# Import logging
from logging_config import logger, log_request_info, log_response_info

# Import routers
from routers import auth, company, users, expenses, team, notifications, receipts
from routers.receipts import RECEIPT_URL_PREFIX
from services.errors import ExpenseAppError
from database.db import init_db

# Create FastAPI app
app = FastAPI(
    title="Expense Management API",
    description="""
    # Expense Management API

    Multi-tenant expense reporting: employees submit expense claims, managers and
    admins approve or reject them through a policy-driven approval workflow, and
    receipts can be scanned to pre-fill claims.

    ## Features

    - **Companies**: each signup creates a company with its own currency and approval policy
    - **User Management**: admins create employees, managers and admins and assign managers
    - **Expense Claims**: submit claims, auto-approval below the company threshold
    - **Approval Workflow**: manager and/or admin approval steps, rejection by any approver is final
    - **Currency Conversion**: managers and admins see claims converted to the company currency
    - **Receipts**: upload receipts and scan them with OCR to pre-fill claims
    - **Notifications**: every workflow event notifies the people involved

    ## User Roles

    - **Employee**: submits and follows their own claims
    - **Manager**: sees own, team and assigned claims; approves or rejects assigned claims
    - **Admin**: manages the company, its users and its policy; sees every claim of the company

    ## Authentication

    All endpoints (except signup and login) require a bearer token:

    ```
    Authorization: Bearer your_access_token
    ```

    You can get an access token by calling the `/auth/login` endpoint with valid credentials.
    """,
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Authentication",
            "description": "Company signup, login and current user"
        },
        {
            "name": "Company",
            "description": "Company settings and approval policy"
        },
        {
            "name": "Users",
            "description": "User management within a company"
        },
        {
            "name": "Expenses",
            "description": "Expense claim submission, listing and approval decisions"
        },
        {
            "name": "Team",
            "description": "Manager views over their direct reports"
        },
        {
            "name": "Notifications",
            "description": "Operations related to user notifications"
        },
        {
            "name": "Receipts",
            "description": "Receipt upload and OCR scanning"
        },
        {
            "name": "Root",
            "description": "Root endpoint for the API"
        }
    ]
)

# Logging middleware
class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        log_request_info(request)
        try:
            response = await call_next(request)
            log_response_info(response)
            return response
        except Exception as e:
            logger.error(f"Request failed: {str(e)}")
            logger.error(traceback.format_exc())
            raise

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount static files for receipts
os.makedirs(RECEIPTS_DIR, exist_ok=True)
app.mount(RECEIPT_URL_PREFIX, StaticFiles(directory=RECEIPTS_DIR), name="receipt_files")

# Include routers
app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(company.router, prefix="/company", tags=["Company"])
app.include_router(users.router, prefix="/users", tags=["Users"])
app.include_router(expenses.router, prefix="/expenses", tags=["Expenses"])
app.include_router(team.router, prefix="/team", tags=["Team"])
app.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
app.include_router(receipts.router, prefix="/receipts", tags=["Receipts"])

# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    logger.info("Root endpoint accessed")
    return {"message": "Welcome to Expense Management API"}

# Domain errors carry their own status code
@app.exception_handler(ExpenseAppError)
async def expense_app_exception_handler(request: Request, exc: ExpenseAppError):
    logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message}
    )

# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.error(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred"}
    )

# Startup event to initialize database
@app.on_event("startup")
async def startup_event():
    logger.info("Starting application...")
    await init_db()
    logger.info("Application started successfully")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
