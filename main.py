from fastapi import FastAPI, Depends, HTTPException, status, UploadFile, File, Form, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, Optional
import logging

import schemas
from auth import Authenticator, SESSION_CLAIMS, session_claims, verify_token
from campaigns import CampaignLedger
from config import Config
from database import engine, Base, get_db, SessionLocal
from donations import DonationLedger
from errors import DonationHubError, ValidationFailure
from file_utils import (
    ALLOWED_MIME_TYPES, IMAGES_DIR, ensure_directories, save_upload_file_securely,
    cleanup_temp_files, remove_image
)
from identities import CredentialStore
from models import Identity, IdentitySpace
from reporting import ReportingEngine
from security_middleware import (
    SecurityHeadersMiddleware,
    RequestSizeLimitMiddleware,
    setup_rate_limits,
)

logger = logging.getLogger(__name__)


def create_default_admin(db: Session) -> Optional[Identity]:
    """Register the configured bootstrap admin if it does not exist yet."""
    if not (Config.DEFAULT_ADMIN_EMAIL and Config.DEFAULT_ADMIN_PASSWORD):
        return None

    authenticator = Authenticator(db, IdentitySpace.ADMIN)
    admin = authenticator.store.get_by_email(Config.DEFAULT_ADMIN_EMAIL)
    if admin:
        logger.info("Default admin already exists")
        return admin

    admin = authenticator.register(schemas.IdentityCreate(
        name=Config.DEFAULT_ADMIN_NAME,
        email=Config.DEFAULT_ADMIN_EMAIL,
        password=Config.DEFAULT_ADMIN_PASSWORD,
    ))
    logger.info(f"Default admin created: {admin.email}")
    return admin


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up Donation Hub...")

    Base.metadata.create_all(bind=engine)
    ensure_directories()
    cleanup_temp_files()

    db = SessionLocal()
    try:
        create_default_admin(db)
    finally:
        db.close()

    logger.info("Server ready to accept connections")

    yield

    logger.info("Shutting down server...")


app = FastAPI(
    title="Donation Hub",
    description="Campaigns, donations and contributor leaderboard",
    version="1.0.0",
    lifespan=lifespan,
)

limiter = setup_rate_limits(app)

app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# Uploaded photos and campaign images, referenced by generated filename
app.mount("/images", StaticFiles(directory=str(IMAGES_DIR), check_dir=False), name="images")


# Error rendering

HTTP_ERROR_CODES = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    413: "payload_too_large",
}


@app.exception_handler(DonationHubError)
async def donation_hub_error_handler(request: Request, exc: DonationHubError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": ValidationFailure.code,
            "detail": "Invalid or missing fields",
            "errors": jsonable_encoder([
                {key: error.get(key) for key in ("loc", "msg", "type")}
                for error in exc.errors()
            ]),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": HTTP_ERROR_CODES.get(exc.status_code, "http_error"),
            "detail": exc.detail,
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "internal_error", "detail": "Internal server error"},
    )


# Dependencies

def get_user_authenticator(db: Session = Depends(get_db)) -> Authenticator:
    return Authenticator(db, IdentitySpace.USER)


def get_admin_authenticator(db: Session = Depends(get_db)) -> Authenticator:
    return Authenticator(db, IdentitySpace.ADMIN)


def get_user_store(db: Session = Depends(get_db)) -> CredentialStore:
    return CredentialStore(db, IdentitySpace.USER)


def get_campaign_ledger(db: Session = Depends(get_db)) -> CampaignLedger:
    return CampaignLedger(db)


def get_donation_ledger(db: Session = Depends(get_db)) -> DonationLedger:
    return DonationLedger(db)


def get_reporting_engine(db: Session = Depends(get_db)) -> ReportingEngine:
    return ReportingEngine(db)


security = HTTPBearer(auto_error=False)


async def get_current_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """Claims of the session token sent as a bearer header or cookie."""
    token = credentials.credentials if credentials else request.cookies.get(Config.TOKEN_COOKIE_NAME)
    claims = verify_token(token)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims


async def get_current_admin(
    claims: dict = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Identity:
    admin = CredentialStore(db, IdentitySpace.ADMIN).get(claims["id"])
    if admin is None or admin.email != claims["email"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return admin


# Helpers

def validated(schema, **fields):
    """Build a schema from form fields, reporting problems as ValidationFailure."""
    try:
        return schema(**fields)
    except ValidationError as e:
        messages = [error["msg"] for error in e.errors()]
        raise ValidationFailure("; ".join(messages)) from e


async def store_image(upload: Optional[UploadFile], field_name: str) -> Optional[str]:
    if upload is None or not upload.filename:
        return None

    if not upload.content_type or upload.content_type not in ALLOWED_MIME_TYPES:
        raise ValidationFailure("Only JPG and PNG images are allowed")

    try:
        filename = await save_upload_file_securely(upload, field_name)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=str(e)
        )
    if not filename:
        raise ValidationFailure("Invalid image file")
    return filename


def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        key=Config.TOKEN_COOKIE_NAME,
        value=token,
        max_age=Config.ACCESS_TOKEN_EXPIRE_HOURS * 3600,
        httponly=True,
        secure=Config.COOKIE_SECURE,
        samesite="lax",
    )


async def register_identity(authenticator: Authenticator, data: schemas.IdentityCreate,
                            photo: Optional[UploadFile]) -> Identity:
    photo_name = await store_image(photo, "photo")
    try:
        # bcrypt is CPU-bound; keep it off the event loop
        return await run_in_threadpool(authenticator.register, data, photo_name)
    except DonationHubError:
        remove_image(photo_name)
        raise


# Users

@app.post("/addNewUser", status_code=status.HTTP_201_CREATED)
async def add_new_user(
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    role: str = Form(None),
    photo: UploadFile = File(None),
    authenticator: Authenticator = Depends(get_user_authenticator),
):
    """Register a user with an optional profile photo."""
    data = validated(schemas.IdentityCreate, name=name, email=email, role=role, password=password)
    user = await register_identity(authenticator, data, photo)
    return {
        "success": True,
        "message": "User successfully added!",
        "user": schemas.Identity.model_validate(user),
    }


@app.get("/getUsers", response_model=List[schemas.Identity])
async def get_users(users: CredentialStore = Depends(get_user_store)):
    return users.list()


@app.delete("/deleteUser/{user_id}")
async def delete_user(
    user_id: int,
    current_admin: Identity = Depends(get_current_admin),
    users: CredentialStore = Depends(get_user_store),
):
    users.remove(user_id)
    return {"success": True, "message": "User deleted"}


@app.get("/usersCount")
async def users_count(users: CredentialStore = Depends(get_user_store)):
    return {"users": users.count()}


@app.post("/userLogin")
@limiter.limit(Config.LOGIN_RATE_LIMIT)
async def user_login(
    request: Request,
    response: Response,
    credentials: schemas.LoginRequest,
    authenticator: Authenticator = Depends(get_user_authenticator),
):
    """User login; the token is returned and also set as a cookie."""
    session = await run_in_threadpool(authenticator.login, credentials.email, credentials.password)
    set_session_cookie(response, session.token)
    return {
        "success": True,
        "message": "Login successful!",
        "token": session.token,
        "user": session_claims(session.identity),
    }


# Admins

@app.post("/addNewAdmin", status_code=status.HTTP_201_CREATED)
async def add_new_admin(
    name: str = Form(...),
    email: str = Form(...),
    password: str = Form(...),
    photo: UploadFile = File(None),
    authenticator: Authenticator = Depends(get_admin_authenticator),
    current_admin: Identity = Depends(get_current_admin),
):
    data = validated(schemas.IdentityCreate, name=name, email=email, password=password)
    admin = await register_identity(authenticator, data, photo)
    logger.info(f"Admin {admin.id} added by admin {current_admin.id}")
    return {
        "success": True,
        "message": "Admin successfully added!",
        "admin": schemas.Identity.model_validate(admin),
    }


@app.post("/adminLogin")
@limiter.limit(Config.LOGIN_RATE_LIMIT)
async def admin_login(
    request: Request,
    response: Response,
    credentials: schemas.LoginRequest,
    authenticator: Authenticator = Depends(get_admin_authenticator),
):
    session = await run_in_threadpool(authenticator.login, credentials.email, credentials.password)
    set_session_cookie(response, session.token)
    return {
        "success": True,
        "message": "Login successful!",
        "token": session.token,
        "admin": session_claims(session.identity),
    }


# Session

@app.api_route("/logout", methods=["GET", "POST"])
async def logout(response: Response):
    """Tokens are stateless; logging out only clears the client cookie."""
    response.delete_cookie(Config.TOKEN_COOKIE_NAME)
    return {"success": True, "message": "Logged out"}


@app.get("/verifyToken")
async def verify_session(claims: dict = Depends(get_current_identity)):
    return {
        "success": True,
        "user": {claim: claims[claim] for claim in SESSION_CLAIMS},
        "expires_at": datetime.fromtimestamp(claims["exp"], tz=timezone.utc),
    }


# Campaigns

@app.post("/createCampaign", status_code=status.HTTP_201_CREATED)
async def create_campaign(
    title: str = Form(...),
    goal: str = Form(..., alias="goalAmount"),
    description: str = Form(None),
    start: str = Form(None, alias="startDate"),
    end: str = Form(None, alias="endDate"),
    campaign_status: str = Form("active", alias="status"),
    image: UploadFile = File(None),
    current_admin: Identity = Depends(get_current_admin),
    campaigns: CampaignLedger = Depends(get_campaign_ledger),
):
    data = validated(
        schemas.CampaignCreate,
        title=title,
        goal=goal,
        description=description,
        start=start or None,
        end=end or None,
        status=campaign_status,
    )
    image_name = await store_image(image, "image")
    try:
        campaign = campaigns.create(data, image=image_name)
    except DonationHubError:
        remove_image(image_name)
        raise
    return {"success": True, "campaign": schemas.Campaign.model_validate(campaign)}


@app.get("/getCampaigns", response_model=List[schemas.Campaign])
async def get_campaigns(campaigns: CampaignLedger = Depends(get_campaign_ledger)):
    return campaigns.list()


@app.put("/updateCampaignStatus/{campaign_id}")
async def update_campaign_status(
    campaign_id: int,
    update: schemas.CampaignStatusUpdate,
    current_admin: Identity = Depends(get_current_admin),
    campaigns: CampaignLedger = Depends(get_campaign_ledger),
):
    campaign = campaigns.set_status(campaign_id, update.status)
    return {
        "success": True,
        "message": "Campaign status updated successfully",
        "campaign": schemas.Campaign.model_validate(campaign),
    }


@app.get("/countAllCampaignsStatus")
async def count_campaigns_by_status(campaigns: CampaignLedger = Depends(get_campaign_ledger)):
    return {"success": True, "result": campaigns.count_by_status()}


@app.get("/campaignsCount")
async def campaigns_count(campaigns: CampaignLedger = Depends(get_campaign_ledger)):
    return {"campaigns": campaigns.count()}


@app.put("/updateRaisedAmount", response_model=List[schemas.Campaign])
async def update_raised_amount(campaigns: CampaignLedger = Depends(get_campaign_ledger)):
    """Recompute every campaign's raised amount from its donations."""
    return campaigns.recompute_raised()


@app.delete("/deleteCampaign/{campaign_id}")
async def delete_campaign(
    campaign_id: int,
    current_admin: Identity = Depends(get_current_admin),
    campaigns: CampaignLedger = Depends(get_campaign_ledger),
):
    campaigns.remove(campaign_id)
    return {"success": True, "message": "Campaign deleted"}


# Donations

@app.post("/addToDonations", status_code=status.HTTP_201_CREATED)
async def add_to_donations(
    donation: schemas.DonationCreate,
    donations: DonationLedger = Depends(get_donation_ledger),
):
    record = donations.record(donation.user_id, donation.campaign_id, donation.amount, donation.message)
    return {"success": True, "donation": schemas.Donation.model_validate(record)}


@app.get("/getDonations", response_model=List[schemas.DonationView])
async def get_donations(reporting: ReportingEngine = Depends(get_reporting_engine)):
    return reporting.list_donations()


@app.get("/getMyDonations/{user_id}", response_model=List[schemas.DonationView])
async def get_my_donations(user_id: int, reporting: ReportingEngine = Depends(get_reporting_engine)):
    return reporting.list_donations_for_user(user_id)


@app.get("/donationsCount")
async def donations_count(donations: DonationLedger = Depends(get_donation_ledger)):
    return {"donations": donations.count()}


@app.delete("/deleteDonation/{donation_id}")
async def delete_donation(
    donation_id: int,
    current_admin: Identity = Depends(get_current_admin),
    donations: DonationLedger = Depends(get_donation_ledger),
):
    donations.remove(donation_id)
    return {"success": True, "message": "Donation deleted"}


# Reporting

@app.get("/getLeaderboard", response_model=List[schemas.LeaderboardEntry])
async def get_leaderboard(reporting: ReportingEngine = Depends(get_reporting_engine)):
    return reporting.leaderboard()


@app.get("/exportDonations")
async def export_donations(
    format: str = Query("csv", pattern="^(csv|excel)$"),
    current_admin: Identity = Depends(get_current_admin),
    reporting: ReportingEngine = Depends(get_reporting_engine),
):
    """Export the donation feed as CSV or Excel."""
    output, media_type, filename = reporting.export_donations(format)
    return StreamingResponse(
        output,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=Config.HOST, port=Config.PORT)
