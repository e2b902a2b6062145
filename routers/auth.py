from fastapi import APIRouter, Depends, HTTPException, status, Body
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from typing import Annotated, List
from datetime import datetime, timedelta
import traceback
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import JWT_SECRET_KEY, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from models.user import SignupRequest, User, UserRole, CurrentUser, TokenResponse
from database.operations import create_user, delete_company, get_user_by_email, get_user_by_id
from services.company_service import register_company
from services.user_service import public_user
from logging_config import logger

# Security configuration
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

router = APIRouter()

# Helper functions
def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: timedelta = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)
    return encoded_jwt

def token_for_user(user: dict) -> str:
    return create_access_token(
        data={"sub": user["id"], "role": user["role"], "company_id": user["company_id"]},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )

async def authenticate_user(email: str, password: str):
    user = await get_user_by_email(email)
    if not user:
        return False
    if not verify_password(password, user["hashed_password"]):
        return False
    return user

# Helper to get current user from token
async def get_current_user(token: Annotated[str, Depends(oauth2_scheme)]) -> CurrentUser:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        # Decode the JWT token
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            logger.warning("Subject missing from token")
            raise credentials_exception

        # Re-read the user so deletions and role changes apply immediately
        user = await get_user_by_id(user_id)
        if user is None:
            logger.warning(f"User not found for token subject: {user_id}")
            raise credentials_exception

        return CurrentUser(
            id=user["id"],
            name=user.get("name", ""),
            email=user["email"],
            role=UserRole(user["role"]),
            company_id=user["company_id"],
            manager_id=user.get("manager_id"),
        )
    except JWTError as e:
        logger.warning(f"JWT error: {str(e)}")
        raise credentials_exception
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error getting current user: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error validating credentials"
        )

# Helper to check role
def check_user_role(allowed_roles: List[UserRole]):
    async def _check_user_role(current_user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
        if current_user.role not in allowed_roles:
            logger.warning(
                f"Insufficient permissions. User role: {current_user.role.value}, "
                f"Required roles: {[role.value for role in allowed_roles]}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user
    return _check_user_role

# Register a company and its admin
@router.post(
    "/signup",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a company and its admin",
    description="""
    Create a new company (tenant) together with its first user, who becomes the
    company **admin**. The company starts with the default approval policy:
    threshold 1000, manager approval required, admin approval not required.

    ### curl Example
    ```bash
    curl -X 'POST' \\
      'http://localhost:8000/auth/signup' \\
      -H 'Content-Type: application/json' \\
      -d '{
        "name": "Ada Admin",
        "email": "ada@acme.com",
        "password": "password123",
        "company_name": "Acme Ltd",
        "currency": "USD"
      }'
    ```
    """,
    response_description="Returns an access token and the created admin user"
)
async def signup(
    signup_data: SignupRequest = Body(
        ...,
        example={
            "name": "Ada Admin",
            "email": "ada@acme.com",
            "password": "password123",
            "company_name": "Acme Ltd",
            "currency": "USD"
        }
    )
):
    email = signup_data.email.lower()
    logger.info(f"Signup for company: {signup_data.company_name}")

    try:
        existing_user = await get_user_by_email(email)
        if existing_user:
            logger.warning(f"Signup with existing email: {email}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User already exists"
            )

        company = await register_company(signup_data.company_name, signup_data.currency)

        user_doc = {
            "name": signup_data.name,
            "email": email,
            "role": UserRole.ADMIN.value,
            "company_id": company["id"],
            "hashed_password": get_password_hash(signup_data.password),
        }
        try:
            user_id = await create_user(user_doc)
        except Exception:
            # Don't leave an orphan tenant behind
            await delete_company(company["id"])
            raise

        user = public_user({**user_doc, "id": user_id, "created_at": datetime.utcnow()})
        logger.info(f"Admin {user_id} created for company {company['id']}")
        return {"access_token": token_for_user(user), "token_type": "bearer", "user": user}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during signup: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during signup"
        )

# Login user
@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login to get access token",
    description="""
    Login with email and password to get an access token. The OAuth2 form
    field `username` carries the email address.

    The access token is required for all authenticated endpoints and should be
    included in the Authorization header as a Bearer token.

    **Example header**: `Authorization: Bearer <token>`

    ### curl Example
    ```bash
    curl -X 'POST' \\
      'http://localhost:8000/auth/login' \\
      -H 'Content-Type: application/x-www-form-urlencoded' \\
      -d 'username=ada@acme.com&password=password123'
    ```
    """,
    response_description="Returns an access token, token type and the user"
)
async def login_for_access_token(
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()]
):
    logger.info("Login attempt")
    try:
        user = await authenticate_user(form_data.username.lower(), form_data.password)
        if not user:
            logger.warning("Invalid credentials on login")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )

        logger.info(f"Login successful: {user['id']}")
        return {"access_token": token_for_user(user), "token_type": "bearer", "user": public_user(user)}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error during login: {str(e)}")
        logger.error(traceback.format_exc())
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error during login"
        )

# Get current user info
@router.get(
    "/me",
    response_model=User,
    summary="Get current user information",
    response_description="Returns the authenticated user's information"
)
async def read_users_me(current_user: Annotated[CurrentUser, Depends(get_current_user)]):
    """
    Get information about the currently authenticated user.
    """
    user = await get_user_by_id(current_user.id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return public_user(user)
