import logging
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from dogtraining.core import config
from dogtraining.core.errors import DomainError
from dogtraining.database import Base, engine, ensure_booking_schema, ensure_class_schema
from dogtraining.models import booking, group_class, slot, user  # noqa: F401
from dogtraining.routes import auth_routes, booking_routes, class_routes, slot_routes, user_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

config.validate_runtime_config()

app = FastAPI(title='Dog Training Scheduler API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def error_response(status_code: int, message) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={'error': message})


def describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return 'Invalid request.'

    first = errors[0]
    message = str(first.get('msg', 'Invalid value'))
    message = message.removeprefix('Value error, ')
    location = [str(part) for part in first.get('loc', ()) if part not in ('body', 'query', 'path')]
    if location:
        return f'{location[-1]}: {message}'
    return message


@app.exception_handler(DomainError)
async def handle_domain_error(_request: Request, exc: DomainError) -> JSONResponse:
    return error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, describe_validation_error(exc))


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == 'Not Found':
        return error_response(404, 'Route not found')
    return error_response(exc.status_code, exc.detail)


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error while handling %s %s', request.method, request.url.path)
    return error_response(503, 'Database unavailable. Verify DATABASE_URL and database credentials.')


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception('Unhandled error while handling %s %s', request.method, request.url.path)
    return error_response(500, 'Something went wrong!')


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
        ensure_class_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Dog Training API Running'}


@app.get('/health')
def health():
    return {'status': 'OK', 'timestamp': datetime.now().isoformat()}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(user_routes.router, prefix='/users')
app.include_router(slot_routes.router, prefix='/slots')
app.include_router(booking_routes.router, prefix='/bookings')
app.include_router(class_routes.router, prefix='/classes')
