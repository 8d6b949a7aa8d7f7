import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from ridesafe.core import config
from ridesafe.database import Base, SessionLocal, engine
from ridesafe.models import admin_code, admission, change_request, identity, sync_event, user  # noqa: F401
from ridesafe.realtime.change_feed import ChangeFeed
from ridesafe.routes import (
    admin_code_routes,
    admission_routes,
    auth_routes,
    change_request_routes,
    profile_routes,
    sync_routes,
)

logging.basicConfig(level=config.LOG_LEVEL, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

app = FastAPI(title='RideSafe API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(config.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')
    app.state.change_feed = ChangeFeed(SessionLocal)


@app.on_event('shutdown')
def close_change_feed() -> None:
    change_feed = getattr(app.state, 'change_feed', None)
    if change_feed is not None:
        change_feed.close()


@app.get('/')
def root():
    return {'status': 'RideSafe API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(admission_routes.router, prefix='/admissions')
app.include_router(change_request_routes.router, prefix='/change-requests')
app.include_router(admin_code_routes.router, prefix='/admin-codes')
app.include_router(profile_routes.router, prefix='/profile')
app.include_router(sync_routes.router, prefix='/sync')
