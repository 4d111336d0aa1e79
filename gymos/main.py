import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from gymos.version import VERSION
from gymos.core.log import setup_logging
from gymos.api import routes_auth, gyms, roles, users, categories, products, orders, trainer_matches, analytics
from prometheus_fastapi_instrumentator import Instrumentator

setup_logging()
log = logging.getLogger("gymos")

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title='GymOS API', version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    log.warning(f"integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=409, content={'detail': 'Duplicate or conflicting record'})

@app.get('/health')
def health(): return {'status':'ok'}

@app.get('/v1/_info')
def info(): return {'service':'gymos','version':VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            log.debug(f"{sorted(route.methods)} {route.path}")
    log.info(f"GymOS API {VERSION} started")

app.include_router(routes_auth.router, prefix='/auth',       tags=['auth'])
app.include_router(gyms.router,        prefix='/gyms',       tags=['gyms'])
app.include_router(roles.router,       prefix='/roles',      tags=['roles'])
app.include_router(users.router,       prefix='/users',      tags=['users'])
app.include_router(categories.router,  prefix='/categories', tags=['categories'])
app.include_router(products.router,    prefix='/products',   tags=['products'])
app.include_router(orders.router,      prefix='/orders',     tags=['orders'])
app.include_router(trainer_matches.router, prefix='/trainer-matches', tags=['trainer-matches'])
app.include_router(analytics.router,   prefix='/analytics',  tags=['analytics'])
