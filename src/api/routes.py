import logging
from typing import Dict, List, Optional, Tuple, Type

from aiohttp import web

from src.api.middleware import access_log_middleware, error_middleware, json_error
from src.api.schemas import (
    CreateAccountSchema, CreatePlatformSchema, CreateRepositorySchema,
    UpdateAccountSchema, UpdatePlatformSchema, UpdateRepositorySchema, to_output,
)
from src.domain.exceptions import NotFoundError, StorageError
from src.infrastructure.database import Database, EntityStore

API_PREFIX = "/api/git"
UUID_PATTERN = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

DATABASE_KEY = web.AppKey("database", Database)
ENDPOINTS_KEY = web.AppKey("endpoints", list)


class EntityResource:
    """
    The five CRUD routes for one entity type. The `{id}` segment only matches
    UUID-shaped values, so anything else is a 404 from the router and never
    reaches the store.
    """

    def __init__(
        self,
        plural: str,
        label: str,
        store: EntityStore,
        create_schema: Type,
        update_schema: Type,
        logger: logging.Logger,
        parent: Optional[Tuple[str, EntityStore]] = None,
    ):
        self.plural = plural
        self.label = label
        self.store = store
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.logger = logger
        self.parent = parent

    @property
    def label_plural(self) -> str:
        return self.label[:-1] + "ies" if self.label.endswith("y") else self.label + "s"

    @property
    def collection_path(self) -> str:
        return f"/{self.plural}"

    @property
    def item_path(self) -> str:
        return f"/{self.plural}/{{id:{UUID_PATTERN}}}"

    def routes(self) -> List[web.RouteDef]:
        return [
            web.get(self.collection_path, self.list),
            web.post(self.collection_path, self.create),
            web.get(self.item_path, self.get),
            web.patch(self.item_path, self.update),
            web.delete(self.item_path, self.delete),
        ]

    def describe(self) -> List[Dict[str, str]]:
        base = f"{API_PREFIX}/{self.plural}"
        return [
            {"path": base, "method": "GET", "description": f"Get all git {self.label_plural}"},
            {"path": base, "method": "POST", "description": f"Create a new git {self.label}"},
            {"path": f"{base}/:id", "method": "GET", "description": f"Get a specific git {self.label} by ID"},
            {"path": f"{base}/:id", "method": "PATCH", "description": f"Update a git {self.label} by ID"},
            {"path": f"{base}/:id", "method": "DELETE", "description": f"Soft delete a git {self.label} by ID"},
        ]

    async def _read(self, request: web.Request, schema: Type):
        try:
            payload = await request.json()
        except ValueError:
            self.logger.warning(f"{request.method} {request.path} - Invalid JSON in request body")
            raise web.HTTPBadRequest(reason="Invalid JSON")
        return schema.model_validate(payload)

    async def list(self, request: web.Request) -> web.Response:
        entities = await self.store.list()
        self.logger.debug(f"GET /{self.plural} - Retrieved {len(entities)} {self.label_plural}")
        return web.json_response([to_output(entity) for entity in entities])

    async def create(self, request: web.Request) -> web.Response:
        data = await self._read(request, self.create_schema)
        entity = data.to_entity()

        if self.parent is not None:
            field, parent_store = self.parent
            parent_id = getattr(entity, field)
            try:
                await parent_store.get(parent_id)
            except NotFoundError:
                self.logger.warning(f"POST /{self.plural} - {field} {parent_id} does not exist")
                return json_error(422, f"{field} {parent_id} does not exist")

        created = await self.store.create(entity)
        self.logger.info(f"POST /{self.plural} - Created {self.label} '{created.name}' with ID: {created.id}")
        return web.json_response(to_output(created), status=201)

    async def get(self, request: web.Request) -> web.Response:
        entity = await self.store.get(request.match_info["id"])
        return web.json_response(to_output(entity))

    async def update(self, request: web.Request) -> web.Response:
        data = await self._read(request, self.update_schema)
        entity_id = request.match_info["id"]
        # Soft deletion does not block edits.
        current = await self.store.get(entity_id, include_deleted=True)
        updated = await self.store.update(data.apply(current))
        self.logger.info(f"PATCH /{self.plural}/{entity_id} - Updated {self.label} '{updated.name}'")
        return web.json_response(to_output(updated))

    async def delete(self, request: web.Request) -> web.Response:
        entity_id = request.match_info["id"]
        deleted = await self.store.soft_delete(entity_id)
        self.logger.info(f"DELETE /{self.plural}/{entity_id} - Deleted {self.label} '{deleted.name}'")
        return web.json_response(to_output(deleted))


async def health(request: web.Request) -> web.Response:
    try:
        await request.app[DATABASE_KEY].ping()
    except StorageError as e:
        return web.json_response(
            {"status": "unhealthy", "database": "disconnected", "error": str(e)}, status=503,
        )
    return web.json_response({"status": "healthy", "database": "connected"})


async def list_routes(request: web.Request) -> web.Response:
    return web.json_response({
        "service": "Git Insights API",
        "version": "1.0.0",
        "endpoints": request.app[ENDPOINTS_KEY],
    })


def build_resources(database: Database, logger: logging.Logger) -> List[EntityResource]:
    return [
        EntityResource(
            "platforms", "platform", database.platforms,
            CreatePlatformSchema, UpdatePlatformSchema, logger,
        ),
        EntityResource(
            "accounts", "account", database.accounts,
            CreateAccountSchema, UpdateAccountSchema, logger,
            parent=("platform_id", database.platforms),
        ),
        EntityResource(
            "repos", "repository", database.repositories,
            CreateRepositorySchema, UpdateRepositorySchema, logger,
            parent=("account_id", database.accounts),
        ),
    ]


def build_app(database: Database, logger: logging.Logger) -> web.Application:
    """Root app with /health and /routes, and the CRUD routes mounted under /api/git."""
    app = web.Application(middlewares=[access_log_middleware(logger), error_middleware(logger)])
    app[DATABASE_KEY] = database

    git = web.Application()
    resources = build_resources(database, logger)
    for resource in resources:
        git.add_routes(resource.routes())
    app.add_subapp(API_PREFIX, git)

    app[ENDPOINTS_KEY] = [
        {"path": "/health", "method": "GET", "description": "Health check endpoint - verifies database connectivity"},
        {"path": "/routes", "method": "GET", "description": "Lists all available API endpoints"},
    ] + [endpoint for resource in resources for endpoint in resource.describe()]
    app.router.add_get("/health", health)
    app.router.add_get("/routes", list_routes)
    return app
