# main.py - HTTP surface for the query composer

"""
FastAPI application for the SQL query composer.
A UI drives the engine through these endpoints: it owns the query state,
sends it back on every change and renders the SQL that comes out.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import time

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
import uvicorn

from config import APP_CONFIG, LOG_CONFIG, FEATURE_FLAGS, check_config
from schema_catalog import DatabaseSchema, TableId, load_catalog
from query_state import QueryState, add_table, apply_state_fragment, suggest_starters
from sql_compiler import (
    QueryComposerError,
    SQLCompiler,
    ExpressionValidator,
    sanitize_alias,
    infer_join,
    suggest_join
)


# Configure logging
logging.basicConfig(
    level=LOG_CONFIG["level"],
    format=LOG_CONFIG["format"]
)
logger = logging.getLogger(__name__)

# Schema served when a request does not carry its own
ACTIVE_SCHEMA = load_catalog(APP_CONFIG["schema_catalog"])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration and catalog stats on startup."""
    logger.info(f"🚀 Starting {APP_CONFIG['name']}...")
    check_config()
    logger.info(
        f"Catalog loaded: {ACTIVE_SCHEMA.name} "
        f"({len(ACTIVE_SCHEMA.tables)} tables, {sum(len(t.columns) for t in ACTIVE_SCHEMA.tables)} columns)"
    )
    yield
    logger.info(f"👋 {APP_CONFIG['name']} shut down")


# Initialize FastAPI app
app = FastAPI(
    title=APP_CONFIG["name"],
    description="Interactive SQL composer: query state in, deterministic SQL out",
    version=APP_CONFIG["version"],
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if APP_CONFIG["debug"] else [
        "http://localhost:3000",
        "http://localhost:8000"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Execution-Time"]
)


# Middleware to add timing
@app.middleware("http")
async def add_process_time_header(request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Execution-Time"] = str(round(process_time * 1000, 2))
    return response


# ----------------------------------------------------------------------
# Request bodies
# ----------------------------------------------------------------------

REQUEST_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompileRequest(BaseModel):
    model_config = REQUEST_CONFIG

    state: QueryState
    database_schema: Optional[DatabaseSchema] = Field(None, alias="schema")


class JoinInferenceRequest(BaseModel):
    model_config = REQUEST_CONFIG

    from_table: str
    to_table: str
    database_schema: Optional[DatabaseSchema] = Field(None, alias="schema")


class JoinSuggestionRequest(BaseModel):
    model_config = REQUEST_CONFIG

    state: QueryState
    table: str = Field(..., description="Table being added to the selection")
    database_schema: Optional[DatabaseSchema] = Field(None, alias="schema")


class ExpressionRequest(BaseModel):
    alias: str = ""
    expression: str = ""


class FragmentRequest(BaseModel):
    model_config = REQUEST_CONFIG

    state: QueryState
    fragment: Dict[str, Any] = Field(default_factory=dict, description="Candidate state document")
    database_schema: Optional[DatabaseSchema] = Field(None, alias="schema")


def _schema_for(request_schema: Optional[DatabaseSchema]) -> DatabaseSchema:
    return request_schema if request_schema is not None else ACTIVE_SCHEMA


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------

@app.get("/health")
async def health_check():
    """Service status and catalog summary."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": APP_CONFIG["version"],
        "components": {
            "catalog": {
                "status": "healthy",
                "name": ACTIVE_SCHEMA.name,
                "tables": len(ACTIVE_SCHEMA.tables),
                "schemas": len(set(t.schema_name for t in ACTIVE_SCHEMA.tables))
            }
        }
    }


@app.get("/schema")
async def get_schema():
    """The schema served when requests do not carry one."""
    return ACTIVE_SCHEMA.model_dump(mode="json", by_alias=True)


@app.get("/starters")
async def list_starters():
    """Starter fragments for an empty query state."""
    starters = suggest_starters(ACTIVE_SCHEMA)
    return {"starters": [s.model_dump() for s in starters]}


@app.post("/compile/preview")
async def preview_sql(request: CompileRequest):
    """
    Live preview. Always answers 200: compilation problems come back
    as SQL comments inside `sql`.
    """
    compiler = SQLCompiler(_schema_for(request.database_schema))
    return {"sql": compiler.preview_sql(request.state)}


@app.post("/compile/generate")
async def generate_sql(request: CompileRequest):
    """
    Strict generation for a "run" action.

    Example:
    {
        "state": {
            "selectedTables": ["public.users"],
            "limit": 100
        }
    }
    """
    compiler = SQLCompiler(_schema_for(request.database_schema))
    compiled = compiler.generate_sql(request.state)
    logger.info(f"Generated SQL for {len(request.state.selected_tables)} table(s)")
    return compiled.model_dump()


@app.post("/joins/infer")
async def infer_relationship(request: JoinInferenceRequest):
    """Propose a join between two tables; `join` is null when none is found."""
    join = infer_join(
        _schema_for(request.database_schema),
        request.from_table,
        request.to_table,
        cross_schema_heuristic=FEATURE_FLAGS["enable_cross_schema_heuristic"]
    )
    return {"join": join.model_dump(mode="json", by_alias=True) if join else None}


@app.post("/joins/suggest")
async def add_table_with_suggestion(request: JoinSuggestionRequest):
    """
    Add a table to the selection and suggest how it connects to the tables
    already there. The suggestion is not applied.
    """
    schema = _schema_for(request.database_schema)
    try:
        table_id = TableId.parse(request.table)
        schema.get_table(table_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))

    suggestion = None
    if FEATURE_FLAGS["enable_join_suggestions"]:
        suggestion = suggest_join(
            schema,
            request.state,
            table_id,
            cross_schema_heuristic=FEATURE_FLAGS["enable_cross_schema_heuristic"]
        )

    new_state = add_table(request.state, table_id)
    return {
        "state": new_state.to_document(),
        "suggestedJoin": suggestion.model_dump(mode="json", by_alias=True) if suggestion else None
    }


@app.post("/expressions/validate")
async def validate_expression(request: ExpressionRequest):
    """Authoring-time check of a calculated column formula."""
    reason = ExpressionValidator().check(request.alias, request.expression)
    return {
        "valid": reason is None,
        "alias": sanitize_alias(request.alias) if reason is None else None,
        "error": reason
    }


@app.post("/state/fragment")
async def apply_fragment(request: FragmentRequest):
    """Merge an externally generated fragment into the state through the mutation layer."""
    new_state = apply_state_fragment(
        request.state,
        request.fragment,
        _schema_for(request.database_schema)
    )
    return {"state": new_state.to_document()}


# Exception handlers
@app.exception_handler(QueryComposerError)
async def query_composer_exception_handler(request, exc: QueryComposerError):
    logger.warning(f"{request.method} {request.url.path} rejected: {exc.error_type}: {exc.message}")
    return JSONResponse(status_code=422, content=exc.to_dict())


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "path": request.url.path,
            "method": request.method
        }
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    error_detail = str(exc) if APP_CONFIG["debug"] else "Internal server error"

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": error_detail,
            "path": request.url.path,
            "method": request.method
        }
    )


# Main entry point
if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=APP_CONFIG["host"],
        port=APP_CONFIG["port"],
        reload=APP_CONFIG["debug"],
        log_level="debug" if APP_CONFIG["debug"] else "info"
    )
