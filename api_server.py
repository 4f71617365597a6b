from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from typing import List, Dict, Any, Optional
import uvicorn

from codegraph.config import settings
from codegraph.exceptions import UnknownEntityKindError
from codegraph.pipeline import CodeGraphPipeline
from codegraph.utils.logger import app_logger


logger = app_logger.bind(component="api_server")

app = FastAPI(title="Code Graph Search API", version="1.0.0")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_pipeline: Optional[CodeGraphPipeline] = None


def get_pipeline() -> CodeGraphPipeline:
    """Pipeline shared by all requests, created on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = CodeGraphPipeline()
    return _pipeline


class SearchResponse(BaseModel):
    kind: str
    results: List[Dict[str, Any]]
    total_results: int


class ClearResponse(BaseModel):
    graph_cleared: bool
    indices_dropped: List[str]


@app.get("/search", response_model=SearchResponse)
def search(
    query: str = Query(..., min_length=1),
    kind: str = Query("function", description="path, class or function"),
    top_k: int = Query(settings.search_top_k, ge=1, le=100),
    hops: int = Query(settings.call_expansion_hops, ge=1, le=2),
    pipeline: CodeGraphPipeline = Depends(get_pipeline),
):
    """Semantic search; function hits carry their callers and callees."""
    try:
        results = pipeline.search(query, kind, top_k, hops)
    except UnknownEntityKindError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Error searching code: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    formatted_results = [result.to_dict() for result in results]
    return SearchResponse(kind=kind, results=formatted_results, total_results=len(formatted_results))


@app.post("/admin/clear", response_model=ClearResponse)
def clear_all(pipeline: CodeGraphPipeline = Depends(get_pipeline)):
    """Drop the whole graph and all three vector indices."""
    try:
        return ClearResponse(**pipeline.clear_all())
    except Exception as e:
        logger.error(f"Error clearing stores: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/stats")
def get_stats(pipeline: CodeGraphPipeline = Depends(get_pipeline)):
    """Get database statistics."""
    try:
        return pipeline.stats()
    except Exception as e:
        logger.error(f"Error getting stats: {e}")
        raise HTTPException(status_code=500, detail=str(e))


if __name__ == "__main__":
    logger.info("Starting Code Graph Search API server")

    uvicorn.run(
        "api_server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level="info"
    )
